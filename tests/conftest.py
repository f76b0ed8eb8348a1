"""
Shared pytest fixtures for CMD Sandbox tests.
"""

import sys
from pathlib import Path

import pytest
import yaml

# Add app directory to path
APP_DIR = Path(__file__).parent.parent / "app"
sys.path.insert(0, str(APP_DIR))

from cmd_sandbox.policy import PolicyStore, SecurityPolicy, parse_policy  # noqa: E402

TEST_POLICY = {
    "limits": {
        "maxCommandLength": 200,
        "maxArgs": 4,
        "maxTotalLength": 120,
        "timeoutSeconds": 5,
        "maxStdoutBytes": 4096,
        "maxStderrBytes": 4096,
    },
    "allowlist": {"binaries": ["echo", "sleep", "printf", "sh", "ls", "true", "false", "cat"]},
    "denylist": {
        "commands": ["rm", "sudo", "sh"],
        "metacharacters": ["`", "$", ";", "|", "&", ">", "<"],
        "sequences": ["&&", "||", "../"],
    },
    "validation": {
        "allowedArgCharacters": "A-Za-z0-9._:/=%-",
        "rejectQuotes": True,
        "rejectNewlines": True,
    },
    "output": {"truncationMarker": "\n[TRUNCATED]"},
}


def pytest_configure(config):
    """Configure pytest."""
    config.addinivalue_line(
        "markers", "asyncio: mark test as an async test"
    )


@pytest.fixture
def policy_data() -> dict:
    """Raw policy document used across tests (deep copy per test)."""
    return yaml.safe_load(yaml.safe_dump(TEST_POLICY))


@pytest.fixture
def policy(policy_data) -> SecurityPolicy:
    return parse_policy(policy_data, source="<test>")


@pytest.fixture
def store(policy) -> PolicyStore:
    return PolicyStore(policy)


@pytest.fixture
def write_policy(tmp_path):
    """Write a policy document to a temp file and return its path."""
    path = tmp_path / "command-policy.yaml"

    def _write(data) -> Path:
        if isinstance(data, str):
            path.write_text(data)
        else:
            path.write_text(yaml.safe_dump(data))
        return path

    return _write
