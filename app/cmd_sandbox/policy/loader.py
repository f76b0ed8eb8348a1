"""
Loading the command policy from its YAML source.
"""

from pathlib import Path

import yaml
from pydantic import ValidationError

from cmd_sandbox.policy.models import SecurityPolicy, restrictive_default_policy
from cmd_sandbox.utils import get_logger

logger = get_logger(__name__)


class PolicyLoadError(Exception):
    """Raised when the policy source is missing or malformed."""

    def __init__(self, message: str, source: str = ""):
        super().__init__(message)
        self.source = source


def parse_policy(data: object, source: str = "<memory>") -> SecurityPolicy:
    """
    Build a snapshot from an already-parsed policy document.

    Raises:
        PolicyLoadError: If the document is not a mapping or fails validation
    """
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise PolicyLoadError(
            f"Policy document must be a mapping, got {type(data).__name__}", source
        )
    try:
        policy = SecurityPolicy.model_validate(data)
    except ValidationError as e:
        raise PolicyLoadError(f"Invalid policy in {source}: {e}", source) from e
    return policy.model_copy(update={"source": source})


def load_policy(path: str | Path) -> SecurityPolicy:
    """
    Load a policy snapshot from a YAML file.

    Raises:
        PolicyLoadError: If the file is missing, unreadable or invalid
    """
    path = Path(path)
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except FileNotFoundError as e:
        raise PolicyLoadError(f"Policy file not found: {path}", str(path)) from e
    except OSError as e:
        raise PolicyLoadError(f"Cannot read policy file {path}: {e}", str(path)) from e
    except yaml.YAMLError as e:
        raise PolicyLoadError(f"Failed to parse policy YAML '{path}': {e}", str(path)) from e

    policy = parse_policy(data, source=str(path))
    logger.info(
        f"Loaded command policy from {path}: "
        f"{len(policy.allowlist.binaries)} allowlisted binaries, "
        f"{len(policy.denylist.commands)} denylisted commands"
    )
    return policy


def load_policy_or_default(path: str | Path) -> SecurityPolicy:
    """Load the policy, falling back to the restrictive default on any load error."""
    try:
        return load_policy(path)
    except PolicyLoadError as e:
        logger.error(f"Failed to load command policy, using restrictive defaults: {e}")
        return restrictive_default_policy()
