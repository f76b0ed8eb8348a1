#!/usr/bin/env python3
"""
Functional tests for the executor module.

These tests verify:
1. Policy validation against a realistic policy
2. Local execution with real subprocesses
"""

import asyncio
import sys
import time
from pathlib import Path

import pytest
import yaml

# Add app directory to path for imports
APP_DIR = Path(__file__).parent.parent.parent.parent / "app"
sys.path.insert(0, str(APP_DIR))

from cmd_sandbox.executor import (
    CommandValidator,
    ExecutionRequest,
    ExecutionStatus,
    LocalExecutor,
)
from cmd_sandbox.policy import PolicyStore

# Load test data
TEST_DATA_PATH = Path(__file__).parent / "test_data.yaml"
with open(TEST_DATA_PATH) as f:
    TEST_DATA = yaml.safe_load(f)

ALL_VALIDATION_CASES = [
    case for group in TEST_DATA["validation_tests"].values() for case in group
]


def _limits(policy, **overrides):
    return policy.model_copy(update={"limits": policy.limits.model_copy(update=overrides)})


def _running(marker: str) -> bool:
    """True if any live process has `marker` among its arguments."""
    for cmdline in Path("/proc").glob("[0-9]*/cmdline"):
        try:
            args = cmdline.read_bytes().split(b"\0")
        except OSError:
            continue
        if marker.encode() in args:
            return True
    return False


needs_proc = pytest.mark.skipif(not Path("/proc/self/cmdline").exists(), reason="needs /proc")


# =============================================================================
# Validator Tests
# =============================================================================
class TestValidator:
    """Test policy validation with data-driven cases."""

    @pytest.fixture
    def validator(self, store) -> CommandValidator:
        return CommandValidator(store)

    @pytest.mark.parametrize(
        "test_case",
        ALL_VALIDATION_CASES,
        ids=lambda tc: tc["name"],
    )
    def test_validation_case(self, validator, test_case: dict):
        verdict = validator.validate_command(test_case["command"], test_case.get("arguments"))

        if "violations" in test_case:
            assert list(verdict.violations) == test_case["violations"]
            assert verdict.valid == (not test_case["violations"])

        for fragment in test_case.get("contains", []):
            assert not verdict.valid
            assert any(fragment in v for v in verdict.violations), (
                f"No violation contains {fragment!r}: {verdict.violations}"
            )

    def test_validation_is_deterministic(self, validator):
        first = validator.validate_command("echo a;b c|d $(id)")
        second = validator.validate_command("echo a;b c|d $(id)")
        assert first == second


# =============================================================================
# Local Executor Tests
# =============================================================================
class TestLocalExecutor:
    """Test local execution with real subprocesses."""

    @pytest.fixture
    def executor(self) -> LocalExecutor:
        return LocalExecutor(grace_seconds=1.0)

    @pytest.mark.asyncio
    async def test_echo(self, executor, policy):
        result = await executor.execute(ExecutionRequest("echo", ("hello",)), policy, "t-1")

        assert result.exit_code == 0
        assert result.stdout == "hello\n"
        assert result.stderr == ""
        assert result.timed_out is False
        assert result.truncated is False
        assert result.status == ExecutionStatus.SUCCEEDED
        assert result.backend_identifier.startswith("local-")
        assert result.completed_at >= result.started_at
        assert result.duration_ms >= 0

    @pytest.mark.asyncio
    async def test_nonzero_exit(self, executor, policy):
        result = await executor.execute(ExecutionRequest("false"), policy)

        assert result.exit_code == 1
        assert result.timed_out is False
        assert result.status == ExecutionStatus.FAILED
        assert not result.success

    @pytest.mark.asyncio
    async def test_no_shell_interpretation(self, executor, policy):
        """Shell syntax reaching the executor is passed through literally."""
        result = await executor.execute(
            ExecutionRequest("echo", ("$HOME", ";", "ls", "*")), policy
        )

        assert result.exit_code == 0
        assert result.stdout == "$HOME ; ls *\n"

    @pytest.mark.asyncio
    async def test_minimal_environment(self, executor, policy):
        result = await executor.execute(ExecutionRequest("printenv"), policy)

        assert result.exit_code == 0
        assert result.stdout == f"PATH={executor.search_path}\n"

    @pytest.mark.asyncio
    async def test_stdin_is_closed(self, executor, policy):
        """A command reading stdin sees EOF instead of hanging."""
        result = await executor.execute(ExecutionRequest("cat"), policy)

        assert result.exit_code == 0
        assert result.stdout == ""
        assert result.timed_out is False

    @pytest.mark.asyncio
    async def test_stderr_captured(self, executor, policy):
        result = await executor.execute(
            ExecutionRequest("ls", ("/definitely/not/here",)), policy
        )

        assert result.exit_code != 0
        assert "/definitely/not/here" in result.stderr
        assert result.stdout == ""

    @pytest.mark.asyncio
    async def test_timeout(self, executor, policy):
        policy = _limits(policy, timeout_seconds=1.0)

        start = time.monotonic()
        result = await executor.execute(ExecutionRequest("sleep", ("10",)), policy)
        elapsed = time.monotonic() - start

        assert result.timed_out is True
        assert result.exit_code == -1
        assert result.status == ExecutionStatus.TIMEOUT
        assert result.stderr.endswith("Command timed out after 1.0 seconds")
        assert elapsed < 2

    @needs_proc
    @pytest.mark.asyncio
    async def test_timeout_kills_process_group(self, executor, policy):
        """Grandchildren holding the pipes open do not stall the result."""
        policy = _limits(policy, timeout_seconds=0.5)

        start = time.monotonic()
        result = await executor.execute(
            ExecutionRequest("sh", ("-c", "sleep 30.2718 & sleep 30.2719")), policy
        )
        elapsed = time.monotonic() - start

        assert result.timed_out is True
        assert elapsed < 3
        await asyncio.sleep(0.2)
        assert not _running("30.2718")
        assert not _running("30.2719")

    @needs_proc
    @pytest.mark.asyncio
    async def test_background_child_killed_after_normal_exit(self, executor, policy):
        """A child left holding stdout is killed once the command itself exits."""
        start = time.monotonic()
        result = await executor.execute(
            ExecutionRequest("sh", ("-c", "sleep 31.4159 & echo started")), policy
        )
        elapsed = time.monotonic() - start

        assert result.exit_code == 0
        assert result.timed_out is False
        assert result.status == ExecutionStatus.SUCCEEDED
        assert result.stdout == "started\n"
        assert elapsed < 2
        await asyncio.sleep(0.2)
        assert not _running("31.4159")

    @needs_proc
    @pytest.mark.asyncio
    async def test_cancellation_kills_process_group(self, executor, policy):
        task = asyncio.create_task(
            executor.execute(
                ExecutionRequest("sh", ("-c", "sleep 32.7182 & sleep 32.7183")), policy
            )
        )
        for _ in range(100):
            if _running("32.7183"):
                break
            await asyncio.sleep(0.02)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        await asyncio.sleep(0.2)
        assert not _running("32.7182")
        assert not _running("32.7183")

    @pytest.mark.asyncio
    async def test_stdout_truncated_at_ceiling(self, executor, policy):
        policy = _limits(policy, max_stdout_bytes=4)

        result = await executor.execute(ExecutionRequest("printf", ("0123456789",)), policy)

        assert result.exit_code == 0
        assert result.stdout == "0123" + policy.output.truncation_marker
        assert result.truncated is True

    @pytest.mark.asyncio
    async def test_output_at_ceiling_not_truncated(self, executor, policy):
        policy = _limits(policy, max_stdout_bytes=10)

        result = await executor.execute(ExecutionRequest("printf", ("0123456789",)), policy)

        assert result.stdout == "0123456789"
        assert result.truncated is False

    @pytest.mark.asyncio
    async def test_large_output_drained_without_blocking(self, executor, policy):
        """The child keeps writing well past the ceiling and still exits normally."""
        policy = _limits(policy, max_stdout_bytes=1024, max_stderr_bytes=1024)

        result = await executor.execute(
            ExecutionRequest("sh", ("-c", "head -c 1000000 /dev/zero >&2; echo done")),
            policy,
        )

        assert result.exit_code == 0
        assert result.timed_out is False
        assert result.stdout == "done\n"
        assert result.stderr.endswith(policy.output.truncation_marker)
        assert len(result.stderr.encode()) == 1024 + len(policy.output.truncation_marker.encode())
        assert result.truncated is True

    @pytest.mark.asyncio
    async def test_missing_binary(self, executor, policy):
        result = await executor.execute(ExecutionRequest("no-such-binary-xyz"), policy)

        assert result.exit_code == -1
        assert result.timed_out is False
        assert result.stderr.startswith("Failed to start 'no-such-binary-xyz'")
        assert result.stdout == ""

    @pytest.mark.asyncio
    async def test_restricted_search_path(self, policy, tmp_path):
        executor = LocalExecutor(search_path=str(tmp_path))

        result = await executor.execute(ExecutionRequest("echo", ("hi",)), policy)

        assert result.exit_code == -1
        assert "not found" in result.stderr


# =============================================================================
# Store + Validator Integration
# =============================================================================
class TestValidatorFollowsStore:
    def test_swap_changes_verdict(self, store, policy):
        validator = CommandValidator(store)
        assert validator.validate("echo", ["hi"]).valid

        restricted = policy.model_copy(
            update={"allowlist": policy.allowlist.model_copy(update={"binaries": frozenset({"ls"})})}
        )
        store.swap(restricted)

        verdict = validator.validate("echo", ["hi"])
        assert not verdict.valid
        assert verdict.violations == ("Command 'echo' is not in allowlist",)

    def test_snapshot_taken_once(self, policy):
        store = PolicyStore(policy)
        validator = CommandValidator(store)
        assert validator.policy is store.current
