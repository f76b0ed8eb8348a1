"""
Type definitions for command validation and execution.

This module defines the data structures used throughout the executor.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class ExecutionStatus(str, Enum):
    """Status of an execution, as reported to callers."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMEOUT = "timeout"

    @property
    def terminal(self) -> bool:
        return self in (ExecutionStatus.SUCCEEDED, ExecutionStatus.FAILED, ExecutionStatus.TIMEOUT)

    @classmethod
    def from_result(cls, result: "ExecutionResult") -> "ExecutionStatus":
        """Derive the terminal status of a finished execution."""
        if result.timed_out:
            return cls.TIMEOUT
        if result.exit_code == 0:
            return cls.SUCCEEDED
        return cls.FAILED


class JobState(str, Enum):
    """Progress of a single Kubernetes Job execution."""

    SUBMITTED = "submitted"
    POLLING = "polling"
    TERMINAL = "terminal"
    LOG_FETCHED = "log_fetched"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class ValidationVerdict:
    """
    Result of policy validation.

    Attributes:
        valid: True when no rule was violated
        violations: Every violated rule, in evaluation order
    """

    valid: bool
    violations: tuple[str, ...] = ()

    @classmethod
    def from_violations(cls, violations: list[str]) -> "ValidationVerdict":
        return cls(valid=not violations, violations=tuple(violations))

    def to_dict(self) -> dict:
        return {"valid": self.valid, "violations": list(self.violations)}


@dataclass(frozen=True)
class ExecutionRequest:
    """
    A validated-or-to-be-validated command split into binary and arguments.

    No quoting semantics: a stored command string is split on whitespace.
    """

    binary: str
    arguments: tuple[str, ...] = ()

    @classmethod
    def from_task(
        cls, command: str, arguments: Optional[list[str]] = None
    ) -> "ExecutionRequest":
        """
        Build a request from a task's command and optional arguments.

        When arguments are supplied the command is taken as the binary
        as-is; otherwise the command string is split on whitespace.
        """
        if arguments is not None:
            return cls(binary=(command or "").strip(), arguments=tuple(arguments))
        parts = (command or "").split()
        if not parts:
            return cls(binary="")
        return cls(binary=parts[0], arguments=tuple(parts[1:]))

    @property
    def argv(self) -> list[str]:
        return [self.binary, *self.arguments]


@dataclass(frozen=True)
class ExecutionResult:
    """
    Result of one execution attempt.

    Attributes:
        exit_code: Process exit code, -1 on timeout or when unknown
        stdout: Standard output (bounded, may end with the truncation marker)
        stderr: Standard error output (bounded)
        duration_ms: Wall-clock duration in milliseconds
        timed_out: Whether the execution hit its deadline
        backend_identifier: local process id or Kubernetes Job name
        started_at: UTC start time
        completed_at: UTC completion time
        truncated: Whether any stream was truncated
    """

    exit_code: int
    stdout: str
    stderr: str
    duration_ms: int
    timed_out: bool
    backend_identifier: str
    started_at: datetime
    completed_at: datetime
    truncated: bool = False

    @property
    def status(self) -> ExecutionStatus:
        return ExecutionStatus.from_result(self)

    @property
    def success(self) -> bool:
        """Check if command executed successfully."""
        return self.status == ExecutionStatus.SUCCEEDED

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "status": self.status.value,
            "exit_code": self.exit_code,
            "stdout": self.stdout,
            "stderr": self.stderr,
            "duration_ms": self.duration_ms,
            "timed_out": self.timed_out,
            "backend_identifier": self.backend_identifier,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat(),
            "truncated": self.truncated,
        }


@dataclass
class JobRun:
    """
    Mutable bookkeeping for one Kubernetes Job execution.

    Owned by a single execute() call; never shared between executions.
    """

    job_name: str
    exec_uuid: str
    state: JobState = JobState.SUBMITTED
    attempts: int = 0
    succeeded: bool = False
    deadline_exceeded: bool = False
    pod_name: Optional[str] = None
    logs: str = ""
    exit_code: int = -1
    history: list[JobState] = field(default_factory=list)

    def advance(self, state: JobState) -> None:
        self.history.append(self.state)
        self.state = state


class ExecutorError(Exception):
    """Base exception for executor errors."""

    pass


class CommandRejectedError(ExecutorError):
    """Raised when execution is requested for a command that fails validation."""

    def __init__(self, violations: tuple[str, ...] | list[str]):
        self.violations = tuple(violations)
        super().__init__("Command validation failed: " + "; ".join(self.violations))


class InfrastructureError(ExecutorError):
    """The system, not the command, failed: e.g. the orchestrator rejected the Job."""

    pass
