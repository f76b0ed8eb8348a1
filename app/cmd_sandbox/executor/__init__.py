"""
Command validation and sandboxed execution.

This module handles:
- Policy validation of binary + arguments
- Shell-less local execution with bounded output capture
- Hardened Kubernetes Job execution
"""

from cmd_sandbox.executor.types import (
    CommandRejectedError,
    ExecutionRequest,
    ExecutionResult,
    ExecutionStatus,
    ExecutorError,
    InfrastructureError,
    JobRun,
    JobState,
    ValidationVerdict,
)
from cmd_sandbox.executor.validator import (
    CommandValidator,
    create_validator,
    validate,
)
from cmd_sandbox.executor.capture import (
    BoundedBuffer,
    CapturedOutput,
    OutputCapture,
    truncate_text,
)
from cmd_sandbox.executor.base import Executor
from cmd_sandbox.executor.local import LocalExecutor
from cmd_sandbox.executor.job import KubernetesJobExecutor

__all__ = [
    # Types
    "ExecutionRequest",
    "ExecutionResult",
    "ExecutionStatus",
    "JobRun",
    "JobState",
    "ValidationVerdict",
    # Exceptions
    "ExecutorError",
    "CommandRejectedError",
    "InfrastructureError",
    # Validator
    "CommandValidator",
    "create_validator",
    "validate",
    # Output capture
    "BoundedBuffer",
    "CapturedOutput",
    "OutputCapture",
    "truncate_text",
    # Backends
    "Executor",
    "LocalExecutor",
    "KubernetesJobExecutor",
]
