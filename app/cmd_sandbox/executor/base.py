"""
Abstract base for execution backends.

Exactly two backends exist: LocalExecutor and KubernetesJobExecutor. Which
one runs is a deployment decision (see create_executor), never a per-call
branch.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Optional

from cmd_sandbox.executor.types import ExecutionRequest, ExecutionResult
from cmd_sandbox.policy import SecurityPolicy


class Executor(ABC):
    """
    Base interface for all execution backends.

    Implementations receive an already-validated request and the policy
    snapshot it was validated against, and always hand back a well-formed
    ExecutionResult for anything the command itself did (including
    timeouts).
    """

    backend: str = ""

    @abstractmethod
    async def execute(
        self,
        request: ExecutionRequest,
        policy: SecurityPolicy,
        task_id: Optional[str] = None,
    ) -> ExecutionResult:
        """
        Run the command and return its result.

        Args:
            request: Validated binary and arguments
            policy: Snapshot supplying limits and truncation marker
            task_id: Caller's task identifier, used for labelling

        Returns:
            ExecutionResult for this attempt

        Raises:
            InfrastructureError: If the backend itself could not run the command
        """
        ...

    async def close(self) -> None:
        """Release backend resources. Idempotent."""
        return None


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
