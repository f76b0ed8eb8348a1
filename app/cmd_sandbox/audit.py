"""
Audit records for executions.

The command itself never appears in an audit record or log line; only a
SHA-256 hash of its argument vector does, so sensitive argument values are
not leaked into the append-only audit sink.
"""

import hashlib
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from cmd_sandbox.executor.base import utcnow
from cmd_sandbox.executor.types import ExecutionRequest, ExecutionResult
from cmd_sandbox.utils import AUDIT_LOGGER_NAME


def hash_command(request: ExecutionRequest) -> str:
    """SHA-256 over the NUL-joined argv (unambiguous across token boundaries)."""
    digest = hashlib.sha256("\0".join(request.argv).encode("utf-8"))
    return digest.hexdigest()


@dataclass(frozen=True)
class AuditRecord:
    timestamp: datetime
    task_id: Optional[str]
    command_hash: str
    exit_code: int
    duration_ms: int
    started_at: datetime
    completed_at: datetime
    timed_out: bool
    backend: str

    @classmethod
    def from_execution(
        cls,
        task_id: Optional[str],
        request: ExecutionRequest,
        result: ExecutionResult,
        backend: str,
    ) -> "AuditRecord":
        return cls(
            timestamp=utcnow(),
            task_id=task_id,
            command_hash=hash_command(request),
            exit_code=result.exit_code,
            duration_ms=result.duration_ms,
            started_at=result.started_at,
            completed_at=result.completed_at,
            timed_out=result.timed_out,
            backend=backend,
        )

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "taskId": self.task_id,
            "commandHash": self.command_hash,
            "exitCode": self.exit_code,
            "durationMs": self.duration_ms,
            "startedAt": self.started_at.isoformat(),
            "completedAt": self.completed_at.isoformat(),
            "timedOut": self.timed_out,
            "backend": self.backend,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True)


class AuditLogger:
    """
    Writes one JSON line per record to the audit logger.

    setup_logging(audit_file=...) attaches the append-only file handler.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(AUDIT_LOGGER_NAME)

    def emit(self, record: AuditRecord) -> None:
        self.logger.info(record.to_json())
