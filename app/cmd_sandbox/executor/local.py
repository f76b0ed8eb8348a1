"""
Local, shell-less execution backend.

Commands run via asyncio.create_subprocess_exec with an explicit argument
vector, so no shell ever sees the command line. This holds regardless of
validation: a metacharacter that slipped past the policy is still just a
byte in argv.
"""

import asyncio
import os
import shutil
import signal
import time
import uuid
from typing import Optional

from cmd_sandbox.executor.base import Executor, utcnow
from cmd_sandbox.executor.capture import OutputCapture
from cmd_sandbox.executor.types import ExecutionRequest, ExecutionResult
from cmd_sandbox.policy import SecurityPolicy
from cmd_sandbox.utils import get_logger

logger = get_logger(__name__)

DEFAULT_SEARCH_PATH = "/usr/local/bin:/usr/bin:/bin"
EXIT_POLL_INTERVAL = 0.02


class LocalExecutor(Executor):
    """
    Runs one process per execution on this host.

    - No shell: program + argv only
    - Own session/process group, killed as a whole on timeout
    - Minimal environment (PATH only)
    - stdout/stderr drained concurrently with per-stream ceilings
    """

    backend = "local"

    def __init__(
        self,
        search_path: str = DEFAULT_SEARCH_PATH,
        grace_seconds: float = 1.0,
    ):
        """
        Args:
            search_path: PATH used to resolve binaries and passed to children
            grace_seconds: How long to wait for output drains after exit
        """
        self.search_path = search_path
        self.grace_seconds = grace_seconds

    async def execute(
        self,
        request: ExecutionRequest,
        policy: SecurityPolicy,
        task_id: Optional[str] = None,
    ) -> ExecutionResult:
        identifier = f"local-{uuid.uuid4().hex[:12]}"
        limits = policy.limits
        started_at = utcnow()
        start = time.monotonic()

        executable = shutil.which(request.binary, path=self.search_path)
        if executable is None:
            return self._spawn_failure(
                identifier, started_at, start,
                f"Failed to start '{request.binary}': executable not found on {self.search_path}",
            )

        try:
            process = await asyncio.create_subprocess_exec(
                executable,
                *request.arguments,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env={"PATH": self.search_path},
                start_new_session=True,
            )
        except OSError as e:
            return self._spawn_failure(
                identifier, started_at, start,
                f"Failed to start '{request.binary}': {e.strerror or e}",
            )

        logger.debug(f"{identifier}: started pid {process.pid} (task={task_id})")

        capture = OutputCapture(
            process.stdout,
            process.stderr,
            limits.max_stdout_bytes,
            limits.max_stderr_bytes,
            marker=policy.output.truncation_marker,
        )
        capture.start()

        timed_out = False
        try:
            await asyncio.wait_for(self._exited(process), timeout=limits.timeout_seconds)
        except asyncio.TimeoutError:
            timed_out = True
            logger.warning(f"{identifier}: timed out after {limits.timeout_seconds}s, killing")
        except asyncio.CancelledError:
            await self._kill_group(process)
            await capture.collect(0)
            raise

        # Leftover group members would hold the pipes open
        await self._kill_group(process)

        output = await capture.collect(self.grace_seconds)
        duration_ms = int((time.monotonic() - start) * 1000)

        stderr = output.stderr
        if timed_out:
            note = f"Command timed out after {limits.timeout_seconds} seconds"
            stderr = f"{stderr}\n{note}" if stderr and not stderr.endswith("\n") else stderr + note

        exit_code = -1 if timed_out else process.returncode
        logger.info(
            f"{identifier}: exit_code={exit_code}, duration={duration_ms}ms, timed_out={timed_out}"
        )

        return ExecutionResult(
            exit_code=exit_code,
            stdout=output.stdout,
            stderr=stderr,
            duration_ms=duration_ms,
            timed_out=timed_out,
            backend_identifier=identifier,
            started_at=started_at,
            completed_at=utcnow(),
            truncated=output.truncated,
        )

    async def _exited(self, process: asyncio.subprocess.Process) -> int:
        """
        Wait for the top-level process itself to exit.

        Process.wait() also waits for the stdout/stderr pipes to close, which
        never happens while a background child still holds them.
        """
        while process.returncode is None:
            await asyncio.sleep(EXIT_POLL_INTERVAL)
        return process.returncode

    async def _kill_group(self, process: asyncio.subprocess.Process) -> None:
        """SIGKILL every member of the process group and reap the leader."""
        try:
            os.killpg(process.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
        except PermissionError:
            if process.returncode is None:
                process.kill()

        try:
            await asyncio.wait_for(self._exited(process), timeout=self.grace_seconds)
        except asyncio.TimeoutError:
            logger.error(f"Process {process.pid} did not exit after SIGKILL")

    def _spawn_failure(
        self, identifier: str, started_at, start: float, message: str
    ) -> ExecutionResult:
        logger.error(f"{identifier}: {message}")
        return ExecutionResult(
            exit_code=-1,
            stdout="",
            stderr=message,
            duration_ms=int((time.monotonic() - start) * 1000),
            timed_out=False,
            backend_identifier=identifier,
            started_at=started_at,
            completed_at=utcnow(),
        )
