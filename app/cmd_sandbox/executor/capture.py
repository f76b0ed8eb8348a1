"""
Bounded, concurrent capture of a process's stdout and stderr.

Each stream is drained by its own task. Reading both at once matters: a
child that fills the stderr pipe while we block on stdout would otherwise
stall forever. Output beyond a stream's ceiling is read and discarded so
the child never blocks on a full pipe; only the first `ceiling` bytes are
kept.
"""

import asyncio
import codecs
from dataclasses import dataclass
from typing import Optional

from cmd_sandbox.policy.models import DEFAULT_TRUNCATION_MARKER
from cmd_sandbox.utils import get_logger

logger = get_logger(__name__)

CHUNK_SIZE = 4096


def _decode(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


def _decode_prefix(data: bytes) -> str:
    """Decode bytes cut at an arbitrary offset, dropping a trailing partial character."""
    return codecs.getincrementaldecoder("utf-8")(errors="replace").decode(data, final=False)


def truncate_text(text: str, limit: int, marker: str = DEFAULT_TRUNCATION_MARKER) -> tuple[str, bool]:
    """
    Cap already-collected text at `limit` UTF-8 bytes.

    Returns:
        (text, truncated) where truncated text ends with the marker
    """
    data = (text or "").encode("utf-8")
    if len(data) <= limit:
        return text or "", False
    return _decode_prefix(data[:limit]) + marker, True


class BoundedBuffer:
    """Keeps at most `limit` bytes and remembers whether anything was dropped."""

    def __init__(self, limit: int):
        self.limit = limit
        self.total_bytes = 0
        self.truncated = False
        self._data = bytearray()

    def write(self, chunk: bytes) -> None:
        self.total_bytes += len(chunk)
        room = self.limit - len(self._data)
        if len(chunk) > room:
            if room > 0:
                self._data += chunk[:room]
            self.truncated = True
        else:
            self._data += chunk

    def getvalue(self) -> bytes:
        return bytes(self._data)

    def text(self, marker: str = DEFAULT_TRUNCATION_MARKER) -> str:
        if self.truncated:
            return _decode_prefix(self.getvalue()) + marker
        return _decode(self.getvalue())


async def drain(stream: asyncio.StreamReader, buffer: BoundedBuffer) -> None:
    """Read `stream` to EOF into `buffer`."""
    while True:
        chunk = await stream.read(CHUNK_SIZE)
        if not chunk:
            return
        buffer.write(chunk)


@dataclass(frozen=True)
class CapturedOutput:
    stdout: str
    stderr: str
    truncated: bool


class OutputCapture:
    """
    Drains two streams concurrently into bounded buffers.

    Example:
        capture = OutputCapture(proc.stdout, proc.stderr, 1024, 1024)
        capture.start()
        await proc.wait()
        output = await capture.collect(grace=1.0)
    """

    def __init__(
        self,
        stdout: Optional[asyncio.StreamReader],
        stderr: Optional[asyncio.StreamReader],
        max_stdout_bytes: int,
        max_stderr_bytes: int,
        marker: str = DEFAULT_TRUNCATION_MARKER,
    ):
        self._streams = {"stdout": stdout, "stderr": stderr}
        self.stdout_buffer = BoundedBuffer(max_stdout_bytes)
        self.stderr_buffer = BoundedBuffer(max_stderr_bytes)
        self.marker = marker
        self._tasks: list[asyncio.Task] = []

    def start(self) -> None:
        buffers = {"stdout": self.stdout_buffer, "stderr": self.stderr_buffer}
        for name, stream in self._streams.items():
            if stream is None:
                continue
            self._tasks.append(
                asyncio.create_task(drain(stream, buffers[name]), name=f"drain-{name}")
            )

    async def collect(self, grace: float) -> CapturedOutput:
        """
        Join the drain tasks, waiting at most `grace` seconds.

        Tasks still running after the grace period are cancelled; whatever
        they buffered so far is returned.
        """
        if self._tasks:
            done, pending = await asyncio.wait(self._tasks, timeout=grace)
            for task in pending:
                task.cancel()
            if pending:
                logger.debug(f"Abandoned {len(pending)} output drain(s) after {grace}s grace")
                await asyncio.gather(*pending, return_exceptions=True)
            for task in done:
                if not task.cancelled() and task.exception() is not None:
                    logger.warning(f"Output drain {task.get_name()} failed: {task.exception()}")
            self._tasks = []

        return CapturedOutput(
            stdout=self.stdout_buffer.text(self.marker),
            stderr=self.stderr_buffer.text(self.marker),
            truncated=self.stdout_buffer.truncated or self.stderr_buffer.truncated,
        )
