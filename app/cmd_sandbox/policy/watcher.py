"""
Background watcher that hot-reloads the policy file.

The watcher polls the file's stat signature instead of relying on
platform file-notification APIs, so it behaves the same on every host and
inside containers with mounted ConfigMaps.
"""

import asyncio
import os
from typing import Optional

from cmd_sandbox.policy.store import PolicyStore
from cmd_sandbox.utils import get_logger

logger = get_logger(__name__)

Signature = Optional[tuple[int, int, int]]


class PolicyWatcher:
    """
    Debounced policy file watcher.

    A change is acted on only after the file has stayed unchanged for
    `debounce_seconds`, so an editor writing the file in several steps
    triggers a single reload.
    """

    def __init__(
        self,
        store: PolicyStore,
        poll_interval: float = 1.0,
        debounce: float = 0.5,
    ):
        if store.source is None:
            raise ValueError("PolicyWatcher needs a store with a file source")
        self.store = store
        self.poll_interval = poll_interval
        self.debounce = debounce
        self.reload_count = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        """Start watching on the running event loop. Idempotent."""
        if self.running:
            return self._task
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name="policy-watcher"
        )
        logger.info(f"Watching policy file for changes: {self.store.source}")
        return self._task

    async def stop(self) -> None:
        """Cancel the watcher task (process shutdown)."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    def _signature(self) -> Signature:
        try:
            st = os.stat(self.store.source)
        except OSError:
            return None
        return (st.st_mtime_ns, st.st_size, st.st_ino)

    async def _settle(self, signature: Signature) -> Signature:
        """Wait until the signature holds still for one debounce window."""
        while True:
            await asyncio.sleep(self.debounce)
            newer = self._signature()
            if newer == signature:
                return signature
            signature = newer

    async def _run(self) -> None:
        last = self._signature()
        if last is None:
            logger.warning(f"Policy file {self.store.source} not found; waiting for it to appear")

        while True:
            await asyncio.sleep(self.poll_interval)
            current = self._signature()
            if current == last:
                continue

            current = await self._settle(current)
            last = current

            if current is None:
                logger.warning(
                    f"Policy file {self.store.source} removed; "
                    f"keeping version {self.store.current.version}"
                )
                continue

            logger.info("Policy file modified, reloading")
            try:
                self.store.reload()
            except Exception:
                logger.exception("Unexpected error while reloading policy")
            self.reload_count += 1
