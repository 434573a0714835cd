"""
Tracked fire-and-forget asyncio tasks.

Holds strong references to spawned tasks until they finish, logs their
failures, and lets shutdown wait for (or cancel) whatever is still running.
"""
import asyncio
import logging
from typing import Coroutine, Optional, Set

logger = logging.getLogger(__name__)


class BackgroundTaskTracker:
    """Registry of in-flight background tasks for one replica."""

    def __init__(self, name: str = "background"):
        self.name = name
        self._tasks: Set[asyncio.Task] = set()
        self.failed_count = 0

    def spawn(self, coro: Coroutine, name: Optional[str] = None) -> asyncio.Task:
        """
        Schedule `coro` on the running loop.

        Raises:
            RuntimeError: If called without a running event loop.
        """
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self.failed_count += 1
            logger.error(
                f"[{self.name}] Background task '{task.get_name()}' failed: {exc}",
                exc_info=(type(exc), exc, exc.__traceback__),
            )

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for every tracked task, including tasks spawned while waiting.

        Returns:
            True if everything finished, False on timeout.
        """
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        while self._tasks:
            remaining = None if deadline is None else max(0.0, deadline - loop.time())
            done, pending = await asyncio.wait(set(self._tasks), timeout=remaining)
            if pending and deadline is not None and loop.time() >= deadline:
                logger.warning(f"[{self.name}] {len(pending)} background task(s) still running after {timeout}s")
                return False
        return True

    def cancel_all(self) -> int:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            logger.info(f"[{self.name}] Cancelled {len(tasks)} background task(s)")
        return len(tasks)
