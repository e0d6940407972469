"""
app/services/background.py

Purpose: Fire-and-forget work

- Runs the expiry sweep and audit notifications off the request path
- Keeps task references so they are not garbage collected mid-flight
- Logs failures instead of surfacing them to the triggering update
"""

import asyncio
from typing import Awaitable, Set

from app.core.logging import get_logger

logger = get_logger(__name__)


class BackgroundRunner:
    """Owns the background tasks spawned while handling updates."""

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    def spawn(self, coro: Awaitable, name: str = "background") -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        task.set_name(name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task):
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                f"Background task {task.get_name()} failed: {exc}",
                exc_info=(type(exc), exc, exc.__traceback__)
            )

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self, timeout: float = 10.0):
        """
        Waits for running tasks, including ones spawned while waiting.
        """
        while self._tasks:
            _, still_running = await asyncio.wait(set(self._tasks), timeout=timeout)
            if still_running:
                logger.warning(f"{len(still_running)} background task(s) still running after {timeout}s")
                return

    async def shutdown(self, timeout: float = 5.0):
        """Drains, then cancels whatever is left."""
        await self.drain(timeout)
        for task in list(self._tasks):
            task.cancel()
