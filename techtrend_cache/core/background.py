"""
Background task runner for fire-and-forget work.

Cache population (L2 write-back, SWR revalidation) must not add latency to
the request that triggered it, but its failures still need to be seen.
Every such coroutine is handed to ``BackgroundTaskRunner.spawn``, which:

1. Schedules it on the running loop
2. Holds a strong reference until it completes (the loop only keeps weak ones)
3. Logs any exception centrally
4. Lets shutdown wait for (or cancel) whatever is still pending
"""

import asyncio
from collections.abc import Coroutine
from typing import Any

from techtrend_cache.core.logging.logger import get_logger

logger = get_logger(__name__)


class BackgroundTaskRunner:
    """Tracks detached asyncio tasks and reports their failures."""

    def __init__(self, name: str = "cache"):
        self.name = name
        self._tasks: set[asyncio.Task] = set()
        self._completed = 0
        self._failed = 0

    def spawn(self, coro: Coroutine[Any, Any, Any], name: str | None = None) -> asyncio.Task:
        """
        Schedule ``coro`` without awaiting it.

        Args:
            coro: Coroutine to run
            name: Label used in failure logs

        Returns:
            The created task (callers may await it, e.g. in tests)
        """
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is None:
            self._completed += 1
            return
        self._failed += 1
        logger.error(
            "Background task failed",
            stage="BG.FAIL",
            runner=self.name,
            task=task.get_name(),
            error=str(error),
            error_type=type(error).__name__,
        )

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait until every task spawned so far has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self, timeout: float = 5.0) -> None:
        """
        Give pending tasks ``timeout`` seconds to finish, then cancel the rest.

        STAGE-6: Background task cleanup
        """
        if not self._tasks:
            return
        pending = list(self._tasks)
        _, still_running = await asyncio.wait(pending, timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            await asyncio.gather(*still_running, return_exceptions=True)
            logger.warning(
                "Cancelled background tasks on shutdown",
                stage="BG.SHUTDOWN",
                runner=self.name,
                cancelled=len(still_running),
            )

    def get_stats(self) -> dict[str, int]:
        return {"pending": self.pending, "completed": self._completed, "failed": self._failed}
