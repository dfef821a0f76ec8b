"""
Per-request batching of key lookups.

Responsibility: Collect individual ``load(key)`` calls made in the same
event-loop tick and resolve them with ONE call to a batch function.

Algorithm:
1. ``load`` queues (key, future) instead of fetching
2. If the queue reaches the batch size, dispatch immediately
3. Otherwise dispatch after ``batch_delay`` seconds
4. Dispatch copies and clears the queue, coalesces duplicate keys and
   calls ``batch_fn(unique_keys, context)``
5. Every future gets its key's value, or the batch's exception

There is no per-loader memoisation: caching is the two-layer manager's job,
so a loader can live longer than one request without serving stale data.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable, Hashable, Iterable, Sequence
from dataclasses import dataclass
from typing import Generic, TypeVar

from techtrend_cache.core.background import BackgroundTaskRunner
from techtrend_cache.core.exceptions import DataLoaderError
from techtrend_cache.core.logging.logger import get_logger

logger = get_logger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


@dataclass(frozen=True)
class BatchContext:
    """Facts about the batch being dispatched."""

    size: int
    queue_wait_ms: float


BatchFn = Callable[[list[K], BatchContext], Awaitable[Sequence[V]]]


class DataLoader(Generic[K, V]):
    """
    Usage:
        async def load_statuses(article_ids, ctx):
            rows = await repo.find(article_ids)
            return [rows.get(a) for a in article_ids]

        loader = DataLoader(load_statuses, max_batch_size=100)
        a, b = await asyncio.gather(loader.load("a1"), loader.load("a2"))  # one batch
    """

    def __init__(
        self,
        batch_fn: BatchFn,
        max_batch_size: int | Callable[[], int] | None = None,
        batch_delay: float = 0.001,
        name: str = "dataloader",
        task_runner: BackgroundTaskRunner | None = None,
    ):
        """
        Args:
            batch_fn: ``async fn(keys, context)`` returning one value per key
            max_batch_size: Fixed size, or a callable read at every enqueue
                (so an optimizer can resize live); None means unbounded
            batch_delay: Seconds to wait for more keys before dispatching
            name: Label for log events
        """
        self._batch_fn = batch_fn
        self._max_batch_size = max_batch_size
        self.batch_delay = batch_delay
        self.name = name
        self._tasks = task_runner or BackgroundTaskRunner(name=f"loader:{name}")
        self._queue: list[tuple[K, asyncio.Future]] = []
        self._first_queued_at: float | None = None
        self._flush_handle: asyncio.TimerHandle | None = None
        self.batches_dispatched = 0

    def _batch_limit(self) -> int | None:
        limit = self._max_batch_size
        if callable(limit):
            limit = limit()
        return max(1, limit) if limit is not None else None

    async def load(self, key: K) -> V:
        loop = asyncio.get_running_loop()
        future = loop.create_future()

        if not self._queue:
            self._first_queued_at = time.perf_counter()
        self._queue.append((key, future))

        limit = self._batch_limit()
        if limit is not None and len(self._queue) >= limit:
            self._dispatch()
        elif self._flush_handle is None:
            self._flush_handle = loop.call_later(self.batch_delay, self._dispatch)

        return await future

    async def load_many(self, keys: Iterable[K]) -> list[V]:
        return list(await asyncio.gather(*(self.load(key) for key in keys)))

    def _dispatch(self) -> None:
        if self._flush_handle is not None:
            self._flush_handle.cancel()
            self._flush_handle = None
        if not self._queue:
            return

        batch = self._queue
        self._queue = []
        queue_wait_ms = (time.perf_counter() - (self._first_queued_at or time.perf_counter())) * 1000
        self._first_queued_at = None
        self.batches_dispatched += 1

        self._tasks.spawn(self._run_batch(batch, queue_wait_ms), name=f"{self.name}:batch")

    async def _run_batch(self, batch: list[tuple[K, asyncio.Future]], queue_wait_ms: float) -> None:
        unique_keys = list(dict.fromkeys(key for key, _ in batch))
        context = BatchContext(size=len(unique_keys), queue_wait_ms=round(queue_wait_ms, 3))

        try:
            values = await self._batch_fn(unique_keys, context)
            if len(values) != len(unique_keys):
                raise DataLoaderError(
                    message="Batch function returned the wrong number of values",
                    details={"loader": self.name, "keys": len(unique_keys), "values": len(values)},
                )
        except Exception as e:
            logger.error(
                "Batch load failed",
                stage="DL.BATCH",
                loader=self.name,
                batch_size=len(unique_keys),
                error=str(e),
            )
            for _, future in batch:
                if not future.done():
                    future.set_exception(e)
            return

        by_key = dict(zip(unique_keys, values))
        for key, future in batch:
            if not future.done():
                future.set_result(by_key[key])
