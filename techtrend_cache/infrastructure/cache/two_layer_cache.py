"""
Two-layer (memory + Redis) batch loading.

``TwoLayerCacheManager.batch_load`` is the N+1-elimination point for the
DataLoader factories. For a batch of keys it:

1. Reads L1 (MemoryCache). If every key hits, returns without touching Redis
2. Reads the remaining keys from L2 (Redis) concurrently; hits are promoted
   into L1. A failing L2 read only turns its own key into a miss
3. Calls the database fetcher ONCE with every key still unresolved
4. Writes fetched values to L1 immediately and to L2 in the background
   (the response never waits on Redis writes)
5. Returns values in the order of the requested keys

Both layers store entries under ``<prefix>:<key>``.
"""

import asyncio
import fnmatch
import time
from collections.abc import Awaitable, Callable, Hashable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from techtrend_cache.core.background import BackgroundTaskRunner
from techtrend_cache.core.logging.logger import get_logger
from techtrend_cache.infrastructure.cache.memory_cache import MemoryCache

logger = get_logger(__name__)


class AsyncCacheLayer(Protocol):
    """What the manager needs from L2 (RedisCache or ResilientRedisCache)."""

    async def get(self, key: str) -> Any | None: ...

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None: ...

    async def delete(self, key: str) -> bool: ...

    async def invalidate_pattern(self, pattern: str) -> int: ...


@dataclass
class BatchLoadReport:
    """Per-batch counts handed to ``stats_callback``."""

    requested: int
    unique: int
    l1_hits: int
    l2_hits: int
    db_keys: int
    duration_ms: float

    @property
    def cache_hits(self) -> int:
        return self.l1_hits + self.l2_hits


def _percent(part: int, total: int) -> float:
    return round(part / total * 100, 2) if total else 0.0


class TwoLayerCacheManager:
    """
    Batch reader over L1 + L2 + a caller-supplied database fetcher.

    Usage:
        manager = TwoLayerCacheManager(memory_cache, redis_cache, prefix="view")
        statuses = await manager.batch_load(
            ["u1:a1", "u1:a2"], fetch_from_db, log_prefix="view-loader"
        )
    """

    def __init__(
        self,
        l1: MemoryCache,
        l2: AsyncCacheLayer | None,
        prefix: str,
        l1_ttl: int = 30,
        l2_ttl: int = 60,
        task_runner: BackgroundTaskRunner | None = None,
    ):
        self.l1 = l1
        self.l2 = l2
        self.prefix = prefix
        self.l1_ttl = l1_ttl
        self.l2_ttl = l2_ttl
        self._tasks = task_runner or BackgroundTaskRunner(name=f"two-layer:{prefix}")
        self.reset_stats()

    def _cache_key(self, key: Hashable) -> str:
        return f"{self.prefix}:{key}"

    async def batch_load(
        self,
        keys: Sequence[Hashable],
        db_fetcher: Callable[[list], Awaitable[Mapping[Hashable, Any]]],
        log_prefix: str | None = None,
        stats_callback: Callable[[BatchLoadReport], None] | None = None,
    ) -> list[Any | None]:
        """
        Resolve ``keys`` through L1, L2 and at most one database call.

        Args:
            keys: Requested keys; duplicates allowed
            db_fetcher: ``async fn(missing_keys) -> {key: value}``; keys it
                omits resolve to None
            log_prefix: Label for log events (defaults to the prefix)
            stats_callback: Receives a BatchLoadReport for this batch

        Returns:
            One value (or None) per requested key, in request order
        """
        started = time.perf_counter()
        label = log_prefix or self.prefix
        self._stats["batch_count"] += 1

        unique_keys = list(dict.fromkeys(keys))
        # Hit counters are per unique key, so requests are too
        self._stats["total_requests"] += len(unique_keys)
        results: dict[Hashable, Any] = {}

        # STAGE-BATCH.1: L1
        l2_pending = []
        for key in unique_keys:
            cached = self.l1.get(self._cache_key(key))
            if cached is not None:
                results[key] = cached
            else:
                l2_pending.append(key)
        l1_hits = len(unique_keys) - len(l2_pending)
        self._stats["l1_hits"] += l1_hits

        # STAGE-BATCH.2: L2
        db_pending = l2_pending
        l2_hits = 0
        if l2_pending and self.l2 is not None:
            db_pending = await self._read_l2(l2_pending, results, label)
            l2_hits = len(l2_pending) - len(db_pending)
            self._stats["l2_hits"] += l2_hits

        # STAGE-BATCH.3: DB
        if db_pending:
            self._stats["db_queries"] += 1
            fetched = await db_fetcher(db_pending)
            self._store(db_pending, fetched, results)

        report = BatchLoadReport(
            requested=len(keys),
            unique=len(unique_keys),
            l1_hits=l1_hits,
            l2_hits=l2_hits,
            db_keys=len(db_pending),
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        log = logger.info if db_pending else logger.debug
        log(
            "Batch resolved",
            stage="BATCH.LOAD",
            loader=label,
            total=report.requested,
            l1=report.l1_hits,
            l2=report.l2_hits,
            db=report.db_keys,
            duration_ms=report.duration_ms,
        )
        if stats_callback is not None:
            stats_callback(report)

        return [results.get(key) for key in keys]

    async def _read_l2(self, keys: list, results: dict, label: str) -> list:
        """Read ``keys`` from L2 concurrently; return the keys still missing."""
        outcomes = await asyncio.gather(
            *(self.l2.get(self._cache_key(key)) for key in keys), return_exceptions=True
        )
        missing = []
        for key, outcome in zip(keys, outcomes):
            if isinstance(outcome, Exception):
                logger.warning(
                    "L2 read failed, loading key from database",
                    stage="BATCH.L2",
                    loader=label,
                    key=str(key),
                    error=str(outcome),
                )
                missing.append(key)
            elif outcome is None:
                missing.append(key)
            else:
                results[key] = outcome
                self.l1.set(self._cache_key(key), outcome, self.l1_ttl)
        return missing

    def _store(self, requested: list, fetched: Mapping[Hashable, Any], results: dict) -> None:
        to_l2: dict[str, Any] = {}
        for key in requested:
            if key not in fetched:
                continue
            value = fetched[key]
            results[key] = value
            if value is None:
                continue
            cache_key = self._cache_key(key)
            self.l1.set(cache_key, value, self.l1_ttl)
            to_l2[cache_key] = value

        if to_l2 and self.l2 is not None:
            self._tasks.spawn(self._write_l2(to_l2), name=f"{self.prefix}:l2-write")

    async def _write_l2(self, entries: dict[str, Any]) -> None:
        await asyncio.gather(*(self.l2.set(k, v, self.l2_ttl) for k, v in entries.items()))

    # -------------------------------------------------------------------------
    # Write-through and invalidation
    # -------------------------------------------------------------------------

    async def prime(self, key: Hashable, value: Any) -> None:
        """Write ``value`` to both layers, awaiting the L2 write."""
        cache_key = self._cache_key(key)
        self.l1.set(cache_key, value, self.l1_ttl)
        if self.l2 is not None:
            await self.l2.set(cache_key, value, self.l2_ttl)

    async def invalidate(self, key: Hashable) -> None:
        cache_key = self._cache_key(key)
        self.l1.delete(cache_key)
        if self.l2 is not None:
            await self.l2.delete(cache_key)
        logger.debug("Key invalidated", stage="INV.KEY", key=cache_key)

    async def invalidate_pattern(self, pattern: str) -> int:
        """
        Drop every entry whose key (without the prefix) matches glob ``pattern``.

        Returns:
            Number of L1 entries removed
        """
        full_pattern = self._cache_key(pattern)
        removed = self.l1.delete_pattern("^" + fnmatch.translate(full_pattern))
        if self.l2 is not None:
            await self.l2.invalidate_pattern(full_pattern)
        logger.debug("Pattern invalidated", stage="INV.PATTERN", pattern=full_pattern, l1_removed=removed)
        return removed

    # -------------------------------------------------------------------------
    # Stats
    # -------------------------------------------------------------------------

    def get_stats(self) -> dict[str, Any]:
        total = self._stats["total_requests"]
        l1_hits = self._stats["l1_hits"]
        l2_hits = self._stats["l2_hits"]
        return {
            **self._stats,
            "hit_rate": _percent(l1_hits + l2_hits, total),
            "l1_hit_rate": _percent(l1_hits, total),
            "l2_hit_rate": _percent(l2_hits, total),
        }

    def reset_stats(self) -> None:
        self._stats = {
            "l1_hits": 0,
            "l2_hits": 0,
            "db_queries": 0,
            "total_requests": 0,
            "batch_count": 0,
        }


class CacheKeyBuilder:
    """
    Key shapes for user-scoped loader entries.

    Keys are relative to the manager prefix (the manager adds
    ``<prefix>:``), so ``user`` and ``article`` return globs for
    ``TwoLayerCacheManager.invalidate_pattern``.
    """

    @staticmethod
    def user_article(user_id: str, article_id: str) -> str:
        return f"{user_id}:{article_id}"

    @staticmethod
    def user(user_id: str) -> str:
        """Every entry of one user."""
        return f"{user_id}:*"

    @staticmethod
    def article(article_id: str) -> str:
        """One article's entry for every user."""
        return f"*:{article_id}"
