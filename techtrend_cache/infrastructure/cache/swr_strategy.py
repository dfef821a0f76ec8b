"""
Stale-while-revalidate caching.

Entries are stored as ``{"data", "timestamp", "etag"}`` with a Redis TTL of
``ttl``. On read, the entry's age decides what happens:

    age < stale_time          -> fresh: return it
    stale_time <= age < ttl   -> stale: return it, refresh in the background
    otherwise / missing       -> miss: fetch, store, return

At most one background refresh runs per key at a time. If Redis itself
fails, the fetcher is called directly so callers always get data.
"""

import asyncio
import hashlib
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

from techtrend_cache.config.constants import (
    KEY_HASH_LENGTH,
    SWR_WARMUP_BATCH_DELAY,
    SWR_WARMUP_BATCH_SIZE,
)
from techtrend_cache.core.background import BackgroundTaskRunner
from techtrend_cache.core.exceptions import CacheError
from techtrend_cache.core.logging.logger import get_logger
from techtrend_cache.infrastructure.cache.redis_cache import RedisCache, decode_value, encode_value
from techtrend_cache.infrastructure.cache.redis_client import RedisClient

logger = get_logger(__name__)

T = TypeVar("T")


class SWRStatus(str, Enum):
    FRESH = "fresh"
    STALE = "stale"
    MISS = "miss"


@dataclass
class CachedData:
    data: Any
    timestamp: float
    etag: str | None = None

    def age(self, now: float) -> float:
        return now - self.timestamp

    def to_dict(self) -> dict[str, Any]:
        return {"data": self.data, "timestamp": self.timestamp, "etag": self.etag}

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "CachedData":
        return cls(data=payload["data"], timestamp=payload["timestamp"], etag=payload.get("etag"))


@dataclass
class SWRResult(Generic[T]):
    data: T
    status: SWRStatus


def generate_etag(data: Any) -> str:
    return hashlib.sha256(encode_value(data).encode("utf-8")).hexdigest()[:KEY_HASH_LENGTH]


class StaleWhileRevalidateCache:
    """
    Serve cached data immediately, refresh stale entries out of band.

    Usage:
        swr = StaleWhileRevalidateCache(redis_client, namespace="@techtrend/cache:swr")
        result = await swr.get_with_swr("articles:page:1", load_page)
        result.data, result.status
    """

    def __init__(
        self,
        redis_client: RedisClient,
        namespace: str,
        ttl: int = 900,
        stale_time: int = 300,
        task_runner: BackgroundTaskRunner | None = None,
    ):
        self._redis = redis_client
        self.namespace = namespace
        self.ttl = ttl
        self.stale_time = stale_time
        self._tasks = task_runner or BackgroundTaskRunner(name="swr")
        self._revalidating: dict[str, asyncio.Task] = {}
        # Deletes go through RedisCache for its chunked, best-effort pattern removal
        self._keyspace = RedisCache(redis_client, namespace=namespace, ttl=ttl)
        self._counts = {status.value: 0 for status in SWRStatus}
        self._counts["errors"] = 0
        self._counts["revalidations"] = 0

    def _build_key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    async def _read(self, key: str) -> CachedData | None:
        raw = await self._redis.get(self._build_key(key))
        if raw is None:
            return None
        return CachedData.from_dict(decode_value(raw))

    async def set(self, key: str, data: Any, ttl: int | None = None) -> None:
        """Store ``data`` with the current timestamp. Raises CacheError."""
        entry = CachedData(data=data, timestamp=time.time(), etag=generate_etag(data))
        await self._redis.set(
            self._build_key(key), encode_value(entry.to_dict()), ttl=ttl or self.ttl
        )

    async def get_with_swr(
        self,
        key: str,
        fetcher: Callable[[], Awaitable[T]],
        ttl: int | None = None,
        stale_time: int | None = None,
    ) -> SWRResult[T]:
        ttl = ttl or self.ttl
        stale_time = self.stale_time if stale_time is None else stale_time

        try:
            cached = await self._read(key)
        except (CacheError, KeyError, TypeError) as e:
            self._counts["errors"] += 1
            logger.error("SWR cache read failed, fetching directly", stage="SWR.GET", key=key, error=str(e))
            return await self._fetch_uncached(key, fetcher, ttl)

        if cached is not None:
            age = cached.age(time.time())
            if age < stale_time:
                self._counts[SWRStatus.FRESH.value] += 1
                logger.debug("SWR fresh hit", stage="SWR.FRESH", key=key)
                return SWRResult(data=cached.data, status=SWRStatus.FRESH)
            if age < ttl:
                self._counts[SWRStatus.STALE.value] += 1
                logger.debug("SWR stale hit, revalidating", stage="SWR.STALE", key=key, age=round(age, 1))
                self._revalidate_in_background(key, fetcher, ttl)
                return SWRResult(data=cached.data, status=SWRStatus.STALE)

        return await self._fetch_uncached(key, fetcher, ttl)

    async def _fetch_uncached(
        self, key: str, fetcher: Callable[[], Awaitable[T]], ttl: int
    ) -> SWRResult[T]:
        self._counts[SWRStatus.MISS.value] += 1
        data = await fetcher()
        try:
            await self.set(key, data, ttl)
        except CacheError as e:
            self._counts["errors"] += 1
            logger.warning("SWR cache write failed", stage="SWR.SET", key=key, error=str(e))
        return SWRResult(data=data, status=SWRStatus.MISS)

    def _revalidate_in_background(
        self, key: str, fetcher: Callable[[], Awaitable[Any]], ttl: int
    ) -> None:
        if key in self._revalidating:
            logger.debug("Revalidation already in progress", stage="SWR.REVALIDATE", key=key)
            return
        self._revalidating[key] = self._tasks.spawn(
            self._revalidate(key, fetcher, ttl), name=f"swr:revalidate:{key}"
        )

    async def _revalidate(self, key: str, fetcher: Callable[[], Awaitable[Any]], ttl: int) -> None:
        try:
            data = await fetcher()
            await self.set(key, data, ttl)
            self._counts["revalidations"] += 1
            logger.debug("Background revalidation completed", stage="SWR.REVALIDATE", key=key)
        finally:
            self._revalidating.pop(key, None)

    async def warm_up(
        self, entries: list[tuple[str, Callable[[], Awaitable[Any]]]], ttl: int | None = None
    ) -> int:
        """
        Pre-populate ``(key, fetcher)`` pairs in small batches.

        Returns:
            Number of keys warmed
        """
        warmed = 0
        logger.info("SWR warm-up started", stage="SWR.WARM", keys=len(entries))

        async def warm_one(key: str, fetcher: Callable[[], Awaitable[Any]]) -> bool:
            try:
                await self.set(key, await fetcher(), ttl)
            except Exception as e:
                logger.error("SWR warm-up failed for key", stage="SWR.WARM", key=key, error=str(e))
                return False
            return True

        for start in range(0, len(entries), SWR_WARMUP_BATCH_SIZE):
            batch = entries[start : start + SWR_WARMUP_BATCH_SIZE]
            outcomes = await asyncio.gather(*(warm_one(k, f) for k, f in batch))
            warmed += sum(outcomes)
            if start + SWR_WARMUP_BATCH_SIZE < len(entries):
                await asyncio.sleep(SWR_WARMUP_BATCH_DELAY)

        logger.info("SWR warm-up completed", stage="SWR.WARM", warmed=warmed)
        return warmed

    async def invalidate(self, *keys: str) -> int:
        """Best-effort delete; a Redis failure is counted and returns 0."""
        return await self._keyspace.delete_many(keys)

    async def clear_namespace(self) -> int:
        """Remove every entry of this namespace in SCAN batches; returns the count."""
        removed = await self._keyspace.clear()
        if removed:
            logger.info("SWR namespace cleared", stage="SWR.CLEAR", namespace=self.namespace, keys=removed)
        return removed

    def get_stats(self) -> dict[str, Any]:
        return {
            "namespace": self.namespace,
            "ttl": self.ttl,
            "stale_time": self.stale_time,
            "revalidating": len(self._revalidating),
            **self._counts,
            "errors": self._counts["errors"] + self._keyspace.get_stats()["errors"],
        }
