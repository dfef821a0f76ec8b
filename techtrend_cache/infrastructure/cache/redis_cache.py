"""
Namespaced Redis cache (L2).

Every key is stored as ``<namespace>:<key>`` so logical caches can share
one Redis instance and be invalidated independently with SCAN patterns.

Error policy: the cache is best-effort. Connection failures, command
failures and malformed payloads are counted in ``errors`` and turned into
a miss (reads) or a no-op (writes); they never reach the caller. Code that
needs to *see* failures (the circuit-breaker wrapper) uses
``read_strict`` / ``write_strict`` instead.
"""

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, TypeVar

import orjson

from techtrend_cache.config.constants import DELETE_BATCH_SIZE, SCAN_COUNT
from techtrend_cache.config.settings import get_settings
from techtrend_cache.core.exceptions import CacheError, CacheSerializationError
from techtrend_cache.core.logging.logger import get_logger
from techtrend_cache.infrastructure.cache.redis_client import RedisClient

if TYPE_CHECKING:
    from techtrend_cache.infrastructure.cache.distributed_lock import DistributedLock

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_NAMESPACE = "@techtrend/cache"


# =============================================================================
# Serialization
# =============================================================================


def encode_value(value: Any) -> str:
    """Serialize a value to JSON text with orjson."""
    try:
        return orjson.dumps(value, option=orjson.OPT_NON_STR_KEYS).decode("utf-8")
    except TypeError as e:
        raise CacheSerializationError(
            message=f"Value is not JSON serializable: {e}",
            details={"value_type": type(value).__name__},
        )


def decode_value(raw: str | bytes) -> Any:
    """Parse JSON text produced by encode_value."""
    try:
        return orjson.loads(raw)
    except orjson.JSONDecodeError as e:
        raise CacheSerializationError(message=f"Malformed cached payload: {e}")


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    errors: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return round(self.hits / total * 100, 2) if total else 0.0


# =============================================================================
# Redis Cache
# =============================================================================


class RedisCache:
    """
    Best-effort JSON cache over the shared RedisClient.

    Usage:
        cache = RedisCache(redis_client, namespace="@techtrend/cache:stats", ttl=3600)
        await cache.set("overall", {"articles": 10})
        await cache.get("overall")
        await cache.delete_by_pattern("trend:*")
    """

    def __init__(
        self,
        redis_client: RedisClient,
        namespace: str = DEFAULT_NAMESPACE,
        ttl: int = 3600,
        lock: "DistributedLock | None" = None,
        poll_attempts: int | None = None,
        poll_interval: float | None = None,
    ):
        """
        Args:
            redis_client: Shared Redis facade
            namespace: Key prefix for this logical cache
            ttl: Default TTL in seconds
            lock: Distributed lock used by get_or_set_with_lock
            poll_attempts: Cache polls while another worker fills a key
            poll_interval: Seconds between those polls
        """
        lock_settings = get_settings().lock
        self._redis = redis_client
        self.namespace = namespace
        self.default_ttl = ttl
        self._lock = lock
        self._poll_attempts = poll_attempts or lock_settings.LOCK_POLL_ATTEMPTS
        self._poll_interval = (
            poll_interval if poll_interval is not None else lock_settings.LOCK_POLL_INTERVAL
        )
        self._stats = CacheStats()

    def _build_key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    @staticmethod
    def generate_cache_key(
        base: str, prefix: str | None = None, params: dict[str, Any] | None = None
    ) -> str:
        """
        Build ``prefix:base:k1=v1:k2=v2`` with params sorted by name.

        None values are dropped so optional filters do not fragment keys.
        """
        parts = [prefix] if prefix else []
        parts.append(base)
        if params:
            parts.extend(f"{k}={v}" for k, v in sorted(params.items()) if v is not None)
        return ":".join(parts)

    # -------------------------------------------------------------------------
    # Strict operations (raise CacheError)
    # -------------------------------------------------------------------------

    async def read_strict(self, key: str) -> Any | None:
        raw = await self._redis.get(self._build_key(key))
        if raw is None:
            return None
        return decode_value(raw)

    async def write_strict(self, key: str, value: Any, ttl: int | None = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        await self._redis.set(self._build_key(key), encode_value(value), ttl=max(1, int(ttl)))

    async def delete_strict(self, key: str) -> bool:
        return await self._redis.remove(self._build_key(key)) > 0

    # -------------------------------------------------------------------------
    # Best-effort operations
    # -------------------------------------------------------------------------

    async def _lookup(self, key: str, record: bool = True) -> Any | None:
        try:
            value = await self.read_strict(key)
        except CacheError as e:
            self._stats.errors += 1
            logger.warning(
                "Cache read failed, treating as miss",
                stage="L2.GET",
                namespace=self.namespace,
                key=key,
                error=str(e),
            )
            return None

        if record:
            if value is None:
                self._stats.misses += 1
            else:
                self._stats.hits += 1
        return value

    async def get(self, key: str) -> Any | None:
        """Return the cached value or None (miss or error)."""
        return await self._lookup(key)

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        try:
            await self.write_strict(key, value, ttl)
        except CacheError as e:
            self._stats.errors += 1
            logger.warning(
                "Cache write failed", stage="L2.SET", namespace=self.namespace, key=key, error=str(e)
            )

    async def delete(self, key: str) -> bool:
        try:
            return await self.delete_strict(key)
        except CacheError as e:
            self._stats.errors += 1
            logger.warning(
                "Cache delete failed", stage="L2.DEL", namespace=self.namespace, key=key, error=str(e)
            )
            return False

    async def delete_many(self, keys: Iterable[str]) -> int:
        full_keys = [self._build_key(k) for k in keys]
        if not full_keys:
            return 0
        try:
            return await self._redis.remove(*full_keys)
        except CacheError as e:
            self._stats.errors += 1
            logger.warning("Cache bulk delete failed", stage="L2.DEL", count=len(full_keys), error=str(e))
            return 0

    async def get_many(self, keys: list[str]) -> dict[str, Any | None]:
        """
        Read several keys with one MGET.

        A malformed payload only affects its own key.
        """
        if not keys:
            return {}
        try:
            raws = await self._redis.mget([self._build_key(k) for k in keys])
        except CacheError as e:
            self._stats.errors += 1
            self._stats.misses += len(keys)
            logger.warning("Cache MGET failed", stage="L2.MGET", count=len(keys), error=str(e))
            return {k: None for k in keys}

        results: dict[str, Any | None] = {}
        for key, raw in zip(keys, raws):
            if raw is None:
                self._stats.misses += 1
                results[key] = None
                continue
            try:
                results[key] = decode_value(raw)
                self._stats.hits += 1
            except CacheSerializationError:
                self._stats.errors += 1
                self._stats.misses += 1
                results[key] = None
        return results

    async def set_many(self, mapping: dict[str, Any], ttl: int | None = None) -> None:
        if mapping:
            await asyncio.gather(*(self.set(k, v, ttl) for k, v in mapping.items()))

    # -------------------------------------------------------------------------
    # Pattern invalidation
    # -------------------------------------------------------------------------

    async def delete_by_pattern(self, pattern: str, batch_size: int = DELETE_BATCH_SIZE) -> int:
        """
        Delete every key in this namespace matching a glob ``pattern``.

        Keys are discovered with a SCAN cursor and removed in chunks of
        ``batch_size`` (UNLINK when the server supports it).

        Returns:
            Number of keys deleted
        """
        match = self._build_key(pattern)
        deleted = 0
        batch: list[str] = []
        try:
            async for key in self._redis.scan_iter(match=match, count=SCAN_COUNT):
                batch.append(key)
                if len(batch) >= batch_size:
                    deleted += await self._redis.remove(*batch)
                    batch = []
            if batch:
                deleted += await self._redis.remove(*batch)
        except CacheError as e:
            self._stats.errors += 1
            logger.warning(
                "Pattern delete failed", stage="L2.SCAN", pattern=match, deleted=deleted, error=str(e)
            )
            return deleted

        if deleted:
            logger.debug("Pattern delete completed", stage="L2.SCAN", pattern=match, deleted=deleted)
        return deleted

    async def invalidate_pattern(self, pattern: str) -> int:
        return await self.delete_by_pattern(pattern)

    async def clear(self) -> int:
        """Delete every key of this namespace."""
        return await self.delete_by_pattern("*")

    # -------------------------------------------------------------------------
    # Read-through helpers
    # -------------------------------------------------------------------------

    async def _fetch_and_store(
        self, key: str, fetcher: Callable[[], Awaitable[T]], ttl: int | None
    ) -> T:
        value = await fetcher()
        if value is not None:
            await self.set(key, value, ttl)
        return value

    async def get_or_set(
        self, key: str, fetcher: Callable[[], Awaitable[T]], ttl: int | None = None
    ) -> T:
        """
        Read-through without stampede protection.

        Concurrent misses on the same key will all call ``fetcher``; use
        get_or_set_with_lock for expensive fills.
        """
        cached = await self.get(key)
        if cached is not None:
            return cached
        return await self._fetch_and_store(key, fetcher, ttl)

    async def get_or_set_with_lock(
        self, key: str, fetcher: Callable[[], Awaitable[T]], ttl: int | None = None
    ) -> T:
        """
        Read-through where only one worker fills a missing key.

        Algorithm:
        1. Cache hit -> return
        2. Try the fill lock once. Holder: re-check cache, fetch, store, release.
           Redis unreachable: fetch directly
        3. Lock busy: poll the cache (poll_attempts x poll_interval)
        4. Still missing: wait for the lock (acquire_with_wait)
        5. Lock never obtained: fetch directly (redundant work beats blocking)
        """
        cached = await self.get(key)
        if cached is not None:
            return cached

        if self._lock is None:
            return await self._fetch_and_store(key, fetcher, ttl)

        lock_key = self._build_key(key)
        try:
            token = await self._lock.try_acquire(lock_key)
        except CacheError as e:
            # Redis is down, not contended: nobody else can fill the key
            self._stats.errors += 1
            logger.warning(
                "Fill lock unreachable, fetching directly",
                stage="LOCK.FALLBACK",
                namespace=self.namespace,
                key=key,
                error=str(e),
            )
            return await self._fetch_and_store(key, fetcher, ttl)

        if token is None:
            for _ in range(self._poll_attempts):
                await asyncio.sleep(self._poll_interval)
                cached = await self._lookup(key, record=False)
                if cached is not None:
                    self._stats.hits += 1
                    return cached
            token = await self._lock.acquire_with_wait(lock_key)

        if token is None:
            logger.warning(
                "Fill lock unavailable, fetching directly",
                stage="LOCK.FALLBACK",
                namespace=self.namespace,
                key=key,
            )
            return await self._fetch_and_store(key, fetcher, ttl)

        try:
            cached = await self._lookup(key, record=False)
            if cached is not None:
                return cached
            return await self._fetch_and_store(key, fetcher, ttl)
        finally:
            await self._lock.release(lock_key, token)

    # -------------------------------------------------------------------------
    # Stats
    # -------------------------------------------------------------------------

    def record_error(self) -> None:
        """Count a failure seen by a wrapper calling the strict operations."""
        self._stats.errors += 1

    def get_stats(self) -> dict[str, Any]:
        return {
            "hits": self._stats.hits,
            "misses": self._stats.misses,
            "errors": self._stats.errors,
            "hit_rate": self._stats.hit_rate,
        }

    def reset_stats(self) -> None:
        self._stats = CacheStats()
