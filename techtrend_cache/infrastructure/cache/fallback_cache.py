"""
Redis cache behind a circuit breaker with a process-local fallback.

Every Redis round trip goes through ``CircuitBreaker.execute``. While Redis
is failing (or the circuit is open) reads and writes are served by a
MemoryCache, so an outage degrades to per-process caching instead of
sending every request to the database.

Writes and successful Redis reads are mirrored into the memory cache, so
it already holds recent values when the circuit opens. Values served from
the fallback are not written back, so they still expire on their own TTL.
"""

import fnmatch
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from techtrend_cache.core.exceptions import CacheError, CacheSerializationError
from techtrend_cache.core.logging.logger import get_logger
from techtrend_cache.core.resilience.circuit_breaker import CircuitBreaker, CircuitState
from techtrend_cache.infrastructure.cache.memory_cache import MemoryCache
from techtrend_cache.infrastructure.cache.redis_cache import RedisCache

logger = get_logger(__name__)

T = TypeVar("T")


class ResilientRedisCache:
    """
    Same read/write contract as RedisCache, tolerant of Redis outages.

    Usage:
        cache = ResilientRedisCache(redis_cache, breaker, fallback=MemoryCache(max_size=500))
        await cache.set("k", {"a": 1})
        await cache.get("k")      # Redis, or memory while the circuit is open
        cache.circuit_state       # CircuitState.CLOSED / OPEN / HALF_OPEN
    """

    def __init__(
        self,
        redis_cache: RedisCache,
        circuit_breaker: CircuitBreaker,
        fallback: MemoryCache | None = None,
    ):
        self._redis_cache = redis_cache
        self._breaker = circuit_breaker
        self._fallback = fallback or MemoryCache(max_size=1000, default_ttl=60)
        self._fallback_reads = 0

    @property
    def namespace(self) -> str:
        return self._redis_cache.namespace

    @property
    def circuit_state(self) -> CircuitState:
        return self._breaker.state

    def _fallback_get(self, key: str) -> Any | None:
        self._fallback_reads += 1
        logger.debug(
            "Serving read from memory fallback",
            stage="CB.FALLBACK",
            namespace=self.namespace,
            key=key,
            circuit_state=self._breaker.state.value,
        )
        return self._fallback.get(key)

    async def _counted(self, operation: Callable[[], Awaitable[T]]) -> T:
        try:
            return await operation()
        except CacheError:
            self._redis_cache.record_error()
            raise

    async def get(self, key: str) -> Any | None:
        async def read() -> Any | None:
            try:
                value = await self._counted(lambda: self._redis_cache.read_strict(key))
            except CacheSerializationError:
                # Corrupt payload is a miss, not a Redis failure
                return None
            if value is not None:
                self._fallback.set(key, value)
            return value

        return await self._breaker.execute(read, fallback=lambda: self._fallback_get(key))

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        ttl = self._redis_cache.default_ttl if ttl is None else ttl
        self._fallback.set(key, value, min(ttl, self._fallback.default_ttl))
        await self._breaker.execute(
            lambda: self._counted(lambda: self._redis_cache.write_strict(key, value, ttl)),
            fallback=lambda: None,
        )

    async def delete(self, key: str) -> bool:
        local = self._fallback.delete(key)
        remote = await self._breaker.execute(
            lambda: self._counted(lambda: self._redis_cache.delete_strict(key)), fallback=lambda: False
        )
        return local or remote

    async def invalidate_pattern(self, pattern: str) -> int:
        self._fallback.delete_pattern("^" + fnmatch.translate(pattern))
        return await self._breaker.execute(
            lambda: self._redis_cache.delete_by_pattern(pattern), fallback=lambda: 0
        )

    async def get_or_set(
        self, key: str, fetcher: Callable[[], Awaitable[T]], ttl: int | None = None
    ) -> T:
        cached = await self.get(key)
        if cached is not None:
            return cached
        value = await fetcher()
        if value is not None:
            await self.set(key, value, ttl)
        return value

    def get_stats(self) -> dict[str, Any]:
        return {
            "redis": self._redis_cache.get_stats(),
            "fallback": self._fallback.get_stats(),
            "fallback_reads": self._fallback_reads,
            "circuit_breaker": self._breaker.get_stats(),
        }

    def reset_stats(self) -> None:
        self._redis_cache.reset_stats()
        self._fallback.reset_stats()
        self._fallback_reads = 0
