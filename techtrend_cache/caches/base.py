"""
Base class for the per-domain Redis caches.

A domain cache is a RedisCache with its own namespace suffix, a TTL taken
from CacheSettings, and hashed keys for parameterised queries.
"""

from typing import Any

from techtrend_cache.caches.keys import params_key
from techtrend_cache.config.settings import Settings, get_settings
from techtrend_cache.infrastructure.cache.distributed_lock import DistributedLock
from techtrend_cache.infrastructure.cache.redis_cache import RedisCache
from techtrend_cache.infrastructure.cache.redis_client import RedisClient


class DomainCache(RedisCache):
    namespace_suffix: str
    key_prefix: str
    ttl_setting: str

    def __init__(
        self,
        redis_client: RedisClient,
        settings: Settings | None = None,
        ttl: int | None = None,
        lock: DistributedLock | None = None,
    ):
        cache_settings = (settings or get_settings()).cache
        super().__init__(
            redis_client,
            namespace=f"{cache_settings.CACHE_NAMESPACE}:{self.namespace_suffix}",
            ttl=ttl or getattr(cache_settings, self.ttl_setting),
            lock=lock,
        )

    def generate_key(self, params: dict[str, Any]) -> str:
        return params_key(self.key_prefix, params)
