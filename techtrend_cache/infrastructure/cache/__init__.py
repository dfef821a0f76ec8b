"""
Cache Module

Provides the cache primitives: L1 memory cache, namespaced Redis cache
(L2), the two-layer batch manager, distributed lock, stale-while-revalidate
strategy and the health report.
"""

from .distributed_lock import DistributedLock
from .fallback_cache import ResilientRedisCache
from .health import CacheHealthChecker
from .memory_cache import DataLoaderMemoryCache, MemoryCache
from .redis_cache import RedisCache
from .redis_client import RedisCapabilities, RedisClient
from .swr_strategy import StaleWhileRevalidateCache, SWRResult, SWRStatus
from .two_layer_cache import BatchLoadReport, CacheKeyBuilder, TwoLayerCacheManager

__all__ = [
    "BatchLoadReport",
    "CacheHealthChecker",
    "CacheKeyBuilder",
    "DataLoaderMemoryCache",
    "DistributedLock",
    "MemoryCache",
    "RedisCache",
    "RedisCapabilities",
    "RedisClient",
    "ResilientRedisCache",
    "StaleWhileRevalidateCache",
    "SWRResult",
    "SWRStatus",
    "TwoLayerCacheManager",
]
