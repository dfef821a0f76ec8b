"""
Cache-Related Exceptions

All exceptions related to caching operations (Redis, in-memory cache,
serialization of cached payloads).
"""

from techtrend_cache.core.exceptions.base import TechTrendCacheError


class CacheError(TechTrendCacheError):
    """Base exception for cache-related errors."""
    pass


class CacheConnectionError(CacheError):
    """
    Raised when unable to connect to Redis.

    Common causes:
    - Redis server is down
    - Network connectivity issues
    - Incorrect host/port/URL configuration
    - Authentication failure
    """

    retryable = True


class CacheKeyError(CacheError):
    """
    Raised when a Redis command on a key fails.

    Common causes:
    - Operation timeout
    - Connection dropped mid-command
    - Memory limit exceeded (OOM command not allowed)
    """
    pass


class CacheSerializationError(CacheError):
    """Raised when a value cannot be encoded to or decoded from JSON."""
    pass
