from techtrend_cache.caches.base import DomainCache
from techtrend_cache.config.constants import NAMESPACE_TRENDS


class TrendsCache(DomainCache):
    """Trend analyses and trending keywords. Default TTL 30 minutes."""

    namespace_suffix = NAMESPACE_TRENDS
    key_prefix = "trends"
    ttl_setting = "CACHE_TRENDS_TTL"
