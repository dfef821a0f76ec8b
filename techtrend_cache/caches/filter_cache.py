from techtrend_cache.caches.base import DomainCache
from techtrend_cache.config.constants import NAMESPACE_FILTERS


class FilterCache(DomainCache):
    """Filter option lists (sources, categories). Default TTL 30 minutes."""

    namespace_suffix = NAMESPACE_FILTERS
    key_prefix = "filters"
    ttl_setting = "CACHE_FILTERS_TTL"
