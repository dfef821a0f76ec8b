"""
Domain Caches Module

Per-domain Redis caches (stats, trends, search, tags, filters, article
detail, article lists) and the invalidation hooks that keep them in step
with database writes.
"""

from .article_detail_cache import ArticleDetailCache, restore_dates
from .base import DomainCache
from .filter_cache import FilterCache
from .invalidator import CacheInvalidator
from .keys import hash_params, normalize_params, params_key
from .layered_cache import ArticleQueryParams, LayeredCache, QueryLayer
from .search_cache import SearchCache, normalize_query
from .stats_cache import StatsCache
from .tag_cache import TagCache
from .trends_cache import TrendsCache

__all__ = [
    "ArticleDetailCache",
    "ArticleQueryParams",
    "CacheInvalidator",
    "DomainCache",
    "FilterCache",
    "LayeredCache",
    "QueryLayer",
    "SearchCache",
    "StatsCache",
    "TagCache",
    "TrendsCache",
    "hash_params",
    "normalize_params",
    "normalize_query",
    "params_key",
    "restore_dates",
]
