"""
Article list cache split by audience.

Three Redis namespaces with different lifetimes:

    public  (<ns>:l1:public, 1h)   plain listing, same for every visitor
    user    (<ns>:l2:user, 15min)  listing filtered by the user's read state
    search  (<ns>:l3:search, 10min) keyword search results

A query is routed by its parameters; queries that fit no layer (e.g. tag
filters) are never cached.
"""

import re
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any, TypeVar

from pydantic import BaseModel

from techtrend_cache.config.constants import (
    NAMESPACE_LAYERED_PUBLIC,
    NAMESPACE_LAYERED_SEARCH,
    NAMESPACE_LAYERED_USER,
)
from techtrend_cache.config.settings import Settings, get_settings
from techtrend_cache.core.logging.logger import get_logger
from techtrend_cache.infrastructure.cache.redis_cache import RedisCache
from techtrend_cache.infrastructure.cache.redis_client import RedisClient

logger = get_logger(__name__)

T = TypeVar("T")

PUBLIC_TTL = 3600
USER_TTL = 900
SEARCH_TTL = 600

# ASCII and full-width (U+3000) spaces separate search keywords
_KEYWORD_SEPARATOR = re.compile(r"[\s　]+")


class ArticleQueryParams(BaseModel):
    page: int = 1
    limit: int = 20
    sort_by: str = "published_at"
    category: str | None = None
    user_id: str | None = None
    read_filter: str | None = None
    search: str | None = None
    tag: str | None = None
    tags: str | None = None


class QueryLayer(str, Enum):
    PUBLIC = "public"
    USER = "user"
    SEARCH = "search"
    NONE = "none"


def classify(params: ArticleQueryParams) -> QueryLayer:
    if not params.search and not params.read_filter and not params.user_id and not params.tags and not params.tag:
        return QueryLayer.PUBLIC
    if not params.search and params.user_id is not None and params.read_filter in ("read", "unread"):
        return QueryLayer.USER
    if params.search:
        return QueryLayer.SEARCH
    return QueryLayer.NONE


def _join_sorted(values: dict[str, Any]) -> str:
    return ":".join(f"{k}:{v}" for k, v in sorted(values.items()))


def build_key(params: ArticleQueryParams, layer: QueryLayer) -> str | None:
    category = params.category or "all"
    if layer == QueryLayer.PUBLIC:
        return "articles:basic:" + _join_sorted(
            {"page": params.page, "limit": params.limit, "sort_by": params.sort_by, "category": category}
        )
    if layer == QueryLayer.USER:
        return f"user:{params.user_id}:articles:" + _join_sorted(
            {
                "user_id": params.user_id,
                "read_filter": params.read_filter or "all",
                "page": params.page,
                "limit": params.limit,
                "sort_by": params.sort_by,
            }
        )
    if layer == QueryLayer.SEARCH:
        keywords = sorted(k for k in _KEYWORD_SEPARATOR.split(params.search.strip()) if k)
        return "search:" + _join_sorted(
            {
                "search": ",".join(keywords),
                "page": params.page,
                "limit": params.limit,
                "sort_by": params.sort_by,
                "category": category,
            }
        )
    return None


class LayeredCache:
    def __init__(self, redis_client: RedisClient, settings: Settings | None = None):
        namespace = (settings or get_settings()).cache.CACHE_NAMESPACE
        self._layers = {
            QueryLayer.PUBLIC: RedisCache(redis_client, f"{namespace}:{NAMESPACE_LAYERED_PUBLIC}", PUBLIC_TTL),
            QueryLayer.USER: RedisCache(redis_client, f"{namespace}:{NAMESPACE_LAYERED_USER}", USER_TTL),
            QueryLayer.SEARCH: RedisCache(redis_client, f"{namespace}:{NAMESPACE_LAYERED_SEARCH}", SEARCH_TTL),
        }

    def layer(self, layer: QueryLayer) -> RedisCache:
        return self._layers[layer]

    async def get_articles(
        self,
        params: ArticleQueryParams,
        fetcher: Callable[[], Awaitable[T]] | None = None,
    ) -> T | None:
        """
        Return the cached listing for ``params``.

        With a fetcher, a miss is filled read-through. Uncacheable queries
        go straight to the fetcher (or return None without one).
        """
        layer = classify(params)
        if layer == QueryLayer.NONE:
            logger.debug("Query not cacheable", stage="L2.LAYER", params=params.model_dump(exclude_none=True))
            return await fetcher() if fetcher else None

        key = build_key(params, layer)
        cache = self._layers[layer]
        logger.debug("Checking layered cache", stage="L2.LAYER", layer=layer.value, key=key)
        if fetcher is not None:
            return await cache.get_or_set(key, fetcher)
        return await cache.get(key)

    async def set_articles(self, params: ArticleQueryParams, data: Any) -> None:
        layer = classify(params)
        if layer != QueryLayer.NONE:
            await self._layers[layer].set(build_key(params, layer), data)

    def get_stats(self) -> dict[str, Any]:
        per_layer = {
            layer.value: {"namespace": cache.namespace, "ttl": cache.default_ttl, **cache.get_stats()}
            for layer, cache in self._layers.items()
        }
        hits = sum(s["hits"] for s in per_layer.values())
        misses = sum(s["misses"] for s in per_layer.values())
        total = hits + misses
        return {
            **per_layer,
            "overall": {
                "total_hits": hits,
                "total_misses": misses,
                "overall_hit_rate": round(hits / total * 100) if total else 0,
            },
        }

    def reset_stats(self) -> None:
        for cache in self._layers.values():
            cache.reset_stats()
