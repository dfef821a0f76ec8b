"""
Cache invalidation after database writes.

Mutation paths (article import, tag edits, favorite toggles, ...) call one
of the ``on_*`` hooks after a successful commit. Each hook clears every
cache that may hold the changed rows. All patterns are matched inside the
application namespace only, so other tenants of the same Redis are never
touched.

Invalidation is best effort: a failed clear is logged and the hook
returns normally, since the write it follows has already succeeded and
stale entries expire on their own TTL.
"""

import asyncio
from collections.abc import Awaitable
from typing import Any, Literal

from techtrend_cache.caches.layered_cache import LayeredCache
from techtrend_cache.caches.search_cache import SearchCache
from techtrend_cache.caches.stats_cache import StatsCache
from techtrend_cache.caches.tag_cache import TagCache
from techtrend_cache.config.constants import (
    NAMESPACE_API,
    NAMESPACE_ARTICLES,
    NAMESPACE_LAYERED_PUBLIC,
    NAMESPACE_LAYERED_SEARCH,
    NAMESPACE_LAYERED_USER,
    NAMESPACE_RELATED,
    NAMESPACE_TAG_CLOUD,
)
from techtrend_cache.config.settings import Settings, get_settings
from techtrend_cache.core.logging.logger import get_logger
from techtrend_cache.dataloader.user_loader import UserStatusLoaderFactory
from techtrend_cache.infrastructure.cache.redis_cache import RedisCache
from techtrend_cache.infrastructure.cache.redis_client import RedisClient

logger = get_logger(__name__)

UserCacheKind = Literal["favorites", "read_status", "recommendations", "all"]

ARTICLES_TTL = 300
RELATED_TTL = 600
TAG_CLOUD_TTL = 1800

TITLE_FIELDS = frozenset({"title", "summary", "detailed_summary"})
LISTING_FIELDS = frozenset({"category", "source_id"})


class CacheInvalidator:
    def __init__(
        self,
        redis_client: RedisClient,
        tag_cache: TagCache,
        stats_cache: StatsCache,
        search_cache: SearchCache,
        layered_cache: LayeredCache,
        favorite_loaders: UserStatusLoaderFactory | None = None,
        view_loaders: UserStatusLoaderFactory | None = None,
        settings: Settings | None = None,
    ):
        namespace = (settings or get_settings()).cache.CACHE_NAMESPACE
        self.root = RedisCache(redis_client, namespace)
        self.article_cache = RedisCache(redis_client, f"{namespace}:{NAMESPACE_ARTICLES}", ARTICLES_TTL)
        self.related_cache = RedisCache(redis_client, f"{namespace}:{NAMESPACE_RELATED}", RELATED_TTL)
        self.tag_cloud_cache = RedisCache(redis_client, f"{namespace}:{NAMESPACE_TAG_CLOUD}", TAG_CLOUD_TTL)
        self.tag_cache = tag_cache
        self.stats_cache = stats_cache
        self.search_cache = search_cache
        self.layered_cache = layered_cache
        self.favorite_loaders = favorite_loaders
        self.view_loaders = view_loaders

    async def _run(self, event: str, *operations: Awaitable[Any], **context) -> bool:
        """Run clears concurrently; log every failure. Returns True when all succeeded."""
        results = await asyncio.gather(*operations, return_exceptions=True)
        failures = [r for r in results if isinstance(r, Exception)]
        for error in failures:
            logger.error(
                "Cache invalidation failed",
                stage="INV.ERROR",
                event=event,
                error=str(error),
                error_type=type(error).__name__,
                **context,
            )
        return not failures

    def _clear(self, pattern: str) -> Awaitable[int]:
        return self.root.delete_by_pattern(pattern)

    # =========================================================================
    # Articles
    # =========================================================================

    async def on_article_created(
        self,
        article_id: str | None = None,
        category: str | None = None,
        source_id: str | None = None,
    ) -> bool:
        logger.info("Invalidating caches on article create", stage="INV.CREATE", article_id=article_id)
        operations = [
            self.article_cache.clear(),
            self.tag_cloud_cache.clear(),
            self._clear(f"{NAMESPACE_API}:articles:*"),
            self._clear(f"{NAMESPACE_API}:lightweight:*"),
            self._clear(f"{NAMESPACE_LAYERED_PUBLIC}:*"),
        ]
        if category:
            operations.append(self._clear(f"*:category:{category}:*"))
        if source_id:
            operations.append(self._clear(f"*:source:{source_id}:*"))
            operations.append(self._clear(f"*:sources:*{source_id}*"))
        return await self._run("article_created", *operations, article_id=article_id)

    async def on_article_updated(self, article_id: str, changed_fields: set[str] | None = None) -> bool:
        """
        Clear caches holding ``article_id``.

        Listing caches are cleared too when the category or source changed,
        search caches when the text changed.
        """
        changed = set(changed_fields or ())
        logger.info(
            "Invalidating caches on article update",
            stage="INV.UPDATE",
            article_id=article_id,
            changed_fields=sorted(changed),
        )
        operations = [
            self.article_cache.clear(),
            self.related_cache.delete_by_pattern(f"related:{article_id}:*"),
            self._clear(f"*:article:{article_id}:*"),
            self._clear(f"*:{article_id}"),
        ]
        if changed & LISTING_FIELDS:
            operations.append(self._invalidate_listings())
        if changed & TITLE_FIELDS:
            operations.append(self._invalidate_search())
        return await self._run("article_updated", *operations, article_id=article_id)

    async def on_article_deleted(self, article_id: str) -> bool:
        logger.info("Invalidating caches on article delete", stage="INV.DELETE", article_id=article_id)
        updated = await self.on_article_updated(article_id)
        operations = [self.stats_cache.clear()]
        for loaders in (self.favorite_loaders, self.view_loaders):
            if loaders is not None:
                operations.append(loaders.invalidate_article(article_id))
        cleared = await self._run("article_deleted", *operations, article_id=article_id)
        return updated and cleared

    async def _invalidate_listings(self) -> int:
        removed = await self._clear(f"{NAMESPACE_API}:articles:basic:*")
        removed += await self._clear(f"{NAMESPACE_API}:lightweight:articles:basic:*")
        removed += await self._clear(f"{NAMESPACE_LAYERED_PUBLIC}:*")
        return removed

    async def _invalidate_search(self) -> int:
        removed = await self._clear(f"{NAMESPACE_LAYERED_SEARCH}:*")
        removed += await self.search_cache.clear()
        return removed

    # =========================================================================
    # Tags, sources, bulk import
    # =========================================================================

    async def on_tag_updated(self, tag_id: str | None = None) -> bool:
        tag_clear = self.tag_cache.invalidate_tag(tag_id) if tag_id else self.tag_cache.clear()
        return await self._run(
            "tag_updated",
            tag_clear,
            self.tag_cloud_cache.clear(),
            self.article_cache.clear(),
            tag_id=tag_id,
        )

    async def on_source_updated(self, source_id: str | None = None) -> bool:
        operations = [self.article_cache.clear()]
        if source_id:
            operations.append(self._clear(f"*:source:{source_id}:*"))
        else:
            operations.append(self._clear("*:source:*"))
        return await self._run("source_updated", *operations, source_id=source_id)

    async def on_bulk_import(self) -> bool:
        logger.info("Invalidating caches after bulk import", stage="INV.BULK")
        return await self._run(
            "bulk_import",
            self.article_cache.clear(),
            self.related_cache.clear(),
            self.tag_cloud_cache.clear(),
            self.tag_cache.clear(),
            self.stats_cache.clear(),
            self._invalidate_listings(),
        )

    # =========================================================================
    # Per-user data
    # =========================================================================

    async def invalidate_user_cache(self, user_id: str, kind: UserCacheKind = "all") -> bool:
        """Drop cached favorites / read state / recommendations of one user."""
        logger.info("Invalidating user cache", stage="INV.USER", user_id=user_id, kind=kind)
        operations = []
        if kind in ("favorites", "all") and self.favorite_loaders is not None:
            operations.append(self.favorite_loaders.invalidate_user(user_id))
        if kind in ("read_status", "all") and self.view_loaders is not None:
            operations.append(self.view_loaders.invalidate_user(user_id))
        if kind == "all":
            operations.append(self._clear(f"{NAMESPACE_LAYERED_USER}:user:{user_id}:*"))
        else:
            operations.append(self._clear(f"{NAMESPACE_LAYERED_USER}:user:{user_id}:{kind}:*"))
        if kind in ("read_status", "all"):
            # read filters change the user's listing pages
            operations.append(self._clear(f"{NAMESPACE_LAYERED_USER}:user:{user_id}:articles:*"))
        if kind in ("recommendations", "all"):
            operations.append(self._clear(f"recommendations:{user_id}:*"))
        return await self._run("user_cache", *operations, user_id=user_id, kind=kind)

    async def invalidate_all(self) -> bool:
        logger.warning("Invalidating ALL caches", stage="INV.ALL", namespace=self.root.namespace)
        operations = [self._clear("*")]
        if self.favorite_loaders is not None:
            operations.append(self.favorite_loaders.manager.invalidate_pattern("*"))
        if self.view_loaders is not None:
            operations.append(self.view_loaders.manager.invalidate_pattern("*"))
        ok = await self._run("all", *operations)
        if ok:
            logger.info("All caches invalidated", stage="INV.ALL")
        return ok
