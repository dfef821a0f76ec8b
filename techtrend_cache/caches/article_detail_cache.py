"""
Article detail page cache.

Caches an article with its source and tags, plus the related-articles list
shown under it. JSON has no datetime type, so timestamps come back from
Redis as ISO strings; they are converted back to ``datetime`` on read so
cached and uncached results look the same to callers.
"""

from collections.abc import Sequence
from datetime import datetime
from typing import Any

from techtrend_cache.caches.base import DomainCache
from techtrend_cache.config.constants import NAMESPACE_ARTICLE_DETAIL
from techtrend_cache.config.settings import Settings
from techtrend_cache.core.interfaces import ArticleRepository
from techtrend_cache.core.logging.logger import get_logger
from techtrend_cache.infrastructure.cache.distributed_lock import DistributedLock
from techtrend_cache.infrastructure.cache.redis_client import RedisClient

logger = get_logger(__name__)

ARTICLE_DATE_FIELDS = ("published_at", "created_at", "updated_at")
RELATION_DATE_FIELDS = ("created_at", "updated_at")

RELATED_MIN_QUALITY = 30
RELATED_LIMIT = 10


def _restore_fields(record: dict[str, Any], fields: Sequence[str]) -> dict[str, Any]:
    restored = dict(record)
    for field in fields:
        value = restored.get(field)
        if isinstance(value, str):
            try:
                restored[field] = datetime.fromisoformat(value)
            except ValueError:
                pass
    return restored


def restore_dates(article: dict[str, Any]) -> dict[str, Any]:
    """Turn ISO date strings back into datetimes on an article and its relations."""
    restored = _restore_fields(article, ARTICLE_DATE_FIELDS)
    if isinstance(restored.get("source"), dict):
        restored["source"] = _restore_fields(restored["source"], RELATION_DATE_FIELDS)
    if isinstance(restored.get("tags"), list):
        restored["tags"] = [
            _restore_fields(tag, RELATION_DATE_FIELDS) if isinstance(tag, dict) else tag
            for tag in restored["tags"]
        ]
    return restored


class ArticleDetailCache(DomainCache):
    namespace_suffix = NAMESPACE_ARTICLE_DETAIL
    key_prefix = "article"
    ttl_setting = "CACHE_ARTICLE_DETAIL_TTL"

    def __init__(
        self,
        redis_client: RedisClient,
        repository: ArticleRepository,
        settings: Settings | None = None,
        ttl: int | None = None,
        lock: DistributedLock | None = None,
    ):
        super().__init__(redis_client, settings=settings, ttl=ttl, lock=lock)
        self.repository = repository

    @staticmethod
    def detail_key(article_id: str) -> str:
        return f"article:{article_id}:with-relations"

    @staticmethod
    def related_key(article_id: str, tag_ids: Sequence[str]) -> str:
        return f"related:{article_id}:{','.join(sorted(tag_ids))}"

    async def get_article_with_relations(self, article_id: str) -> dict[str, Any] | None:
        key = self.detail_key(article_id)
        cached = await self.get(key)
        if cached is not None:
            return restore_dates(cached)

        article = await self.repository.get_article_with_relations(article_id)
        if article is None:
            return None
        await self.set(key, article)
        return article

    async def get_related_articles(self, article_id: str, tag_ids: Sequence[str]) -> list[dict[str, Any]]:
        """
        Articles sharing tags with ``article_id``, best matches first.

        An article without tags has no related articles; no I/O is done.
        """
        if not tag_ids:
            return []

        key = self.related_key(article_id, tag_ids)
        cached = await self.get(key)
        if cached is not None:
            return [restore_dates(item) for item in cached]

        related = await self.repository.find_related_articles(
            article_id, sorted(tag_ids), min_quality=RELATED_MIN_QUALITY, limit=RELATED_LIMIT
        )
        await self.set(key, related)
        return related

    async def invalidate_article(self, article_id: str) -> int:
        removed = int(await self.delete(self.detail_key(article_id)))
        removed += await self.delete_by_pattern(f"related:{article_id}:*")
        logger.debug("Article detail invalidated", stage="INV.ARTICLE", article_id=article_id, removed=removed)
        return removed
