from techtrend_cache.caches.base import DomainCache
from techtrend_cache.config.constants import NAMESPACE_TAGS
from techtrend_cache.core.logging.logger import get_logger

logger = get_logger(__name__)


class TagCache(DomainCache):
    """
    Tag lists and per-tag data. Default TTL 30 minutes.

    Per-tag entries live under ``tag:{tag_id}``; hashed list queries under
    ``tags:<hash>``. Changing one tag invalidates its own entries and every
    list, since any list may contain it.
    """

    namespace_suffix = NAMESPACE_TAGS
    key_prefix = "tags"
    ttl_setting = "CACHE_TAGS_TTL"

    @staticmethod
    def tag_key(tag_id: str, suffix: str | None = None) -> str:
        return f"tag:{tag_id}:{suffix}" if suffix else f"tag:{tag_id}"

    async def invalidate_tag(self, tag_id: str) -> int:
        deleted = await self.delete(self.tag_key(tag_id))
        removed = int(deleted)
        removed += await self.delete_by_pattern(self.tag_key(tag_id, "*"))
        removed += await self.delete_by_pattern(f"{self.key_prefix}:*")
        logger.debug("Tag invalidated", stage="INV.TAG", tag_id=tag_id, removed=removed)
        return removed
