"""
Article view / read status loader.

Cache keys: ``view:{user_id}:{article_id}`` in the ``<namespace>:views``
Redis namespace (L1 30s, L2 60s). Status changes are written through to
both layers, so a user sees their own read marks immediately.
"""

from datetime import datetime, timezone

from techtrend_cache.core.interfaces import ViewRecord, ViewRepository
from techtrend_cache.core.logging.logger import get_logger
from techtrend_cache.dataloader.batch_optimizer import BatchOptimizer
from techtrend_cache.dataloader.models import ViewStatus
from techtrend_cache.dataloader.user_loader import UserStatusLoaderFactory
from techtrend_cache.infrastructure.cache.two_layer_cache import TwoLayerCacheManager

logger = get_logger(__name__)

VIEW_PREFIX = "view"


def _status_from_record(record: ViewRecord | None, article_id: str) -> ViewStatus:
    if record is None:
        return ViewStatus(article_id=article_id)
    return ViewStatus(
        article_id=article_id,
        is_viewed=True,
        is_read=record.is_read,
        viewed_at=record.viewed_at,
        read_at=record.read_at,
    )


class ViewLoaderFactory(UserStatusLoaderFactory[ViewStatus]):
    model = ViewStatus
    loader_name = "view-loader"

    def __init__(
        self,
        manager: TwoLayerCacheManager,
        repository: ViewRepository,
        optimizer: BatchOptimizer,
        batch_delay: float = 0.001,
    ):
        super().__init__(manager, optimizer, batch_delay)
        self.repository = repository

    async def fetch_statuses(self, user_id: str, article_ids: list[str]) -> dict[str, ViewStatus]:
        views = await self.repository.find_views(user_id, article_ids)
        return {
            article_id: _status_from_record(views.get(article_id), article_id)
            for article_id in article_ids
        }

    async def update_view_status(
        self,
        user_id: str,
        article_id: str,
        is_read: bool | None = None,
        read_at: datetime | None = None,
        viewed_at: datetime | None = None,
    ) -> ViewStatus:
        """
        Persist a view change and write the new status through both layers.

        A first view without ``viewed_at`` is stamped with the current time.
        """
        record = await self.repository.upsert_view(
            user_id,
            article_id,
            is_read=is_read,
            read_at=read_at,
            viewed_at=viewed_at or datetime.now(timezone.utc),
        )
        status = _status_from_record(record, article_id)
        await self.manager.prime(self.cache_key(user_id, article_id), status.model_dump(mode="json"))
        logger.debug("View status updated", stage="DL.WRITE", user_id=user_id, article_id=article_id)
        return status
