"""
Favorite status loader.

Cache keys: ``favorite:{user_id}:{article_id}`` in the
``<namespace>:favorites`` Redis namespace (L1 30s, L2 60s).
"""

from techtrend_cache.core.interfaces import FavoriteRepository
from techtrend_cache.core.logging.logger import get_logger
from techtrend_cache.dataloader.batch_optimizer import BatchOptimizer
from techtrend_cache.dataloader.models import FavoriteStatus
from techtrend_cache.dataloader.user_loader import UserStatusLoaderFactory
from techtrend_cache.infrastructure.cache.two_layer_cache import TwoLayerCacheManager

logger = get_logger(__name__)

FAVORITE_PREFIX = "favorite"


class FavoriteLoaderFactory(UserStatusLoaderFactory[FavoriteStatus]):
    """
    Usage:
        loader = factory.create(user_id)
        statuses = await loader.load_many(article_ids)   # one DB query at most
        await factory.invalidate(user_id, article_id)    # after toggling a favorite
    """

    model = FavoriteStatus
    loader_name = "favorite-loader"

    def __init__(
        self,
        manager: TwoLayerCacheManager,
        repository: FavoriteRepository,
        optimizer: BatchOptimizer,
        batch_delay: float = 0.001,
    ):
        super().__init__(manager, optimizer, batch_delay)
        self.repository = repository

    async def fetch_statuses(self, user_id: str, article_ids: list[str]) -> dict[str, FavoriteStatus]:
        favorites = await self.repository.find_favorites(user_id, article_ids)
        return {
            article_id: FavoriteStatus(
                article_id=article_id,
                is_favorited=article_id in favorites,
                favorited_at=favorites.get(article_id),
            )
            for article_id in article_ids
        }

    async def invalidate(self, user_id: str, article_id: str) -> None:
        await super().invalidate(user_id, article_id)
        logger.debug(
            "Favorite status invalidated", stage="INV.FAVORITE", user_id=user_id, article_id=article_id
        )
