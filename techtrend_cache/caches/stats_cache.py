from techtrend_cache.caches.base import DomainCache
from techtrend_cache.config.constants import NAMESPACE_STATS
from techtrend_cache.config.settings import Settings, get_settings
from techtrend_cache.core.logging.logger import get_logger
from techtrend_cache.infrastructure.cache.distributed_lock import DistributedLock
from techtrend_cache.infrastructure.cache.redis_client import RedisClient

logger = get_logger(__name__)


class StatsCache(DomainCache):
    """Aggregate statistics (article / source counts). Default TTL 1 hour."""

    namespace_suffix = NAMESPACE_STATS
    key_prefix = "stats"
    ttl_setting = "CACHE_STATS_TTL"

    def __init__(
        self,
        redis_client: RedisClient,
        settings: Settings | None = None,
        ttl: int | None = None,
        lock: DistributedLock | None = None,
    ):
        settings = settings or get_settings()
        super().__init__(redis_client, settings=settings, ttl=ttl, lock=lock)
        self.max_ttl = settings.cache.CACHE_STATS_MAX_TTL

    def set_custom_ttl(self, ttl: int) -> int:
        """Change the default TTL, clamped to [1, max_ttl]. Returns the applied value."""
        applied = max(1, min(int(ttl), self.max_ttl))
        if applied != ttl:
            logger.warning("Stats TTL clamped", stage="L2.TTL", requested=ttl, applied=applied)
        self.default_ttl = applied
        return applied
