"""
Cache Container

Builds and owns every cache-core object of one process: the Redis
facade, circuit breaker, lock, L1/L2 caches, domain caches, loaders,
warmer, memory optimizer, invalidator and health checker.

There are no module-level singletons. An application creates one
container during startup and passes it (or the parts it needs) to its
request handlers; tests create their own with a fake Redis client.

Lifecycle:
    container = CacheContainer(
        favorite_repository=..., view_repository=..., article_repository=...,
        warming_data_source=...,
    )
    await container.startup()
    ...
    await container.shutdown()
"""

from typing import Any

from techtrend_cache.caches.article_detail_cache import ArticleDetailCache
from techtrend_cache.caches.filter_cache import FilterCache
from techtrend_cache.caches.invalidator import CacheInvalidator
from techtrend_cache.caches.layered_cache import LayeredCache
from techtrend_cache.caches.search_cache import SearchCache
from techtrend_cache.caches.stats_cache import StatsCache
from techtrend_cache.caches.tag_cache import TagCache
from techtrend_cache.caches.trends_cache import TrendsCache
from techtrend_cache.config.constants import NAMESPACE_FAVORITES, NAMESPACE_SWR, NAMESPACE_VIEWS
from techtrend_cache.config.settings import Settings, get_settings
from techtrend_cache.core.background import BackgroundTaskRunner
from techtrend_cache.core.interfaces import (
    ArticleRepository,
    FavoriteRepository,
    ViewRepository,
    WarmingDataSource,
)
from techtrend_cache.core.logging.logger import get_logger
from techtrend_cache.core.resilience.circuit_breaker import CircuitBreakerRegistry
from techtrend_cache.dataloader.batch_optimizer import (
    BatchOptimizerConfig,
    BatchOptimizerRegistry,
    QueryKind,
)
from techtrend_cache.dataloader.favorite_loader import FAVORITE_PREFIX, FavoriteLoaderFactory
from techtrend_cache.dataloader.view_loader import VIEW_PREFIX, ViewLoaderFactory
from techtrend_cache.infrastructure.cache.distributed_lock import DistributedLock
from techtrend_cache.infrastructure.cache.fallback_cache import ResilientRedisCache
from techtrend_cache.infrastructure.cache.health import CacheHealthChecker
from techtrend_cache.infrastructure.cache.memory_cache import DataLoaderMemoryCache, MemoryCache
from techtrend_cache.infrastructure.cache.redis_cache import RedisCache
from techtrend_cache.infrastructure.cache.redis_client import RedisClient
from techtrend_cache.infrastructure.cache.swr_strategy import StaleWhileRevalidateCache
from techtrend_cache.infrastructure.cache.two_layer_cache import TwoLayerCacheManager
from techtrend_cache.services.cache_warmer import CacheWarmer
from techtrend_cache.services.memory_optimizer import MemoryOptimizer

logger = get_logger(__name__)

REDIS_BREAKER_NAME = "redis"


class CacheContainer:
    """
    Dependency container for the cache core.

    Repositories and the warming data source are optional: the loaders,
    article detail cache and warmer are only built when their data
    dependency is supplied.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        redis_client: RedisClient | None = None,
        favorite_repository: FavoriteRepository | None = None,
        view_repository: ViewRepository | None = None,
        article_repository: ArticleRepository | None = None,
        warming_data_source: WarmingDataSource | None = None,
    ):
        """
        STAGE-0: Container wiring (no I/O; see startup())
        """
        self.settings = settings or get_settings()
        cache_settings = self.settings.cache
        namespace = cache_settings.CACHE_NAMESPACE

        self.tasks = BackgroundTaskRunner(name="cache-core")
        self.redis = redis_client or RedisClient(self.settings)

        # Resilience
        cb = self.settings.circuit_breaker
        self.breakers = CircuitBreakerRegistry()
        self.redis_breaker = self.breakers.get_breaker(
            REDIS_BREAKER_NAME,
            failure_threshold=cb.CB_FAILURE_THRESHOLD,
            recovery_timeout=cb.CB_RECOVERY_TIMEOUT,
            half_open_requests=cb.CB_HALF_OPEN_REQUESTS,
        )
        lock_settings = self.settings.lock
        self.lock = DistributedLock(
            self.redis,
            retry_interval=lock_settings.LOCK_RETRY_INTERVAL,
            max_wait_time=lock_settings.LOCK_MAX_WAIT_TIME,
            default_ttl=lock_settings.LOCK_DEFAULT_TTL,
        )

        # L1
        self.memory_cache = MemoryCache(
            max_size=cache_settings.CACHE_MEMORY_MAX_SIZE,
            default_ttl=cache_settings.CACHE_MEMORY_TTL,
            cleanup_interval=cache_settings.CACHE_MEMORY_CLEANUP_INTERVAL,
        )
        self.loader_memory_cache = DataLoaderMemoryCache(
            max_size=cache_settings.CACHE_LOADER_MEMORY_MAX_SIZE,
            default_ttl=cache_settings.CACHE_LOADER_L1_TTL,
            cleanup_interval=cache_settings.CACHE_MEMORY_CLEANUP_INTERVAL,
        )

        # Domain caches
        self.stats_cache = StatsCache(self.redis, self.settings, lock=self.lock)
        self.trends_cache = TrendsCache(self.redis, self.settings, lock=self.lock)
        self.search_cache = SearchCache(self.redis, self.settings, lock=self.lock)
        self.tag_cache = TagCache(self.redis, self.settings, lock=self.lock)
        self.filter_cache = FilterCache(self.redis, self.settings, lock=self.lock)
        self.article_detail_cache = (
            ArticleDetailCache(self.redis, article_repository, self.settings, lock=self.lock)
            if article_repository is not None
            else None
        )
        self.layered_cache = LayeredCache(self.redis, self.settings)
        self.swr_cache = StaleWhileRevalidateCache(
            self.redis,
            namespace=f"{namespace}:{NAMESPACE_SWR}",
            ttl=cache_settings.CACHE_SWR_TTL,
            stale_time=cache_settings.CACHE_SWR_STALE_TIME,
            task_runner=self.tasks,
        )

        # DataLoaders
        self.optimizers = BatchOptimizerRegistry(BatchOptimizerConfig.from_settings(self.settings))
        self.favorite_manager = self._two_layer_manager(NAMESPACE_FAVORITES, FAVORITE_PREFIX)
        self.view_manager = self._two_layer_manager(NAMESPACE_VIEWS, VIEW_PREFIX)
        self.favorite_loaders = (
            FavoriteLoaderFactory(
                self.favorite_manager, favorite_repository, self.optimizers.get(QueryKind.FAVORITE)
            )
            if favorite_repository is not None
            else None
        )
        self.view_loaders = (
            ViewLoaderFactory(self.view_manager, view_repository, self.optimizers.get(QueryKind.VIEW))
            if view_repository is not None
            else None
        )

        # Services
        self.warmer = (
            CacheWarmer(
                self.stats_cache,
                self.trends_cache,
                self.search_cache,
                self.lock,
                warming_data_source,
                self.settings,
            )
            if warming_data_source is not None
            else None
        )
        self.memory_optimizer = MemoryOptimizer(
            self.redis,
            caches=[self.stats_cache, self.trends_cache, self.search_cache],
            search_cache=self.search_cache,
            namespace=namespace,
            settings=self.settings,
        )
        self.invalidator = CacheInvalidator(
            self.redis,
            tag_cache=self.tag_cache,
            stats_cache=self.stats_cache,
            search_cache=self.search_cache,
            layered_cache=self.layered_cache,
            favorite_loaders=self.favorite_loaders,
            view_loaders=self.view_loaders,
            settings=self.settings,
        )
        self.health = CacheHealthChecker(
            self.redis,
            circuit_breaker=self.redis_breaker,
            caches={
                "memory": self.memory_cache,
                "stats": self.stats_cache,
                "trends": self.trends_cache,
                "search": self.search_cache,
                "favorites": self.favorite_manager,
                "views": self.view_manager,
            },
        )

        self._started = False

    def _two_layer_manager(self, namespace_suffix: str, prefix: str) -> TwoLayerCacheManager:
        cache_settings = self.settings.cache
        l2 = ResilientRedisCache(
            RedisCache(
                self.redis,
                namespace=f"{cache_settings.CACHE_NAMESPACE}:{namespace_suffix}",
                ttl=cache_settings.CACHE_LOADER_L2_TTL,
            ),
            self.redis_breaker,
            fallback=MemoryCache(
                max_size=cache_settings.CACHE_LOADER_MEMORY_MAX_SIZE,
                default_ttl=cache_settings.CACHE_LOADER_L2_TTL,
            ),
        )
        return TwoLayerCacheManager(
            self.loader_memory_cache,
            l2,
            prefix=prefix,
            l1_ttl=cache_settings.CACHE_LOADER_L1_TTL,
            l2_ttl=cache_settings.CACHE_LOADER_L2_TTL,
            task_runner=self.tasks,
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def startup(self, warm: bool = True, monitor: bool = True) -> None:
        """
        Connect Redis and start the background maintenance.

        STAGE-0.4: Cache core startup

        Raises:
            CacheConnectionError: If Redis stays unreachable after retries
        """
        if self._started:
            return
        logger.info("Starting cache core", stage="0.START", namespace=self.settings.cache.CACHE_NAMESPACE)

        if not self.redis.is_connected:
            await self.redis.connect()

        self.memory_cache.start()
        self.loader_memory_cache.start()

        if warm and self.warmer is not None and self.warmer.enabled:
            await self.warmer.warm_on_startup()
            self.warmer.start_periodic_warming()
        if monitor:
            self.memory_optimizer.start_monitoring()

        self._started = True
        logger.info("Cache core started", stage="0.READY")

    async def shutdown(self) -> None:
        """
        Stop loops, let pending cache writes finish, then disconnect.

        STAGE-6: Cache core shutdown
        """
        logger.info("Shutting down cache core", stage="6.SHUTDOWN")
        if self.warmer is not None:
            await self.warmer.stop_periodic_warming()
        await self.memory_optimizer.stop_monitoring()
        await self.tasks.shutdown()

        self.memory_cache.destroy()
        self.loader_memory_cache.destroy()
        await self.redis.disconnect()

        self._started = False
        logger.info("Cache core stopped", stage="6.DONE")

    async def __aenter__(self) -> "CacheContainer":
        await self.startup()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.shutdown()

    # =========================================================================
    # Introspection
    # =========================================================================

    def get_stats(self) -> dict[str, Any]:
        stats = {
            "memory": self.memory_cache.get_stats(),
            "stats": self.stats_cache.get_stats(),
            "trends": self.trends_cache.get_stats(),
            "search": self.search_cache.get_search_stats(),
            "tags": self.tag_cache.get_stats(),
            "filters": self.filter_cache.get_stats(),
            "layered": self.layered_cache.get_stats(),
            "swr": self.swr_cache.get_stats(),
            "favorites": self.favorite_manager.get_stats(),
            "views": self.view_manager.get_stats(),
            "optimizers": self.optimizers.all_stats(),
            "circuit_breakers": self.breakers.get_all_stats(),
            "background_tasks": self.tasks.get_stats(),
        }
        if self.article_detail_cache is not None:
            stats["article_detail"] = self.article_detail_cache.get_stats()
        return stats
