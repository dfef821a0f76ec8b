"""
Cache Warmer Service

Pre-populates the expensive domain caches so the first visitors after a
deploy (or after entries expire) do not pay for cold queries.

Two entry points:

1. ``warm_on_startup`` - one pass over every category, guarded by a
   distributed lock so only one instance of a multi-process deployment
   does the work
2. ``start_periodic_warming`` - a background loop that wakes every
   WARMER_LOOP_INTERVAL seconds and re-warms each category whose own
   interval has elapsed

Each category (stats, trends, keywords, search) is warmed independently:
a failing query is logged and the remaining categories still run.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Any

from techtrend_cache.caches.search_cache import SearchCache
from techtrend_cache.caches.stats_cache import StatsCache
from techtrend_cache.caches.trends_cache import TrendsCache
from techtrend_cache.config.constants import (
    KEYWORDS_TRENDING_KEY,
    OVERALL_STATS_KEY,
    WARMING_STARTUP_LOCK,
)
from techtrend_cache.config.settings import Settings, get_settings
from techtrend_cache.core.interfaces import WarmingDataSource
from techtrend_cache.core.logging.logger import get_logger
from techtrend_cache.infrastructure.cache.distributed_lock import DistributedLock

logger = get_logger(__name__)

TREND_PERIODS = (7, 30, 90)
SEARCH_QUERIES = ("javascript", "typescript", "react", "nodejs", "ai")
SEARCH_LIMIT = 20

WARMING_TARGETS = ("stats", "trends", "keywords", "search")


@dataclass
class WarmingTarget:
    """Schedule entry for one warming category."""

    name: str
    interval: int
    priority: int
    enabled: bool = True
    last_run: float | None = None

    def is_due(self, now: float) -> bool:
        if not self.enabled:
            return False
        return self.last_run is None or now - self.last_run >= self.interval


class CacheWarmer:
    """
    Startup and periodic warming of stats, trends, keywords and search.

    Usage:
        warmer = CacheWarmer(stats_cache, trends_cache, search_cache, lock, data_source)
        await warmer.warm_on_startup()
        warmer.start_periodic_warming()
        ...
        await warmer.stop_periodic_warming()
    """

    def __init__(
        self,
        stats_cache: StatsCache,
        trends_cache: TrendsCache,
        search_cache: SearchCache,
        lock: DistributedLock,
        data_source: WarmingDataSource,
        settings: Settings | None = None,
    ):
        warmer_settings = (settings or get_settings()).warmer
        self.stats_cache = stats_cache
        self.trends_cache = trends_cache
        self.search_cache = search_cache
        self.lock = lock
        self.data_source = data_source

        self.enabled = warmer_settings.WARMER_ENABLED
        self.lock_ttl = warmer_settings.WARMER_LOCK_TTL
        self.loop_interval = warmer_settings.WARMER_LOOP_INTERVAL
        self.targets = {
            "stats": WarmingTarget("stats", warmer_settings.WARMER_STATS_INTERVAL, priority=1),
            "trends": WarmingTarget("trends", warmer_settings.WARMER_TRENDS_INTERVAL, priority=2),
            "keywords": WarmingTarget("keywords", warmer_settings.WARMER_KEYWORDS_INTERVAL, priority=3),
            "search": WarmingTarget("search", warmer_settings.WARMER_SEARCH_INTERVAL, priority=4),
        }
        self._warmers: dict[str, Callable[[], Awaitable[bool]]] = {
            "stats": self.warm_stats,
            "trends": self.warm_trends,
            "keywords": self.warm_keywords,
            "search": self.warm_search_queries,
        }

        self._warming_count = 0
        self._running = False
        self._loop_task: asyncio.Task | None = None

    @property
    def is_warming(self) -> bool:
        return self._warming_count > 0

    # =========================================================================
    # Startup warming
    # =========================================================================

    async def warm_on_startup(self) -> bool:
        """
        Warm every category once, in priority order.

        STAGE-WARM.1: Startup warming

        Returns:
            False when another instance holds the warming lock
        """
        token = await self.lock.acquire(WARMING_STARTUP_LOCK, self.lock_ttl)
        if token is None:
            logger.info("Startup warming already running elsewhere, skipping", stage="WARM.SKIP")
            return False

        logger.info("Starting startup cache warming", stage="WARM.START")
        started = time.perf_counter()
        try:
            for target in sorted(self.targets.values(), key=lambda t: t.priority):
                if target.enabled:
                    await self._warm(target.name)
            logger.info(
                "Startup cache warming completed",
                stage="WARM.DONE",
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
            )
            return True
        finally:
            await self.lock.release(WARMING_STARTUP_LOCK, token)

    # =========================================================================
    # Category warmers
    # =========================================================================

    async def _warm(self, name: str, at: float | None = None) -> bool:
        self._warming_count += 1
        try:
            ok = await self._warmers[name]()
        finally:
            self._warming_count -= 1
        self.targets[name].last_run = time.monotonic() if at is None else at
        return ok

    async def _guarded(self, category: str, operation: Callable[[], Awaitable[None]]) -> bool:
        try:
            await operation()
        except Exception as e:
            logger.error(
                "Cache warming failed",
                stage="WARM.ERROR",
                category=category,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False
        logger.info("Cache warmed", stage="WARM.CATEGORY", category=category)
        return True

    async def warm_stats(self) -> bool:
        async def run() -> None:
            await self.stats_cache.set(OVERALL_STATS_KEY, await self.data_source.fetch_stats())

        return await self._guarded("stats", run)

    async def warm_trends(self) -> bool:
        async def run() -> None:
            for days in TREND_PERIODS:
                key = self.trends_cache.generate_key({"days": days, "tag": None})
                await self.trends_cache.set(key, await self.data_source.fetch_trends(days))

        return await self._guarded("trends", run)

    async def warm_keywords(self) -> bool:
        async def run() -> None:
            data = await self.data_source.fetch_trending_keywords()
            await self.trends_cache.set(KEYWORDS_TRENDING_KEY, data)

        return await self._guarded("keywords", run)

    async def warm_search_queries(self) -> bool:
        async def run() -> None:
            for query in SEARCH_QUERIES:
                key = self.search_cache.generate_key({"q": query, "limit": SEARCH_LIMIT})
                results = await self.data_source.fetch_search_results(query, limit=SEARCH_LIMIT)
                await self.search_cache.set(key, results)

        return await self._guarded("search", run)

    # =========================================================================
    # Periodic warming
    # =========================================================================

    def start_periodic_warming(self) -> None:
        if self._loop_task is not None and not self._loop_task.done():
            logger.info("Periodic warming already started", stage="WARM.PERIODIC")
            return
        self._running = True
        self._loop_task = asyncio.create_task(self._periodic_loop(), name="cache-warmer")
        logger.info("Periodic warming started", stage="WARM.PERIODIC", interval=self.loop_interval)

    async def stop_periodic_warming(self) -> None:
        self._running = False
        task, self._loop_task = self._loop_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Periodic warming stopped", stage="WARM.PERIODIC")

    @property
    def periodic_active(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    async def _periodic_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.loop_interval)
            try:
                await self.run_due_targets()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("Periodic warming iteration failed", stage="WARM.ERROR", error=str(e))

    async def run_due_targets(self, now: float | None = None) -> list[str]:
        """Warm every category whose interval has elapsed. Returns the names run."""
        now = time.monotonic() if now is None else now
        due = [t.name for t in self.targets.values() if t.is_due(now)]
        for name in due:
            # claim the slot before running so an overlapping iteration skips it
            self.targets[name].last_run = now
        if due:
            logger.info("Running periodic warming", stage="WARM.PERIODIC", targets=due)
            await asyncio.gather(*(self._warm(name, at=now) for name in due))
        return due

    # =========================================================================
    # Manual warming and status
    # =========================================================================

    async def warm_manual(self, targets: Iterable[str] | None = None) -> dict[str, bool]:
        """
        Warm the named categories now (all of them by default).

        Unknown names are ignored.

        Returns:
            ``{category: succeeded}`` for each category run
        """
        requested = [t for t in (targets or WARMING_TARGETS) if t in self._warmers]
        logger.info("Manual warming", stage="WARM.MANUAL", targets=requested)
        outcomes = await asyncio.gather(*(self._warm(name) for name in requested))
        return dict(zip(requested, outcomes))

    def get_status(self) -> dict[str, Any]:
        return {
            "is_warming": self.is_warming,
            "periodic_warming_active": self.periodic_active,
            "config": {
                name: {
                    "enabled": target.enabled,
                    "priority": target.priority,
                    "interval": target.interval,
                    "last_run": target.last_run,
                }
                for name, target in self.targets.items()
            },
        }
