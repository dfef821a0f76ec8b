"""
Memory Optimizer Service

Watches Redis memory usage and sheds cache load before the server starts
evicting on its own.

Thresholds (percent of maxmemory):

    >= MEMORY_CRITICAL_THRESHOLD (90)  emergency: evict a batch of namespace
                                       keys, halve TTLs, drop search results
    >= MEMORY_ALERT_THRESHOLD (75)     normal: shorten TTLs by the configured
    >= MEMORY_MAX_USAGE_PERCENT (80)   factor, give TTL-less keys an expiry,
                                       reset cache stats

Only keys under the application namespace are ever touched.
"""

import asyncio
from collections.abc import Sequence
from dataclasses import asdict, dataclass
from typing import Any

from techtrend_cache.config.constants import SCAN_COUNT
from techtrend_cache.config.settings import Settings, get_settings
from techtrend_cache.core.exceptions import CacheError, ConfigurationError
from techtrend_cache.core.logging.logger import get_logger
from techtrend_cache.infrastructure.cache.redis_cache import RedisCache
from techtrend_cache.infrastructure.cache.redis_client import RedisClient

logger = get_logger(__name__)

EMERGENCY_TTL_FACTOR = 0.5
BYTE_UNITS = ("Bytes", "KB", "MB", "GB", "TB")


@dataclass
class MemoryInfo:
    used: int
    peak: int
    max_memory: int
    fragmentation: float

    @property
    def usage_percent(self) -> float:
        return self.used / self.max_memory * 100 if self.max_memory else 0.0


@dataclass
class OptimizerConfig:
    check_interval: int
    max_usage_percent: float
    alert_threshold: float
    critical_threshold: float
    min_ttl: int
    max_ttl: int
    ttl_factor: float
    default_key_ttl: int
    eviction_batch: int
    fallback_max_bytes: int

    @classmethod
    def from_settings(cls, settings: Settings) -> "OptimizerConfig":
        mem = settings.memory_optimizer
        return cls(
            check_interval=mem.MEMORY_CHECK_INTERVAL,
            max_usage_percent=mem.MEMORY_MAX_USAGE_PERCENT,
            alert_threshold=mem.MEMORY_ALERT_THRESHOLD,
            critical_threshold=mem.MEMORY_CRITICAL_THRESHOLD,
            min_ttl=mem.MEMORY_MIN_TTL,
            max_ttl=mem.MEMORY_MAX_TTL,
            ttl_factor=mem.MEMORY_TTL_FACTOR,
            default_key_ttl=mem.MEMORY_DEFAULT_KEY_TTL,
            eviction_batch=mem.MEMORY_EVICTION_BATCH,
            fallback_max_bytes=mem.MEMORY_FALLBACK_MAX_BYTES,
        )


def format_bytes(value: int) -> str:
    """Human readable size, e.g. ``1536 -> '1.5 KB'``."""
    if value <= 0:
        return "0 Bytes"
    scaled = float(value)
    unit = 0
    while scaled >= 1024 and unit < len(BYTE_UNITS) - 1:
        scaled /= 1024
        unit += 1
    return f"{round(scaled, 2):g} {BYTE_UNITS[unit]}"


class MemoryOptimizer:
    """
    Periodic Redis memory check with graded responses.

    Usage:
        optimizer = MemoryOptimizer(redis_client, [stats_cache, trends_cache], search_cache)
        optimizer.start_monitoring()
        ...
        await optimizer.stop_monitoring()
    """

    def __init__(
        self,
        redis_client: RedisClient,
        caches: Sequence[RedisCache],
        search_cache: RedisCache | None = None,
        namespace: str | None = None,
        settings: Settings | None = None,
    ):
        """
        Args:
            redis_client: Shared Redis facade
            caches: Caches whose default TTL is adjusted and stats reset
            search_cache: Low-priority cache dropped in an emergency
            namespace: Key namespace the optimizer may touch
            settings: Application settings
        """
        settings = settings or get_settings()
        self._redis = redis_client
        self.caches = list(caches)
        self.search_cache = search_cache
        self.namespace = namespace or settings.cache.CACHE_NAMESPACE
        self.config = OptimizerConfig.from_settings(settings)

        self._monitor_task: asyncio.Task | None = None
        self._checking = False
        self._last_usage: float | None = None

    @staticmethod
    def format_bytes(value: int) -> str:
        return format_bytes(value)

    # =========================================================================
    # Monitoring loop
    # =========================================================================

    def start_monitoring(self) -> None:
        """Check once immediately, then every ``check_interval`` seconds."""
        if self.is_monitoring:
            logger.info("Memory monitoring already started", stage="MEM.MONITOR")
            return
        self._monitor_task = asyncio.create_task(self._monitor_loop(), name="memory-optimizer")
        logger.info("Memory monitoring started", stage="MEM.MONITOR", interval=self.config.check_interval)

    async def stop_monitoring(self) -> None:
        task, self._monitor_task = self._monitor_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Memory monitoring stopped", stage="MEM.MONITOR")

    @property
    def is_monitoring(self) -> bool:
        return self._monitor_task is not None and not self._monitor_task.done()

    async def _monitor_loop(self) -> None:
        while True:
            await self.check_memory_usage()
            await asyncio.sleep(self.config.check_interval)

    async def check_memory_usage(self) -> str | None:
        """
        Run one check and the matching optimization.

        STAGE-MEM.1: Usage check

        Returns:
            "emergency", "normal", None (below thresholds), or "skipped"
            when a previous check is still running
        """
        if self._checking:
            return "skipped"
        self._checking = True
        try:
            info = await self.get_memory_info()
            usage = info.usage_percent
            self._last_usage = usage
            logger.info(
                "Redis memory usage",
                stage="MEM.CHECK",
                usage_percent=round(usage, 2),
                used=format_bytes(info.used),
                max_memory=format_bytes(info.max_memory),
            )

            if usage >= self.config.critical_threshold:
                logger.error("Memory usage above critical threshold", stage="MEM.CRITICAL", usage_percent=round(usage, 2))
                await self.perform_emergency_optimization()
                return "emergency"
            if usage >= min(self.config.alert_threshold, self.config.max_usage_percent):
                logger.warning("Memory usage above alert threshold", stage="MEM.ALERT", usage_percent=round(usage, 2))
                await self.perform_optimization()
                return "normal"
            return None
        except Exception as e:
            logger.error("Memory check failed", stage="MEM.ERROR", error=str(e), error_type=type(e).__name__)
            return None
        finally:
            self._checking = False

    # =========================================================================
    # Memory info
    # =========================================================================

    async def get_memory_info(self) -> MemoryInfo:
        """
        Read ``INFO memory`` and ``CONFIG GET maxmemory``.

        A maxmemory of 0 (unlimited) or an unavailable CONFIG command
        falls back to MEMORY_FALLBACK_MAX_BYTES. Redis failures yield zero
        usage rather than raising.
        """
        fallback = self.config.fallback_max_bytes
        try:
            info = await self._redis.info("memory")
        except CacheError as e:
            logger.warning("INFO memory failed", stage="MEM.INFO", error=str(e))
            return MemoryInfo(used=0, peak=0, max_memory=fallback, fragmentation=1.0)

        max_memory = 0
        try:
            configured = await self._redis.config_get("maxmemory")
            max_memory = int(configured.get("maxmemory") or 0)
        except (CacheError, ValueError) as e:
            # managed Redis services often disable CONFIG
            logger.debug("CONFIG GET maxmemory unavailable", stage="MEM.INFO", error=str(e))

        return MemoryInfo(
            used=int(info.get("used_memory", 0)),
            peak=int(info.get("used_memory_peak", 0)),
            max_memory=max_memory or fallback,
            fragmentation=float(info.get("mem_fragmentation_ratio", 1.0)),
        )

    # =========================================================================
    # Optimizations
    # =========================================================================

    async def perform_optimization(self) -> dict[str, Any]:
        """Normal pass: shorter TTLs, expiry for TTL-less keys, fresh stats."""
        logger.info("Performing memory optimization", stage="MEM.OPTIMIZE")
        ttls = self.adjust_ttls()
        expired = await self.expire_persistent_keys()
        self.reset_cache_stats()
        return {"ttls": ttls, "keys_given_ttl": expired}

    async def perform_emergency_optimization(self) -> dict[str, Any]:
        logger.warning("Performing emergency memory optimization", stage="MEM.EMERGENCY")
        evicted = await self.evict_keys(self.config.eviction_batch)
        ttls = self.adjust_ttls(EMERGENCY_TTL_FACTOR)
        cleared = await self.search_cache.clear() if self.search_cache is not None else 0
        logger.warning(
            "Emergency memory optimization completed",
            stage="MEM.EMERGENCY",
            evicted=evicted,
            search_cleared=cleared,
        )
        return {"evicted": evicted, "ttls": ttls, "search_cleared": cleared}

    def adjust_ttls(self, factor: float | None = None) -> dict[str, int]:
        """Scale each cache's default TTL, clamped to [min_ttl, max_ttl]."""
        factor = factor if factor is not None else self.config.ttl_factor
        applied = {}
        for cache in self.caches:
            new_ttl = int(cache.default_ttl * factor)
            cache.default_ttl = max(self.config.min_ttl, min(self.config.max_ttl, new_ttl))
            applied[cache.namespace] = cache.default_ttl
        logger.info("Cache TTLs adjusted", stage="MEM.TTL", factor=factor, ttls=applied)
        return applied

    async def expire_persistent_keys(self) -> int:
        """Give every namespace key without a TTL the default key TTL."""
        count = 0
        try:
            async for key in self._redis.scan_iter(match=f"{self.namespace}:*", count=SCAN_COUNT):
                if await self._redis.ttl(key) == -1:
                    await self._redis.expire(key, self.config.default_key_ttl)
                    count += 1
        except CacheError as e:
            logger.warning("Persistent key sweep failed", stage="MEM.SWEEP", updated=count, error=str(e))
        if count:
            logger.info("TTL set on persistent keys", stage="MEM.SWEEP", updated=count)
        return count

    async def evict_keys(self, count: int) -> int:
        """Remove up to ``count`` namespace keys (SCAN order, UNLINK when supported)."""
        victims: list[str] = []
        try:
            async for key in self._redis.scan_iter(match=f"{self.namespace}:*", count=SCAN_COUNT):
                victims.append(key)
                if len(victims) >= count:
                    break
            evicted = await self._redis.remove(*victims) if victims else 0
        except CacheError as e:
            logger.error("Key eviction failed", stage="MEM.EVICT", error=str(e))
            return 0
        logger.info("Evicted namespace keys", stage="MEM.EVICT", evicted=evicted)
        return evicted

    def reset_cache_stats(self) -> None:
        for cache in self.caches:
            cache.reset_stats()
        if self.search_cache is not None and self.search_cache not in self.caches:
            self.search_cache.reset_stats()

    async def optimize_manual(self, aggressive: bool = False) -> dict[str, Any]:
        logger.info("Manual memory optimization", stage="MEM.MANUAL", aggressive=aggressive)
        if aggressive:
            result = await self.perform_emergency_optimization()
        else:
            result = await self.perform_optimization()
        status = await self.get_status()
        return {**result, "memory": status["memory"]}

    # =========================================================================
    # Configuration and status
    # =========================================================================

    def update_config(self, **changes: Any) -> None:
        """Change optimizer settings at runtime, e.g. ``update_config(ttl_factor=0.7)``."""
        unknown = set(changes) - set(asdict(self.config))
        if unknown:
            raise ConfigurationError(
                message=f"Unknown memory optimizer settings: {sorted(unknown)}",
                details={"unknown": sorted(unknown)},
            )
        for name, value in changes.items():
            setattr(self.config, name, value)
        logger.info("Memory optimizer configuration updated", stage="MEM.CONFIG", changes=changes)

    async def get_status(self) -> dict[str, Any]:
        info = await self.get_memory_info()
        return {
            "monitoring": self.is_monitoring,
            "last_check_usage_percent": self._last_usage,
            "memory": {
                "used": format_bytes(info.used),
                "peak": format_bytes(info.peak),
                "max_memory": format_bytes(info.max_memory),
                "usage_percent": f"{info.usage_percent:.2f}%",
                "fragmentation": f"{info.fragmentation:.2f}",
            },
            "config": asdict(self.config),
            "cache_stats": {cache.namespace: cache.get_stats() for cache in self.caches},
        }
