"""
Adaptive batch sizing for the DataLoaders.

Each loader reports one BatchMetrics sample per executed batch. Once a full
window of samples exists (and the cooldown since the last change has
passed) the optimizer may resize the batch:

    P99 > target_p99                                  -> shrink by step_down
    P95 > target_p95                                  -> shrink by step_down // 2
    P95 < target_p95 / 2, hit rate > 40%, wait < 10ms -> grow by step_up

followed by a proportional correction ``floor((target_p95 - p95) * 0.1)``
from the old size when its magnitude exceeds 5. The result is clamped to
[min_batch_size, max_batch_size].

One optimizer exists per query kind, each with its own latency targets.
"""

import math
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from techtrend_cache.config.settings import Settings, get_settings
from techtrend_cache.core.logging.logger import get_logger

logger = get_logger(__name__)

HEADROOM_RATIO = 0.5
MIN_HIT_RATE_FOR_GROWTH = 0.4
MAX_QUEUE_WAIT_FOR_GROWTH_MS = 10.0
PROPORTIONAL_GAIN = 0.1
PROPORTIONAL_THRESHOLD = 5
HISTORY_IN_STATS = 5


@dataclass(frozen=True)
class BatchOptimizerConfig:
    min_batch_size: int = 10
    max_batch_size: int = 200
    initial_batch_size: int = 50
    step_up: int = 10
    step_down: int = 20
    target_p95: float = 100.0
    target_p99: float = 200.0
    cooldown_seconds: float = 5.0
    sample_window: int = 100

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "BatchOptimizerConfig":
        opt = (settings or get_settings()).batch_optimizer
        return cls(
            min_batch_size=opt.BATCH_MIN_SIZE,
            max_batch_size=opt.BATCH_MAX_SIZE,
            initial_batch_size=opt.BATCH_INITIAL_SIZE,
            step_up=opt.BATCH_STEP_UP,
            step_down=opt.BATCH_STEP_DOWN,
            target_p95=opt.BATCH_TARGET_P95_MS,
            target_p99=opt.BATCH_TARGET_P99_MS,
            cooldown_seconds=opt.BATCH_COOLDOWN_SECONDS,
            sample_window=opt.BATCH_SAMPLE_WINDOW,
        )


@dataclass
class BatchMetrics:
    """One executed batch. Latency and queue wait are in milliseconds."""

    batch_size: int
    latency: float
    queue_wait: float = 0.0
    item_count: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    timestamp: float = field(default_factory=time.time)


@dataclass
class LatencyStats:
    p50: float = 0.0
    p95: float = 0.0
    p99: float = 0.0
    mean: float = 0.0
    count: int = 0


@dataclass
class Adjustment:
    timestamp: float
    old_size: int
    new_size: int
    reason: str


class BatchOptimizer:
    def __init__(self, config: BatchOptimizerConfig | None = None, name: str = "default"):
        self.config = config or BatchOptimizerConfig()
        self.name = name
        self._batch_size = self.config.initial_batch_size
        self._last_adjustment: float | None = None
        self._metrics: list[BatchMetrics] = []
        self._history: list[Adjustment] = []

    def get_batch_size(self) -> int:
        return self._batch_size

    def record_metrics(
        self,
        batch_size: int,
        latency: float,
        queue_wait: float = 0.0,
        item_count: int = 0,
        cache_hits: int = 0,
        cache_misses: int = 0,
    ) -> None:
        self._metrics.append(
            BatchMetrics(
                batch_size=batch_size,
                latency=latency,
                queue_wait=queue_wait,
                item_count=item_count,
                cache_hits=cache_hits,
                cache_misses=cache_misses,
            )
        )

        window = self.config.sample_window
        if len(self._metrics) > window * 2:
            self._metrics = self._metrics[-window:]

        if len(self._metrics) >= window:
            self._maybe_adjust()

    def _window(self) -> list[BatchMetrics]:
        return self._metrics[-self.config.sample_window :]

    def _maybe_adjust(self) -> None:
        now = time.monotonic()
        if self._last_adjustment is not None and now - self._last_adjustment < self.config.cooldown_seconds:
            return

        cfg = self.config
        stats = self._latency_stats()
        hit_rate = self._cache_hit_rate()
        avg_wait = self._average_queue_wait()

        old_size = self._batch_size
        new_size = old_size
        reason = ""

        if stats.p99 > cfg.target_p99:
            new_size = max(cfg.min_batch_size, old_size - cfg.step_down)
            reason = f"P99 latency ({stats.p99:.1f}ms) exceeds target ({cfg.target_p99}ms)"
        elif stats.p95 > cfg.target_p95:
            new_size = max(cfg.min_batch_size, old_size - cfg.step_down // 2)
            reason = f"P95 latency ({stats.p95:.1f}ms) exceeds target ({cfg.target_p95}ms)"
        elif (
            stats.p95 < cfg.target_p95 * HEADROOM_RATIO
            and hit_rate > MIN_HIT_RATE_FOR_GROWTH
            and avg_wait < MAX_QUEUE_WAIT_FOR_GROWTH_MS
        ):
            new_size = min(cfg.max_batch_size, old_size + cfg.step_up)
            reason = f"Headroom available: P95={stats.p95:.1f}ms, cache={hit_rate * 100:.1f}%"

        correction = math.floor((cfg.target_p95 - stats.p95) * PROPORTIONAL_GAIN)
        if abs(correction) > PROPORTIONAL_THRESHOLD:
            new_size = max(cfg.min_batch_size, min(cfg.max_batch_size, old_size + correction))
            reason += f" (proportional: {correction:+d})"

        if new_size == old_size:
            return

        self._batch_size = new_size
        self._last_adjustment = now
        self._history.append(
            Adjustment(timestamp=time.time(), old_size=old_size, new_size=new_size, reason=reason.strip())
        )
        logger.info(
            f"Batch size adjusted {old_size} -> {new_size}",
            stage="OPT.ADJUST",
            optimizer=self.name,
            reason=reason.strip(),
        )

    def _latency_stats(self) -> LatencyStats:
        latencies = sorted(m.latency for m in self._window())
        if not latencies:
            return LatencyStats()
        n = len(latencies)
        return LatencyStats(
            p50=latencies[int(n * 0.5)],
            p95=latencies[int(n * 0.95)],
            p99=latencies[int(n * 0.99)],
            mean=sum(latencies) / n,
            count=n,
        )

    def _cache_hit_rate(self) -> float:
        recent = self._window()
        hits = sum(m.cache_hits for m in recent)
        total = sum(m.cache_hits + m.cache_misses for m in recent)
        return hits / total if total else 0.0

    def _average_queue_wait(self) -> float:
        recent = self._window()
        if not recent:
            return 0.0
        return sum(m.queue_wait for m in recent) / len(recent)

    def get_stats(self) -> dict[str, Any]:
        latency = self._latency_stats()
        return {
            "current_batch_size": self._batch_size,
            "latency_stats": {
                "p50": latency.p50,
                "p95": latency.p95,
                "p99": latency.p99,
                "mean": round(latency.mean, 2),
                "count": latency.count,
            },
            "cache_hit_rate": round(self._cache_hit_rate(), 4),
            "avg_queue_wait": round(self._average_queue_wait(), 2),
            "recent_adjustments": [
                {"timestamp": a.timestamp, "old_size": a.old_size, "new_size": a.new_size, "reason": a.reason}
                for a in self._history[-HISTORY_IN_STATS:]
            ],
        }

    def reset(self) -> None:
        self._batch_size = self.config.initial_batch_size
        self._last_adjustment = None
        self._metrics = []
        self._history = []


# =============================================================================
# Per-query-kind optimizers
# =============================================================================


class QueryKind(str, Enum):
    FAVORITE = "favorite"
    VIEW = "view"
    ARTICLE = "article"


# Latency targets tighter than the default for the per-user lookups
_TARGET_P95_OVERRIDES: dict[QueryKind, float] = {
    QueryKind.FAVORITE: 50.0,
    QueryKind.VIEW: 75.0,
}


class BatchOptimizerRegistry:
    """
    Lazily creates one BatchOptimizer per QueryKind.

    Owned by the CacheContainer; tests build their own.
    """

    def __init__(self, base_config: BatchOptimizerConfig | None = None):
        self._base_config = base_config or BatchOptimizerConfig.from_settings()
        self._optimizers: dict[QueryKind, BatchOptimizer] = {}

    def get(self, kind: QueryKind) -> BatchOptimizer:
        optimizer = self._optimizers.get(kind)
        if optimizer is None:
            config = self._base_config
            if kind in _TARGET_P95_OVERRIDES:
                config = replace(config, target_p95=_TARGET_P95_OVERRIDES[kind])
            optimizer = BatchOptimizer(config, name=kind.value)
            self._optimizers[kind] = optimizer
        return optimizer

    def all_stats(self) -> dict[str, dict[str, Any]]:
        return {kind.value: optimizer.get_stats() for kind, optimizer in self._optimizers.items()}

    def reset_all(self) -> None:
        for optimizer in self._optimizers.values():
            optimizer.reset()
