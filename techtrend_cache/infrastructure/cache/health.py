"""
Cache subsystem health report.

Combines the Redis health check, the circuit breaker state and per-cache
statistics into one document with operator-facing recommendations.
"""

from typing import Any, Protocol

from techtrend_cache.config.constants import REDIS_SLOW_RESPONSE_MS
from techtrend_cache.core.logging.logger import get_logger
from techtrend_cache.core.resilience.circuit_breaker import CircuitBreaker, CircuitState
from techtrend_cache.infrastructure.cache.redis_client import RedisClient

logger = get_logger(__name__)


class SupportsStats(Protocol):
    def get_stats(self) -> dict[str, Any]: ...


class CacheHealthChecker:
    def __init__(
        self,
        redis_client: RedisClient,
        circuit_breaker: CircuitBreaker | None = None,
        caches: dict[str, SupportsStats] | None = None,
    ):
        self._redis = redis_client
        self._breaker = circuit_breaker
        self._caches = caches or {}

    async def check(self) -> dict[str, Any]:
        """
        Build the health report.

        STAGE-HEALTH.1: Redis ping
        STAGE-HEALTH.2: Breaker and cache stats
        STAGE-HEALTH.3: Recommendations
        """
        redis_health = await self._redis.health_check()
        connected = bool(redis_health.get("connected")) and redis_health.get("status") == "healthy"
        latency_ms = redis_health.get("ping_latency_ms")

        breaker_stats = self._breaker.get_stats() if self._breaker else None
        breaker_state = self._breaker.state if self._breaker else CircuitState.CLOSED

        recommendations = self._recommendations(connected, latency_ms, breaker_state)
        healthy = connected and breaker_state == CircuitState.CLOSED

        report = {
            "status": "healthy" if healthy else "degraded",
            "redis": {"connected": connected, "latency_ms": latency_ms},
            "circuit_breaker": breaker_stats,
            "caches": {name: cache.get_stats() for name, cache in self._caches.items()},
            "recommendations": recommendations,
        }
        if not healthy:
            logger.warning(
                "Cache subsystem degraded",
                stage="HEALTH.CHECK",
                redis_connected=connected,
                circuit_state=breaker_state.value,
            )
        return report

    @staticmethod
    def _recommendations(
        connected: bool, latency_ms: float | None, breaker_state: CircuitState
    ) -> list[str]:
        recommendations = []
        if not connected:
            recommendations.append("Redis connection failed. Check Redis server status.")
        if breaker_state == CircuitState.OPEN:
            recommendations.append("Circuit breaker is OPEN. System is in fallback mode.")
        elif breaker_state == CircuitState.HALF_OPEN:
            recommendations.append("Circuit breaker is HALF_OPEN. Testing Redis connection recovery.")
        if latency_ms is not None and latency_ms > REDIS_SLOW_RESPONSE_MS:
            recommendations.append(
                f"Redis response time is high ({latency_ms}ms). Consider scaling Redis."
            )
        if not recommendations:
            recommendations.append("All systems operational.")
        return recommendations
