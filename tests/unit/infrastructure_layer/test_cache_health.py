"""
Unit Tests for CacheHealthChecker
"""

import pytest

from techtrend_cache.core.resilience.circuit_breaker import CircuitBreaker, CircuitState
from techtrend_cache.infrastructure.cache.health import CacheHealthChecker
from techtrend_cache.infrastructure.cache.memory_cache import MemoryCache


@pytest.fixture
def breaker():
    return CircuitBreaker("redis", failure_threshold=1, recovery_timeout=60)


@pytest.mark.unit
class TestCacheHealthChecker:
    async def test_all_systems_operational(self, in_memory_redis_client, breaker):
        checker = CacheHealthChecker(in_memory_redis_client, breaker, caches={"memory": MemoryCache()})

        report = await checker.check()

        assert report["status"] == "healthy"
        assert report["redis"] == {"connected": True, "latency_ms": 0.5}
        assert report["caches"]["memory"]["size"] == 0
        assert report["recommendations"] == ["All systems operational."]

    async def test_redis_down(self, in_memory_redis_client, breaker, redis_outage):
        in_memory_redis_client.fail_with = redis_outage

        report = await CacheHealthChecker(in_memory_redis_client, breaker).check()

        assert report["status"] == "degraded"
        assert "Redis connection failed. Check Redis server status." in report["recommendations"]

    async def test_open_breaker_is_degraded(self, in_memory_redis_client, breaker):
        breaker._transition(CircuitState.OPEN)

        report = await CacheHealthChecker(in_memory_redis_client, breaker).check()

        assert report["status"] == "degraded"
        assert report["circuit_breaker"]["state"] == "open"
        assert "Circuit breaker is OPEN. System is in fallback mode." in report["recommendations"]

    async def test_slow_redis_is_flagged(self, in_memory_redis_client):
        in_memory_redis_client.latency_ms = 250.0

        report = await CacheHealthChecker(in_memory_redis_client).check()

        assert report["status"] == "healthy"
        assert report["recommendations"] == ["Redis response time is high (250.0ms). Consider scaling Redis."]
