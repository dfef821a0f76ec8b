"""
Unit Tests for CircuitBreaker

Tests the state machine (closed -> open -> half-open -> closed), fallback
handling and the registry.
"""

import time
from unittest.mock import AsyncMock

import pytest

from techtrend_cache.core.exceptions import CircuitBreakerOpenError
from techtrend_cache.core.resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerRegistry,
    CircuitState,
)


def failing():
    return AsyncMock(side_effect=ConnectionError("redis down"))


@pytest.fixture
def breaker():
    return CircuitBreaker("redis", failure_threshold=3, recovery_timeout=60, half_open_requests=2)


async def trip(breaker, times):
    for _ in range(times):
        with pytest.raises(ConnectionError):
            await breaker.execute(failing())


@pytest.mark.unit
class TestClosedState:
    async def test_success_passes_result_through(self, breaker):
        result = await breaker.execute(AsyncMock(return_value="value"))
        assert result == "value"
        assert breaker.state == CircuitState.CLOSED

    async def test_failure_without_fallback_reraises(self, breaker):
        with pytest.raises(ConnectionError):
            await breaker.execute(failing())
        assert breaker.state == CircuitState.CLOSED

    async def test_failure_with_fallback_returns_fallback(self, breaker):
        result = await breaker.execute(failing(), fallback=lambda: "fallback")
        assert result == "fallback"

    async def test_async_fallback_is_awaited(self, breaker):
        result = await breaker.execute(failing(), fallback=AsyncMock(return_value="async-fallback"))
        assert result == "async-fallback"

    async def test_success_resets_failure_count(self, breaker):
        await trip(breaker, 2)
        await breaker.execute(AsyncMock(return_value=1))
        await trip(breaker, 2)
        assert breaker.state == CircuitState.CLOSED

    async def test_opens_at_threshold(self, breaker):
        await trip(breaker, 3)
        assert breaker.state == CircuitState.OPEN


@pytest.mark.unit
class TestOpenState:
    async def test_open_circuit_skips_operation_and_uses_fallback(self, breaker):
        await trip(breaker, 3)
        operation = AsyncMock(return_value="never")

        result = await breaker.execute(operation, fallback=lambda: "cached")

        assert result == "cached"
        operation.assert_not_awaited()

    async def test_open_circuit_without_fallback_raises(self, breaker):
        await trip(breaker, 3)
        with pytest.raises(CircuitBreakerOpenError) as exc_info:
            await breaker.execute(AsyncMock())
        assert exc_info.value.details["breaker"] == "redis"
        assert exc_info.value.details["next_retry_time"] is not None

    async def test_moves_to_half_open_after_recovery_timeout(self, breaker):
        await trip(breaker, 3)
        breaker._last_failure_time = time.time() - 61

        await breaker.execute(AsyncMock(return_value="ok"))

        assert breaker.state == CircuitState.HALF_OPEN


@pytest.mark.unit
class TestHalfOpenState:
    async def _half_open(self, breaker):
        await trip(breaker, 3)
        breaker._last_failure_time = time.time() - 61

    async def test_closes_after_required_successes(self, breaker):
        await self._half_open(breaker)
        await breaker.execute(AsyncMock(return_value=1))
        assert breaker.state == CircuitState.HALF_OPEN
        await breaker.execute(AsyncMock(return_value=2))
        assert breaker.state == CircuitState.CLOSED

    async def test_single_failure_reopens(self, breaker):
        await self._half_open(breaker)
        await breaker.execute(AsyncMock(return_value=1))
        await breaker.execute(failing(), fallback=lambda: None)
        assert breaker.state == CircuitState.OPEN


@pytest.mark.unit
class TestStatsAndRegistry:
    async def test_stats_track_totals(self, breaker):
        await breaker.execute(AsyncMock(return_value=1))
        await trip(breaker, 1)

        stats = breaker.get_stats()

        assert stats["name"] == "redis"
        assert stats["state"] == "closed"
        assert stats["successes"] == 1
        assert stats["failures"] == 1
        assert stats["next_retry_time"] is None

    async def test_reset_closes_circuit(self, breaker):
        await trip(breaker, 3)
        breaker.reset()
        assert breaker.state == CircuitState.CLOSED
        assert breaker.get_stats()["consecutive_failures"] == 0

    def test_registry_returns_same_instance(self):
        registry = CircuitBreakerRegistry()
        assert registry.get_breaker("redis") is registry.get_breaker("redis")
        assert set(registry.get_all_stats()) == {"redis"}

    async def test_registry_reset_all(self):
        registry = CircuitBreakerRegistry()
        breaker = registry.get_breaker("redis", failure_threshold=1)
        await breaker.execute(failing(), fallback=lambda: None)
        assert breaker.state == CircuitState.OPEN

        registry.reset_all()

        assert breaker.state == CircuitState.CLOSED
