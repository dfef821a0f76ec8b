"""
Circuit Breaker for Redis Failure Isolation.

This module wraps cache-layer operations (primarily Redis calls) in a
CLOSED / OPEN / HALF_OPEN state machine so that a Redis outage costs one
fast fallback per request instead of one socket timeout per request.

MECHANISM OF ACTION:
-------------------
1.  **CLOSED**: Requests pass through.
    - On Success: failure counter resets to 0.
    - On Failure: failure counter increments; at ``failure_threshold`` the
      circuit OPENS and the failure time is recorded.

2.  **OPEN**: Requests are not attempted.
    - Within ``recovery_timeout`` of the last failure, the fallback runs
      (or ``CircuitBreakerOpenError`` is raised when there is none).
    - Once the timeout has elapsed the next call moves the circuit to
      HALF_OPEN and is let through.

3.  **HALF_OPEN**: Probing mode.
    - Each success increments the success counter; after
      ``half_open_requests`` consecutive successes the circuit CLOSES.
    - Any single failure re-OPENS the circuit and restarts the timeout.

State is process-local: each web worker judges Redis health from its own
traffic, and the breaker only ever guards best-effort cache calls.
"""

import inspect
import time
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any, TypeVar

from techtrend_cache.config.settings import get_settings
from techtrend_cache.core.exceptions import CircuitBreakerOpenError
from techtrend_cache.core.logging.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    """Enumeration of possible circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    In-process circuit breaker with fallback support.

    Usage:
        breaker = CircuitBreaker("redis")
        value = await breaker.execute(
            lambda: redis_cache.read_strict("key"),
            fallback=lambda: memory_cache.get("key"),
        )
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int | None = None,
        recovery_timeout: float | None = None,
        half_open_requests: int | None = None,
    ):
        settings = get_settings().circuit_breaker
        self.name = name
        self.failure_threshold = failure_threshold or settings.CB_FAILURE_THRESHOLD
        self.recovery_timeout = (
            recovery_timeout if recovery_timeout is not None else settings.CB_RECOVERY_TIMEOUT
        )
        self.half_open_requests = half_open_requests or settings.CB_HALF_OPEN_REQUESTS

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._consecutive_failures = 0
        self._last_failure_time: float | None = None

        # Lifetime totals, reported by get_stats()
        self._total_failures = 0
        self._total_successes = 0

    @property
    def state(self) -> CircuitState:
        return self._state

    def _transition(self, state: CircuitState) -> None:
        if state == self._state:
            return
        previous = self._state
        self._state = state
        logger.info(
            f"Circuit '{self.name}' changed state {previous.value} -> {state.value}",
            stage="CB.STATE",
            breaker=self.name,
        )

    def _recovery_elapsed(self) -> bool:
        if self._last_failure_time is None:
            return True
        return time.time() - self._last_failure_time >= self.recovery_timeout

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        fallback: Callable[[], Any] | None = None,
    ) -> T:
        """
        Run ``operation`` under the breaker.

        Args:
            operation: Zero-argument coroutine function to protect
            fallback: Optional zero-argument callable (sync or async) used
                when the circuit is open or the operation fails

        Returns:
            The operation's result, or the fallback's result

        Raises:
            CircuitBreakerOpenError: Circuit is open and no fallback was given
            Exception: The operation's own error when no fallback was given
        """
        if self._state == CircuitState.OPEN:
            if not self._recovery_elapsed():
                if fallback is not None:
                    return await self._run_fallback(fallback)
                raise CircuitBreakerOpenError(
                    message=f"Circuit open for {self.name}",
                    details={"breaker": self.name, "next_retry_time": self._next_retry_time()},
                )
            self._success_count = 0
            self._transition(CircuitState.HALF_OPEN)

        try:
            result = await operation()
        except Exception as e:
            self._on_failure(e)
            if fallback is not None:
                return await self._run_fallback(fallback)
            raise

        self._on_success()
        return result

    async def _run_fallback(self, fallback: Callable[[], Any]) -> Any:
        result = fallback()
        if inspect.isawaitable(result):
            result = await result
        return result

    def _on_success(self) -> None:
        self._total_successes += 1
        self._consecutive_failures = 0

        if self._state == CircuitState.HALF_OPEN:
            self._success_count += 1
            if self._success_count >= self.half_open_requests:
                logger.info(f"Circuit '{self.name}' recovered! Resetting to CLOSED.", stage="CB.CLOSE")
                self._transition(CircuitState.CLOSED)
                self._failure_count = 0
                self._success_count = 0
        else:
            self._failure_count = 0

    def _on_failure(self, error: Exception) -> None:
        self._total_failures += 1
        self._consecutive_failures += 1
        self._last_failure_time = time.time()

        if self._state == CircuitState.HALF_OPEN:
            logger.warning(
                f"Circuit '{self.name}' trial call failed, re-opening",
                stage="CB.OPEN",
                error=str(error),
            )
            self._success_count = 0
            self._transition(CircuitState.OPEN)
            return

        self._failure_count += 1
        logger.warning(
            f"Circuit '{self.name}' recorded failure ({self._failure_count}/{self.failure_threshold})",
            stage="CB.FAILURE",
            error=str(error),
        )
        if self._failure_count >= self.failure_threshold:
            logger.error(f"Circuit '{self.name}' tripped! Opening circuit.", stage="CB.OPEN")
            self._transition(CircuitState.OPEN)

    def _next_retry_time(self) -> float | None:
        if self._state != CircuitState.OPEN or self._last_failure_time is None:
            return None
        return self._last_failure_time + self.recovery_timeout

    def get_stats(self) -> dict[str, Any]:
        """Snapshot of the breaker for health endpoints."""
        return {
            "name": self.name,
            "state": self._state.value,
            "failures": self._total_failures,
            "successes": self._total_successes,
            "consecutive_failures": self._consecutive_failures,
            "last_failure_time": self._last_failure_time,
            "next_retry_time": self._next_retry_time(),
        }

    def reset(self) -> None:
        """Force the breaker back to CLOSED and clear counters."""
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._consecutive_failures = 0
        self._last_failure_time = None


# ============================================================================
# Registry
# ============================================================================


class CircuitBreakerRegistry:
    """Owns the named breakers of one container."""

    def __init__(self):
        self._breakers: dict[str, CircuitBreaker] = {}

    def get_breaker(self, name: str, **overrides) -> CircuitBreaker:
        if name not in self._breakers:
            self._breakers[name] = CircuitBreaker(name, **overrides)
        return self._breakers[name]

    def get_all_stats(self) -> dict[str, dict[str, Any]]:
        return {name: breaker.get_stats() for name, breaker in self._breakers.items()}

    def reset_all(self) -> None:
        """Helper for tests and manual recovery."""
        for breaker in self._breakers.values():
            breaker.reset()
