"""
Circuit Breaker Exceptions
"""

from techtrend_cache.core.exceptions.base import TechTrendCacheError


class CircuitBreakerError(TechTrendCacheError):
    """Base exception for circuit breaker errors."""
    pass


class CircuitBreakerOpenError(CircuitBreakerError):
    """
    Raised when the circuit is open and no fallback was supplied.

    The circuit moves to half-open after the recovery timeout, at which
    point calls are let through again to test the dependency.
    """
    pass
