from .circuit_breaker import CircuitBreaker, CircuitBreakerRegistry, CircuitState
from .retry import create_retry_decorator

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerRegistry",
    "CircuitState",
    "create_retry_decorator",
]
