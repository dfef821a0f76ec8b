"""
Core Module

Foundational components: logging, exceptions, resilience and background tasks.
"""

from .exceptions import (
    CacheConnectionError,
    CacheError,
    CacheKeyError,
    CacheSerializationError,
    CircuitBreakerOpenError,
    ConfigurationError,
    DataLoaderError,
    LockAcquisitionError,
    TechTrendCacheError,
)
from .logging import (
    clear_request_id,
    get_logger,
    get_request_id,
    log_stage,
    set_request_id,
    setup_logging,
)

__all__ = [
    "CacheConnectionError",
    "CacheError",
    "CacheKeyError",
    "CacheSerializationError",
    "CircuitBreakerOpenError",
    "ConfigurationError",
    "DataLoaderError",
    "LockAcquisitionError",
    "TechTrendCacheError",
    "clear_request_id",
    "get_logger",
    "get_request_id",
    "log_stage",
    "set_request_id",
    "setup_logging",
]
