"""
Exception Module

Structured exception hierarchy for the cache core, organized by theme.

Module Structure:
-----------------
- **base.py**: TechTrendCacheError base class + ConfigurationError
- **cache.py**: Redis / serialization exceptions
- **circuit_breaker.py**: Circuit breaker exceptions
- **lock.py**: Distributed lock exceptions
- **dataloader.py**: Batch loader contract violations

Usage:
------
```python
from techtrend_cache.core.exceptions import CacheConnectionError, LockAcquisitionError
```
"""

from techtrend_cache.core.exceptions.base import ConfigurationError, TechTrendCacheError
from techtrend_cache.core.exceptions.cache import (
    CacheConnectionError,
    CacheError,
    CacheKeyError,
    CacheSerializationError,
)
from techtrend_cache.core.exceptions.circuit_breaker import (
    CircuitBreakerError,
    CircuitBreakerOpenError,
)
from techtrend_cache.core.exceptions.dataloader import DataLoaderError
from techtrend_cache.core.exceptions.lock import LockAcquisitionError, LockError

__all__ = [
    "TechTrendCacheError",
    "ConfigurationError",
    "CacheError",
    "CacheConnectionError",
    "CacheKeyError",
    "CacheSerializationError",
    "CircuitBreakerError",
    "CircuitBreakerOpenError",
    "DataLoaderError",
    "LockError",
    "LockAcquisitionError",
]
