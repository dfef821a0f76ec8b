"""
Distributed Lock Exceptions
"""

from techtrend_cache.core.exceptions.cache import CacheError


class LockError(CacheError):
    """Base exception for distributed lock errors."""
    pass


class LockAcquisitionError(LockError):
    """
    Raised when a lock could not be acquired within the wait budget.

    Only ``execute_with_lock`` raises this; plain ``acquire`` calls report
    contention by returning ``None``.
    """
    pass
