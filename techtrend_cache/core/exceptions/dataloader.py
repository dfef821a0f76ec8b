"""
DataLoader Exceptions
"""

from techtrend_cache.core.exceptions.base import TechTrendCacheError


class DataLoaderError(TechTrendCacheError):
    """
    Raised when a batch function breaks the loader contract.

    The batch function must return exactly one value per key it was given,
    in the same order.
    """
    pass
