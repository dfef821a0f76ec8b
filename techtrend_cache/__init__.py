"""
TechTrend Cache

Multi-layer caching and batch loading for the TechTrend article
aggregator: in-process L1, Redis L2, per-request DataLoaders, domain
caches, cache warming and Redis memory management.
"""

from .container import CacheContainer

__version__ = "1.0.0"

__all__ = ["CacheContainer", "__version__"]
