"""
Test Fixtures Package

Shared test utilities and in-memory data sources for consistent testing
across all modules.
"""

from .cache_factory import (
    CacheTestFactory,
    FakeArticleRepository,
    FakeFavoriteRepository,
    FakeViewRepository,
    FakeWarmingDataSource,
)

__all__ = [
    "CacheTestFactory",
    "FakeArticleRepository",
    "FakeFavoriteRepository",
    "FakeViewRepository",
    "FakeWarmingDataSource",
]
