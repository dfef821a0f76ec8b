"""
DataLoader Module

Per-request batching of favorite / view lookups on top of the two-layer
cache, with adaptive batch sizing per query kind.
"""

from .batch_optimizer import (
    BatchMetrics,
    BatchOptimizer,
    BatchOptimizerConfig,
    BatchOptimizerRegistry,
    QueryKind,
)
from .favorite_loader import FAVORITE_PREFIX, FavoriteLoaderFactory
from .loader import BatchContext, DataLoader
from .models import FavoriteStatus, ViewStatus
from .view_loader import VIEW_PREFIX, ViewLoaderFactory

__all__ = [
    "FAVORITE_PREFIX",
    "VIEW_PREFIX",
    "BatchContext",
    "BatchMetrics",
    "BatchOptimizer",
    "BatchOptimizerConfig",
    "BatchOptimizerRegistry",
    "DataLoader",
    "FavoriteLoaderFactory",
    "FavoriteStatus",
    "QueryKind",
    "ViewLoaderFactory",
    "ViewStatus",
]
