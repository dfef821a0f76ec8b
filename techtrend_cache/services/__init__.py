"""
Services Module

Long-running cache maintenance: warming and Redis memory management.
"""

from .cache_warmer import CacheWarmer, WarmingTarget
from .memory_optimizer import MemoryInfo, MemoryOptimizer, format_bytes

__all__ = [
    "CacheWarmer",
    "MemoryInfo",
    "MemoryOptimizer",
    "WarmingTarget",
    "format_bytes",
]
