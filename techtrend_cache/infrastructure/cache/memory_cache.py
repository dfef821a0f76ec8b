"""
Process-local LRU memory cache (L1).

Responsibility: Bounded in-memory storage with a TTL per entry and
least-recently-used eviction.

Implementation Details:
- OrderedDict keeps entries in access order (oldest first), so the LRU
  victim is always the first item
- Each entry carries its own expiry; expired entries are dropped lazily
  on read and by a periodic sweep task
- Eviction happens only when the cache is full AND the key is new;
  overwriting an existing key never evicts
- Every method is synchronous: there is no await between reading and
  mutating the map, so no lock is needed on a single event loop

Not shared across workers. For cross-process caching use RedisCache.
"""

import asyncio
import re
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any

from techtrend_cache.core.logging.logger import get_logger

logger = get_logger(__name__)


@dataclass
class CacheEntry:
    """One L1 slot."""

    data: Any
    expires_at: float
    access_count: int = 0
    last_accessed: float = field(default_factory=time.time)

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


@dataclass
class MemoryCacheStats:
    hits: int = 0
    misses: int = 0
    evictions: int = 0
    sets: int = 0
    deletes: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return round(self.hits / total * 100, 2) if total else 0.0


class MemoryCache:
    """
    In-memory LRU cache with per-entry TTL.

    Usage:
        cache = MemoryCache(max_size=1000, default_ttl=60)
        cache.start()  # begin periodic cleanup (needs a running loop)

        cache.set("key", {"a": 1}, ttl=30)
        cache.get("key")

        cache.destroy()
    """

    def __init__(self, max_size: int = 1000, default_ttl: float = 60, cleanup_interval: float = 60):
        """
        Args:
            max_size: Maximum number of entries
            default_ttl: TTL in seconds used when set() gets none
            cleanup_interval: Seconds between expired-entry sweeps
        """
        self.max_size = max_size
        self.default_ttl = default_ttl
        self.cleanup_interval = cleanup_interval
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._stats = MemoryCacheStats()
        self._cleanup_task: asyncio.Task | None = None

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self) -> None:
        """Start the periodic cleanup task on the running loop."""
        if self._cleanup_task and not self._cleanup_task.done():
            return
        self._cleanup_task = asyncio.get_running_loop().create_task(self._cleanup_loop())

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self.cleanup_interval)
            removed = self.cleanup()
            if removed:
                logger.debug("Expired L1 entries removed", stage="L1.CLEANUP", removed=removed)

    def destroy(self) -> None:
        """Stop the cleanup timer and drop every entry."""
        if self._cleanup_task:
            self._cleanup_task.cancel()
            self._cleanup_task = None
        self._entries.clear()

    # -------------------------------------------------------------------------
    # Single-key Operations
    # -------------------------------------------------------------------------

    def get(self, key: str) -> Any | None:
        """
        Return the cached value, or None on miss/expiry.

        A hit marks the entry most recently used.
        """
        entry = self._entries.get(key)
        if entry is None:
            self._stats.misses += 1
            return None

        now = time.time()
        if entry.is_expired(now):
            del self._entries[key]
            self._stats.misses += 1
            return None

        entry.access_count += 1
        entry.last_accessed = now
        self._entries.move_to_end(key)
        self._stats.hits += 1
        return entry.data

    def has(self, key: str) -> bool:
        """True if a live entry exists (does not touch LRU order or stats)."""
        entry = self._entries.get(key)
        return entry is not None and not entry.is_expired(time.time())

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        now = time.time()
        ttl = self.default_ttl if ttl is None else ttl

        if key in self._entries:
            self._entries.move_to_end(key)
        elif len(self._entries) >= self.max_size:
            self._evict_lru()

        self._entries[key] = CacheEntry(data=value, expires_at=now + ttl, last_accessed=now)
        self._stats.sets += 1

    def delete(self, key: str) -> bool:
        if key in self._entries:
            del self._entries[key]
            self._stats.deletes += 1
            return True
        return False

    def _evict_lru(self) -> None:
        if not self._entries:
            return
        victim, _ = self._entries.popitem(last=False)
        self._stats.evictions += 1
        logger.debug("L1 entry evicted", stage="L1.EVICT", key=victim)

    # -------------------------------------------------------------------------
    # Bulk Operations
    # -------------------------------------------------------------------------

    def mget(self, keys: list[str]) -> dict[str, Any | None]:
        return {key: self.get(key) for key in keys}

    def mset(self, entries: list[tuple[str, Any, float | None]] | dict[str, Any]) -> None:
        """
        Store several entries.

        Accepts either a plain mapping (default TTL) or a list of
        ``(key, value, ttl)`` tuples.
        """
        if isinstance(entries, dict):
            for key, value in entries.items():
                self.set(key, value)
            return
        for key, value, ttl in entries:
            self.set(key, value, ttl)

    def delete_pattern(self, pattern: str | re.Pattern) -> int:
        """Delete every key matching the regular expression; returns the count."""
        regex = re.compile(pattern) if isinstance(pattern, str) else pattern
        doomed = [key for key in self._entries if regex.search(key)]
        for key in doomed:
            del self._entries[key]
        self._stats.deletes += len(doomed)
        return len(doomed)

    def clear(self) -> None:
        self._entries.clear()

    def cleanup(self) -> int:
        """Remove expired entries now; returns how many were removed."""
        now = time.time()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    @property
    def size(self) -> int:
        return len(self._entries)

    def keys(self) -> list[str]:
        """Keys in LRU order (least recently used first)."""
        return list(self._entries.keys())

    def get_stats(self) -> dict[str, Any]:
        return {
            "hits": self._stats.hits,
            "misses": self._stats.misses,
            "evictions": self._stats.evictions,
            "sets": self._stats.sets,
            "deletes": self._stats.deletes,
            "size": self.size,
            "max_size": self.max_size,
            "hit_rate": self._stats.hit_rate,
        }

    def reset_stats(self) -> None:
        self._stats = MemoryCacheStats()


class DataLoaderMemoryCache(MemoryCache):
    """
    Small, short-lived L1 used by the DataLoader factories.

    User-scoped keys look like ``favorite:{user_id}:{article_id}``, so user
    and article invalidation are regex sweeps over the key space.
    """

    def __init__(self, max_size: int = 500, default_ttl: float = 30, cleanup_interval: float = 60):
        super().__init__(max_size=max_size, default_ttl=default_ttl, cleanup_interval=cleanup_interval)

    @staticmethod
    def user_key(prefix: str, user_id: str) -> str:
        return f"{prefix}:{user_id}"

    @staticmethod
    def article_key(prefix: str, article_id: str) -> str:
        return f"{prefix}:article:{article_id}"

    @staticmethod
    def user_article_key(prefix: str, user_id: str, article_id: str) -> str:
        return f"{prefix}:{user_id}:{article_id}"

    def invalidate_user(self, user_id: str) -> int:
        """Drop every entry whose key has ``user_id`` as its second segment."""
        return self.delete_pattern(rf"^[^:]+:{re.escape(user_id)}(:|$)")

    def invalidate_article(self, article_id: str) -> int:
        """Drop every entry whose key ends with ``article_id``."""
        return self.delete_pattern(rf":{re.escape(article_id)}$")
