#!/usr/bin/env python3
"""
System Constants and Enumerations

Constants that are part of the cache core's contract rather than
deployment configuration: key fragments other processes rely on for
SCAN-based invalidation, lock names and log stage identifiers.
"""

from enum import Enum

# ============================================================================
# Stage Identifiers (for structured logging)
# ============================================================================


class Stage(str, Enum):
    """
    Processing stages used as the ``stage`` field of log events.

    Each value names the component and the step, so a log stream can be
    filtered down to one layer without reading the code.
    """

    INITIALIZATION = "0"
    MEMORY_CACHE = "L1"
    REDIS_CACHE = "L2"
    BATCH_LOAD = "BATCH"
    CIRCUIT_BREAKER = "CB"
    LOCK = "LOCK"
    SWR = "SWR"
    OPTIMIZER = "OPT"
    DATALOADER = "DL"
    WARMER = "WARM"
    MEMORY_OPTIMIZER = "MEM"
    INVALIDATION = "INV"
    HEALTH = "HEALTH"
    SHUTDOWN = "6"


# ============================================================================
# Cache Tiers
# ============================================================================


class CacheTier(str, Enum):
    """
    Where a batch-loaded value was resolved.

    L1: In-process memory cache
    L2: Redis
    DB: Caller-supplied fetcher
    """

    L1 = "l1"
    L2 = "l2"
    DB = "db"


# ============================================================================
# Namespaces (suffixes appended to CACHE_NAMESPACE)
# ============================================================================

NAMESPACE_STATS = "stats"
NAMESPACE_TRENDS = "trends"
NAMESPACE_SEARCH = "search"
NAMESPACE_TAGS = "tags"
NAMESPACE_FILTERS = "filters"
NAMESPACE_ARTICLE_DETAIL = "article-detail"
NAMESPACE_FAVORITES = "favorites"
NAMESPACE_VIEWS = "views"
NAMESPACE_SWR = "swr"
NAMESPACE_LAYERED_PUBLIC = "l1:public"
NAMESPACE_LAYERED_USER = "l2:user"
NAMESPACE_LAYERED_SEARCH = "l3:search"
NAMESPACE_ARTICLES = "articles"
NAMESPACE_RELATED = "related"
NAMESPACE_TAG_CLOUD = "tagcloud"
NAMESPACE_API = "api"

# ============================================================================
# Redis Keys
# ============================================================================

LOCK_KEY_PREFIX = "lock"
WARMING_STARTUP_LOCK = "cache:warming:startup"
KEYWORDS_TRENDING_KEY = "keywords:trending"
OVERALL_STATS_KEY = "overall-stats"

# ============================================================================
# Batch Operations
# ============================================================================

SCAN_COUNT = 100
DELETE_BATCH_SIZE = 1000
SWR_WARMUP_BATCH_SIZE = 5
SWR_WARMUP_BATCH_DELAY = 0.1

# Hex characters kept from a SHA-256 digest in generated keys
KEY_HASH_LENGTH = 16

# ============================================================================
# Health Thresholds
# ============================================================================

REDIS_SLOW_RESPONSE_MS = 100
