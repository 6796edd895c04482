"""In-process TTL cache for derived statistics and reference data."""

from flexinsight.cache.keys import (
    REMOTE_DERIVED_KEYS,
    STATS_PREFIXES,
    TTL_FAMILY,
    CacheKeys,
    invalidate_remote_derived,
)
from flexinsight.cache.ttl_cache import CacheEntry, CacheStats, TTLCache

__all__ = [
    "TTLCache",
    "CacheEntry",
    "CacheStats",
    "CacheKeys",
    "STATS_PREFIXES",
    "REMOTE_DERIVED_KEYS",
    "TTL_FAMILY",
    "invalidate_remote_derived",
]
