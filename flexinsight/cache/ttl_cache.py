"""Thread-safe keyed cache with read-time TTLs.

The TTL is not stored with an entry.  Each caller passes the freshness it
needs to ``get``; the same physical entry may therefore be fresh for one
caller and stale for another.  A stale hit is evicted on the spot, so once an
entry has expired under some TTL it is gone for every later reader.

Usage::

    cache = TTLCache()
    cache.put(CacheKeys.WORKOUT_STATS, stats)
    stats = cache.get(CacheKeys.WORKOUT_STATS, ttl=300)   # None when stale
    cache.invalidate_prefix(CacheKeys.WEEKLY_PROGRESS)    # drop a key family

``None`` is not a cacheable value: ``get`` uses it to signal a miss.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Generic, TypeVar

logger = logging.getLogger("flexinsight.cache")

T = TypeVar("T")
TTL = float | timedelta
Clock = Callable[[], float]


def _seconds(ttl: TTL) -> float:
    if isinstance(ttl, timedelta):
        return ttl.total_seconds()
    return float(ttl)


@dataclass
class CacheEntry(Generic[T]):
    """A cached value and the clock reading at which it was stored."""

    value: T
    created_at: float

    def age(self, now: float) -> float:
        return now - self.created_at

    def is_valid(self, ttl: TTL, now: float) -> bool:
        return self.age(now) < _seconds(ttl)


@dataclass
class CacheStats:
    """Counters since construction (``clear`` resets size, not counters)."""

    hits: int = 0
    misses: int = 0
    evictions: int = 0
    size: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


class TTLCache:
    """In-process cache shared by the stats service and the sync layer.

    One re-entrant lock guards every operation, so no reader can observe a
    half-written entry and callers never need their own locking.
    """

    def __init__(self, clock: Clock = time.monotonic) -> None:
        """Initialize the cache.

        Args:
            clock: Zero-argument callable returning seconds; injectable for tests.
        """
        self._clock = clock
        self._entries: dict[str, CacheEntry[Any]] = {}
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def get(self, key: str, ttl: TTL) -> Any | None:
        """Return the value for ``key`` if younger than ``ttl``, else None.

        A stale entry is removed before returning.

        Args:
            key: Cache key.
            ttl: Maximum acceptable age, in seconds or as a timedelta.

        Returns:
            The cached value, or None on a miss.
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            if entry.is_valid(ttl, self._clock()):
                self._hits += 1
                return entry.value
            del self._entries[key]
            self._evictions += 1
            self._misses += 1
            logger.debug("Evicted stale cache entry %s", key)
            return None

    def put(self, key: str, value: Any) -> None:
        """Store ``value`` under ``key``, replacing any entry and resetting its age."""
        with self._lock:
            self._entries[key] = CacheEntry(value=value, created_at=self._clock())

    def invalidate(self, key: str) -> bool:
        """Remove ``key``; True when an entry was there."""
        with self._lock:
            return self._entries.pop(key, None) is not None

    def invalidate_prefix(self, prefix: str) -> int:
        """Remove every key starting with ``prefix``.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            doomed = [key for key in self._entries if key.startswith(prefix)]
            for key in doomed:
                del self._entries[key]
        if doomed:
            logger.debug("Invalidated %d cache entries with prefix %r", len(doomed), prefix)
        return len(doomed)

    def cleanup(self, ttl: TTL) -> int:
        """Sweep out every entry that is stale under ``ttl``.

        Lazy eviction in ``get`` already guarantees correctness; this only
        reclaims memory for keys nobody reads any more.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            now = self._clock()
            stale = [key for key, entry in self._entries.items() if not entry.is_valid(ttl, now)]
            for key in stale:
                del self._entries[key]
            self._evictions += len(stale)
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                hits=self._hits,
                misses=self._misses,
                evictions=self._evictions,
                size=len(self._entries),
            )

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        # Presence only; freshness depends on the reader's TTL.
        with self._lock:
            return key in self._entries
