"""
Bounded In-Memory Cache with Recency Eviction.

A fixed-capacity key -> value store. Each entry carries the time it was
last touched; when a new key arrives at a full cache, the entry with the
smallest timestamp is evicted before the insert happens, so the cache never
holds more than ``capacity`` entries, not even transiently.

Recency Rules:
    - get(key): refreshes the entry's timestamp (a read with a side effect)
    - set(key): inserts or overwrites; overwriting never evicts and refreshes
    - has(key) / ``key in cache``: pure membership, no timestamp change

Tie Breaking:
    Entries are kept in last-touch order: every get/set hit moves the entry
    to the end of the underlying dict. The eviction scan takes the first
    entry with the minimal timestamp in that order, so equal timestamps
    (coarse clocks, fake clocks in tests) resolve to the least recently
    touched entry.

Complexity:
    Eviction scans all entries, O(n). Capacities here are tens of entries,
    so the scan is cheaper than maintaining a second index. If capacity
    ever grows to thousands, replace the scan with an ordered recency index
    (the dict order already is one) and pop from the front.

Concurrency:
    No locking. All access happens on one asyncio event loop thread and
    none of the methods suspend.

Example:
    >>> cache = BoundedCache(capacity=2)
    >>> cache.set("a", 1); cache.set("b", 2)
    >>> cache.get("a")
    1
    >>> cache.set("c", 3)   # evicts "b"
    >>> cache.has("b")
    False
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Dict, Generic, Hashable, Optional, TypeVar

from reader_speech.core.logging import get_logger, verbose
from reader_speech.core.metrics import metrics

_LOG = get_logger("reader-speech.cache")

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


@dataclass
class CacheEntry(Generic[V]):
    """
    A cached value and the time it was last touched.

    Attributes:
        value: The cached value.
        last_accessed_at: Clock reading of the last get/set.
    """
    value: V
    last_accessed_at: float


class BoundedCache(Generic[K, V]):
    """
    Fixed-capacity cache evicting the least recently accessed entry.

    Attributes:
        capacity: Maximum number of entries (> 0).
        name: Label used in logs and metrics ("chunks", "books").
    """

    def __init__(
        self,
        capacity: int,
        name: str = "cache",
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            capacity: Maximum number of entries, must be positive.
            name: Label for logs and metrics.
            clock: Timestamp source; monotonic by default.

        Raises:
            ValueError: If capacity is not positive.
        """
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self.capacity = int(capacity)
        self.name = name
        self._clock = clock
        self._entries: Dict[K, CacheEntry[V]] = {}

        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def get(self, key: K) -> Optional[V]:
        """
        Return the cached value and refresh its timestamp, or None.
        """
        entry = self._entries.pop(key, None)
        if entry is None:
            self._misses += 1
            metrics.record_cache_lookup(self.name, hit=False)
            return None

        entry.last_accessed_at = self._clock()
        self._entries[key] = entry
        self._hits += 1
        metrics.record_cache_lookup(self.name, hit=True)
        return entry.value

    def set(self, key: K, value: V) -> None:
        """
        Insert or overwrite ``key``.

        A new key arriving at a full cache evicts exactly one entry first.
        """
        existing = self._entries.pop(key, None)
        if existing is None and len(self._entries) >= self.capacity:
            self._evict_oldest()
        self._entries[key] = CacheEntry(value=value, last_accessed_at=self._clock())

    def has(self, key: K) -> bool:
        """Membership test without touching the timestamp."""
        return key in self._entries

    def clear(self) -> int:
        """
        Drop every entry.

        Returns:
            Number of entries removed.
        """
        count = len(self._entries)
        self._entries.clear()
        if count:
            verbose(_LOG, "cleared", cache=self.name, removed=count)
        return count

    def _evict_oldest(self) -> None:
        # min() keeps the first of equal minima, i.e. the least recently touched
        oldest = min(self._entries, key=lambda k: self._entries[k].last_accessed_at)
        del self._entries[oldest]
        self._evictions += 1
        metrics.record_eviction(self.name)
        verbose(_LOG, "evict", cache=self.name, key=oldest)

    def stats(self) -> Dict[str, int]:
        """
        Cache statistics.

        Returns:
            hits, misses, evictions, size and capacity.
        """
        return {
            "hits": self._hits,
            "misses": self._misses,
            "evictions": self._evictions,
            "size": len(self._entries),
            "capacity": self.capacity,
        }

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries
