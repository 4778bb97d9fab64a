"""
Thread-safe in-process TTL cache.

Used by the role catalog to memoize store reads per practice.  Expired
entries are kept (not evicted) so that a caller can fall back to the last
known value with ``get_stale()`` when the backing store is unavailable.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Generic, Hashable, Optional, TypeVar

logger = logging.getLogger(__name__)

V = TypeVar("V")


@dataclass
class CacheEntry(Generic[V]):
    value: V
    stored_at: float


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    sets: int = 0
    invalidations: int = 0


class TTLCache(Generic[V]):
    """Read-mostly cache with a fixed TTL and an injectable clock.

    All access goes through one lock, so readers never see a half-written
    entry and ``invalidate()`` takes effect for every reader that comes
    after it.
    """

    def __init__(
        self,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be > 0, got {ttl_seconds}")
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[Hashable, CacheEntry[V]] = {}
        self._lock = threading.RLock()
        self.stats = CacheStats()

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def get(self, key: Hashable) -> Optional[V]:
        """Return the value for ``key`` if it is still within the TTL."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or self._clock() - entry.stored_at >= self._ttl:
                self.stats.misses += 1
                return None
            self.stats.hits += 1
            return entry.value

    def get_stale(self, key: Hashable) -> Optional[V]:
        """Return whatever is stored for ``key``, expired or not."""
        with self._lock:
            entry = self._entries.get(key)
            return entry.value if entry is not None else None

    def set(self, key: Hashable, value: V) -> None:
        with self._lock:
            self._entries[key] = CacheEntry(value=value, stored_at=self._clock())
            self.stats.sets += 1

    def invalidate(self, key: Optional[Hashable] = None) -> None:
        """Drop one key, or every key when ``key`` is None."""
        with self._lock:
            if key is None:
                self._entries.clear()
            else:
                self._entries.pop(key, None)
            self.stats.invalidations += 1
        logger.debug("Cache invalidated (key=%s)", "ALL" if key is None else key)

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
