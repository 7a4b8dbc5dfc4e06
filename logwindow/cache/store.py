"""
Cache Store: Fingerprint-Keyed Window Cache

Holds one CacheEntry per normalized query fingerprint:
- Pure lookups (an absent entry is never synthesized)
- Wholesale upsert (partial updates are the merger's job)
- Per-fingerprint asyncio locks so one fingerprint's
  resolve/fetch/merge sequence never interleaves with another
  request for the same fingerprint, while different fingerprints
  proceed independently

Lifetime:
    Entries live for the process lifetime. clear() is exposed for
    operators but unused in the normal query flow.
"""

from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass
from typing import Iterator, Optional

from logwindow.cache.entry import CacheEntry


# =============================================================================
# CACHE STATISTICS
# =============================================================================
@dataclass
class CacheStats:
    """Cache effectiveness statistics."""
    hits: int = 0          # request start inside cached window
    misses: int = 0        # fingerprint never seen
    disjoint: int = 0      # cached window did not overlap request start
    merges: int = 0
    merged_events: int = 0
    pruned_buckets: int = 0
    entry_count: int = 0

    @property
    def lookups(self) -> int:
        return self.hits + self.misses + self.disjoint

    @property
    def hit_rate(self) -> float:
        """Share of lookups that reused part of a cached window."""
        total = self.lookups
        return self.hits / total if total > 0 else 0.0

    def to_dict(self) -> dict[str, float]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "disjoint": self.disjoint,
            "merges": self.merges,
            "merged_events": self.merged_events,
            "pruned_buckets": self.pruned_buckets,
            "entry_count": self.entry_count,
            "hit_rate": round(self.hit_rate, 4),
        }


# =============================================================================
# CACHE STORE IMPLEMENTATION
# =============================================================================
class CacheStore:
    """
    Shared mapping from fingerprint to CacheEntry.

    Usage:
        store = CacheStore()
        async with store.lock_for(fingerprint):
            entry = store.get(fingerprint)
            ...
            store.set(fingerprint, entry)
    """

    __slots__ = ("_entries", "_locks", "_guard", "_stats")

    def __init__(self) -> None:
        self._entries: dict[str, CacheEntry] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        # Guards the two dicts; held only for O(1) operations
        self._guard = threading.Lock()
        self._stats = CacheStats()

    def get(self, fingerprint: str) -> Optional[CacheEntry]:
        """Return the entry for ``fingerprint`` or None. No side effects."""
        with self._guard:
            return self._entries.get(fingerprint)

    def set(self, fingerprint: str, entry: CacheEntry) -> None:
        """Insert or replace the entry for ``fingerprint``."""
        with self._guard:
            self._entries[fingerprint] = entry
            self._stats.entry_count = len(self._entries)

    def clear(self) -> None:
        """Drop every entry."""
        with self._guard:
            self._entries.clear()
            self._stats.entry_count = 0

    def lock_for(self, fingerprint: str) -> asyncio.Lock:
        """Lock serializing mutations of one fingerprint's entry."""
        # Never evicted, even by clear(): grows with distinct fingerprints like the entry map
        with self._guard:
            lock = self._locks.get(fingerprint)
            if lock is None:
                lock = asyncio.Lock()
                self._locks[fingerprint] = lock
            return lock

    def fingerprints(self) -> list[str]:
        with self._guard:
            return sorted(self._entries)

    @property
    def stats(self) -> CacheStats:
        return self._stats

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)

    def __contains__(self, fingerprint: object) -> bool:
        with self._guard:
            return fingerprint in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self.fingerprints())
