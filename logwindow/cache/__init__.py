"""
Cache module: Windowed per-minute counts keyed by query fingerprint.

- BucketedSeries: minute -> count mapping with ordered extraction
- CacheEntry: series plus its asserted-complete window
- CacheStore: fingerprint -> entry with per-fingerprint locks
- resolve_fetch_start / RangeResolver: what still needs fetching
- merge: fold a fetched batch into the store
"""

from logwindow.cache.series import BucketedSeries
from logwindow.cache.entry import CacheEntry
from logwindow.cache.store import CacheStore, CacheStats
from logwindow.cache.resolver import (
    RangeResolver,
    Resolution,
    ResolutionOutcome,
    resolve_fetch_start,
)
from logwindow.cache.merger import MergeReport, count_by_minute, merge

__all__ = [
    "BucketedSeries",
    "CacheEntry",
    "CacheStore",
    "CacheStats",
    "RangeResolver",
    "Resolution",
    "ResolutionOutcome",
    "resolve_fetch_start",
    "MergeReport",
    "count_by_minute",
    "merge",
]
