"""
Bucketed Series: Minute-Aligned Event Counts

Mapping from minute-truncated UTC timestamp to a non-negative count.

Design:
    Insertion order is irrelevant; ordering is produced on demand.
    Keys are normalized on the way in so every stored key has zero
    seconds and microseconds, whatever the caller passes.

Complexity:
    increment / set_count / get: O(1)
    prune_before: O(n)
    ordered_keys: O(n log n) per fresh iteration
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterator, Optional

from logwindow.core.types import to_utc, truncate_to_minute


class BucketedSeries:
    """
    Per-minute event counts for one query.

    Usage:
        series = BucketedSeries()
        series.increment(event.timestamp)
        for minute in series.ordered_keys():
            print(minute, series.get(minute))
    """

    __slots__ = ("_buckets",)

    def __init__(self) -> None:
        self._buckets: dict[datetime, int] = {}

    def increment(self, minute_key: datetime) -> int:
        """Add one to the bucket, creating it at 1. Returns the new count."""
        key = truncate_to_minute(minute_key)
        count = self._buckets.get(key, 0) + 1
        self._buckets[key] = count
        return count

    def set_count(self, minute_key: datetime, count: int) -> None:
        """Overwrite the bucket's count."""
        if count < 0:
            raise ValueError(f"count must be >= 0, got {count}")
        self._buckets[truncate_to_minute(minute_key)] = count

    def get(self, minute_key: datetime, default: int = 0) -> int:
        return self._buckets.get(truncate_to_minute(minute_key), default)

    def prune_before(self, t: datetime) -> int:
        """
        Remove every bucket strictly before ``t``.

        Returns:
            Number of buckets removed
        """
        cutoff = to_utc(t)
        stale = [k for k in self._buckets if k < cutoff]
        for k in stale:
            del self._buckets[k]
        return len(stale)

    def ordered_keys(self) -> Iterator[datetime]:
        """
        Ascending keys.

        Each call returns a fresh iterator over a snapshot, so the
        sequence can be restarted and is unaffected by later mutation.
        """
        return iter(sorted(self._buckets))

    def items(self) -> Iterator[tuple[datetime, int]]:
        """Ascending (minute, count) pairs."""
        for key in self.ordered_keys():
            yield key, self._buckets[key]

    def clear(self) -> None:
        self._buckets.clear()

    def first_key(self) -> Optional[datetime]:
        return min(self._buckets) if self._buckets else None

    def last_key(self) -> Optional[datetime]:
        return max(self._buckets) if self._buckets else None

    def copy(self) -> BucketedSeries:
        clone = BucketedSeries()
        clone._buckets = dict(self._buckets)
        return clone

    def __len__(self) -> int:
        return len(self._buckets)

    def __contains__(self, minute_key: object) -> bool:
        if not isinstance(minute_key, datetime):
            return False
        return truncate_to_minute(minute_key) in self._buckets

    def __repr__(self) -> str:
        return f"BucketedSeries(buckets={len(self._buckets)})"
