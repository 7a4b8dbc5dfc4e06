"""
Cache Entry: One Query's Series Plus Its Validity Window

The entry asserts that its series fully represents [start_time, end_time)
for one query fingerprint. Merge and resolve logic live one level up so
they can compare the previous window with the incoming request.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from logwindow.cache.series import BucketedSeries
from logwindow.core.types import to_utc


@dataclass(slots=True)
class CacheEntry:
    """
    Cached per-minute counts for one fingerprint.

    Invariants:
        end_time >= start_time
        every series key >= start_time once pruned
    """

    query: str
    start_time: datetime
    end_time: datetime
    series: BucketedSeries = field(default_factory=BucketedSeries)

    def __post_init__(self) -> None:
        self.start_time = to_utc(self.start_time)
        self.end_time = to_utc(self.end_time)
        if self.end_time < self.start_time:
            raise ValueError(
                f"end_time ({self.end_time.isoformat()}) must be >= "
                f"start_time ({self.start_time.isoformat()})"
            )

    @classmethod
    def new(cls, query: str, start: datetime, end: datetime) -> CacheEntry:
        return cls(query=query, start_time=start, end_time=end)

    @property
    def window(self) -> tuple[datetime, datetime]:
        return (self.start_time, self.end_time)

    def covers(self, t: datetime) -> bool:
        """True when ``t`` falls strictly inside the validity window."""
        t = to_utc(t)
        return self.start_time < t < self.end_time

    def set_window(self, start: datetime, end: datetime) -> None:
        start, end = to_utc(start), to_utc(end)
        if end < start:
            raise ValueError("window end must be >= window start")
        self.start_time = start
        self.end_time = end

    def clear(self) -> None:
        """Drop all buckets; the window is kept."""
        self.series.clear()

    def __repr__(self) -> str:
        return (
            f"CacheEntry(query={self.query!r}, "
            f"window=[{self.start_time.isoformat()}, {self.end_time.isoformat()}), "
            f"buckets={len(self.series)})"
        )
