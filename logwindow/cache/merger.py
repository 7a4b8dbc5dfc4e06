"""
Merger: Fold Fetched Events Into a Cache Entry

Steps (order-independent and idempotent per batch):
    1. Truncate every event timestamp to its minute
    2. Overwrite each touched minute with the batch count for that minute
    3. Advance the window to [minute(req_start), req_end)
    4. Prune buckets strictly before the new start
    5. Store the entry back under the fingerprint

Overwriting (rather than incrementing) touched minutes is what keeps the
re-fetched safety-margin minutes from being double counted.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

from logwindow.cache.entry import CacheEntry
from logwindow.cache.store import CacheStore
from logwindow.core.types import LogEvent, to_utc, truncate_to_minute

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class MergeReport:
    """What a merge changed."""
    entry: CacheEntry
    events: int
    touched_minutes: int
    pruned: int
    created: bool


def count_by_minute(events: Iterable[LogEvent]) -> Counter[datetime]:
    """Per-minute event counts for one fetched batch."""
    return Counter(event.minute for event in events)


def merge(
    store: CacheStore,
    fingerprint: str,
    events: Iterable[LogEvent],
    req_start: datetime,
    req_end: datetime,
) -> MergeReport:
    """
    Merge a fetched batch into the fingerprint's entry.

    Creates the entry when none exists yet. Never fails once the
    events have been fetched.

    The stored window starts at the minute containing req_start, so
    the request's first partial minute survives the prune.
    """
    req_start, req_end = truncate_to_minute(req_start), to_utc(req_end)
    counts = count_by_minute(events)

    entry = store.get(fingerprint)
    created = entry is None
    if entry is None:
        entry = CacheEntry.new(fingerprint, req_start, req_end)

    for minute, count in counts.items():
        entry.series.set_count(minute, count)

    entry.set_window(req_start, req_end)
    pruned = entry.series.prune_before(entry.start_time)

    store.set(fingerprint, entry)

    n_events = sum(counts.values())
    store.stats.merges += 1
    store.stats.merged_events += n_events
    store.stats.pruned_buckets += pruned

    logger.debug(
        "Merged %d events into %d minutes for %r, pruned %d",
        n_events, len(counts), fingerprint, pruned,
    )
    return MergeReport(
        entry=entry,
        events=n_events,
        touched_minutes=len(counts),
        pruned=pruned,
        created=created,
    )
