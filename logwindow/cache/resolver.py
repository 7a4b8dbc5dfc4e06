"""
Range Resolver: Decide Where the Upstream Fetch Must Start

Given the cached window for a fingerprint and a requested start time,
compute the earliest instant that still has to be fetched.

Rules:
    no entry                          -> fetch from req_start
    cached_start < req_start < cached_end
                                      -> fetch from minute(cached_end - margin)
    anything else                     -> fetch from req_start

The trailing margin re-fetches the last minutes of the previous window so
events that landed late near that boundary are counted; the merger
overwrites those minutes rather than adding to them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum, auto
from typing import Optional

from logwindow.cache.store import CacheStore
from logwindow.core import constants as C
from logwindow.core.types import to_utc, truncate_to_minute

logger = logging.getLogger(__name__)


class ResolutionOutcome(Enum):
    """How the cached window related to the request."""
    MISS = auto()       # no entry for the fingerprint
    PARTIAL = auto()    # request start inside the window, fetch only the tail
    DISJOINT = auto()   # entry exists but cannot be extended


@dataclass(frozen=True, slots=True)
class Resolution:
    """Outcome of resolving one request against the cache."""
    fetch_start: datetime
    outcome: ResolutionOutcome
    cached_start: Optional[datetime] = None
    cached_end: Optional[datetime] = None

    @property
    def reuses_cache(self) -> bool:
        return self.outcome is ResolutionOutcome.PARTIAL


def resolve_fetch_start(
    store: CacheStore,
    fingerprint: str,
    req_start: datetime,
    margin: timedelta = timedelta(minutes=C.SAFETY_MARGIN_MINUTES),
) -> Resolution:
    """
    Compute the upstream fetch start for a request.

    Args:
        store: Cache store to consult (read-only here)
        fingerprint: Normalized query fingerprint
        req_start: Requested window start
        margin: Trailing overlap re-fetched when extending a window

    Returns:
        Resolution with fetch_start and the outcome for stats/logging
    """
    req_start = to_utc(req_start)
    entry = store.get(fingerprint)

    if entry is None:
        store.stats.misses += 1
        return Resolution(fetch_start=req_start, outcome=ResolutionOutcome.MISS)

    cached_start, cached_end = entry.start_time, entry.end_time

    if cached_end > req_start > cached_start:
        store.stats.hits += 1
        fetch_start = truncate_to_minute(cached_end - margin)
        logger.debug(
            "Extending cached window for %r from %s (cached [%s, %s))",
            fingerprint, fetch_start.isoformat(),
            cached_start.isoformat(), cached_end.isoformat(),
        )
        return Resolution(
            fetch_start=fetch_start,
            outcome=ResolutionOutcome.PARTIAL,
            cached_start=cached_start,
            cached_end=cached_end,
        )

    store.stats.disjoint += 1
    return Resolution(
        fetch_start=req_start,
        outcome=ResolutionOutcome.DISJOINT,
        cached_start=cached_start,
        cached_end=cached_end,
    )


class RangeResolver:
    """
    Range resolver bound to a store and a safety margin.

    Thin wrapper around resolve_fetch_start for callers that hold
    configuration once.
    """

    __slots__ = ("_store", "_margin")

    def __init__(
        self,
        store: CacheStore,
        safety_margin_minutes: int = C.SAFETY_MARGIN_MINUTES,
    ) -> None:
        self._store = store
        self._margin = timedelta(minutes=safety_margin_minutes)

    @property
    def margin(self) -> timedelta:
        return self._margin

    def resolve(self, fingerprint: str, req_start: datetime) -> Resolution:
        return resolve_fetch_start(self._store, fingerprint, req_start, self._margin)
