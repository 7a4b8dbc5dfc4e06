"""
Log Source Protocol: Paginated Upstream Boundary

Structural protocol (PEP 544) for anything that can list log events
for a query over a time range, one page at a time:

    fetch_page(query_text, start, end, cursor) -> Result[LogPage, UpstreamFetchError]

A page carries the events plus an optional continuation cursor; the
caller keeps asking with that cursor until none is returned.

Also provides:
- collect_events: drain all pages for one range
- InMemoryLogSource: list-backed source for local runs and tests
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Protocol, Sequence, runtime_checkable

from logwindow.core.errors import UpstreamFetchError
from logwindow.core.types import Result, Ok, Err, LogEvent, to_utc


# =============================================================================
# PAGE MODEL
# =============================================================================
@dataclass(frozen=True, slots=True)
class LogPage:
    """One page of upstream results."""
    events: tuple[LogEvent, ...]
    next_cursor: Optional[str] = None

    @property
    def has_more(self) -> bool:
        return bool(self.next_cursor)


@dataclass(slots=True)
class FetchResult:
    """All events for one range, with page accounting."""
    events: list[LogEvent] = field(default_factory=list)
    pages: int = 0


# =============================================================================
# PROTOCOL
# =============================================================================
@runtime_checkable
class LogSource(Protocol):
    """
    Upstream log listing.

    Implementations handle transport, authentication and their own
    retry policy; failures come back as Err(UpstreamFetchError).
    """

    async def fetch_page(
        self,
        query_text: str,
        start: datetime,
        end: datetime,
        cursor: Optional[str] = None,
    ) -> Result[LogPage, UpstreamFetchError]:
        ...


async def collect_events(
    source: LogSource,
    query_text: str,
    start: datetime,
    end: datetime,
) -> Result[FetchResult, UpstreamFetchError]:
    """
    Fetch every page for [start, end).

    Stops at the first page without a continuation cursor. Any page
    failure aborts the whole fetch; partial results are discarded.
    """
    result = FetchResult()
    cursor: Optional[str] = None

    while True:
        page_result = await source.fetch_page(query_text, start, end, cursor)
        if page_result.is_err():
            return page_result

        page = page_result.unwrap()
        result.events.extend(page.events)
        result.pages += 1

        if not page.has_more:
            return Ok(result)
        cursor = page.next_cursor


# =============================================================================
# IN-MEMORY SOURCE
# =============================================================================
class InMemoryLogSource:
    """
    List-backed LogSource.

    Matches events whose ``message`` contains the query text
    (case-insensitive); an empty or ``*`` query matches everything.
    Pages are cut every ``page_size`` events with integer-offset cursors.

    Usage:
        source = InMemoryLogSource(events, page_size=2)
        source.fail_next(UpstreamFetchError.transport("memory://"))
    """

    __slots__ = ("_events", "_page_size", "_latency_s", "_failures", "calls")

    def __init__(
        self,
        events: Sequence[LogEvent] = (),
        page_size: int = 1000,
        latency_s: float = 0.0,
    ) -> None:
        if page_size < 1:
            raise ValueError("page_size must be >= 1")
        self._events: list[LogEvent] = sorted(events, key=lambda e: e.timestamp)
        self._page_size = page_size
        self._latency_s = latency_s
        self._failures: list[UpstreamFetchError] = []
        # (query_text, start, end, cursor) for every call
        self.calls: list[tuple[str, datetime, datetime, Optional[str]]] = []

    def add(self, *events: LogEvent) -> None:
        self._events.extend(events)
        self._events.sort(key=lambda e: e.timestamp)

    def fail_next(self, error: UpstreamFetchError) -> None:
        """Make the next fetch_page call return ``error``."""
        self._failures.append(error)

    async def fetch_page(
        self,
        query_text: str,
        start: datetime,
        end: datetime,
        cursor: Optional[str] = None,
    ) -> Result[LogPage, UpstreamFetchError]:
        start, end = to_utc(start), to_utc(end)
        self.calls.append((query_text, start, end, cursor))

        if self._latency_s:
            await asyncio.sleep(self._latency_s)

        if self._failures:
            return Err(self._failures.pop(0))

        try:
            offset = int(cursor) if cursor else 0
        except ValueError as e:
            return Err(UpstreamFetchError.malformed_payload(f"bad cursor {cursor!r}", e))

        matching = [
            e for e in self._events
            if start <= e.timestamp < end and self._matches(query_text, e)
        ]
        chunk = matching[offset:offset + self._page_size]
        next_offset = offset + len(chunk)
        next_cursor = str(next_offset) if next_offset < len(matching) else None
        return Ok(LogPage(events=tuple(chunk), next_cursor=next_cursor))

    @staticmethod
    def _matches(query_text: str, event: LogEvent) -> bool:
        needle = query_text.strip().casefold()
        if not needle or needle == "*":
            return True
        return needle in event.message.casefold()
