"""
Query Orchestrator: Resolve, Fetch, Merge, Extract

Answers "events per minute for query Q over [start, end)" while
fetching from the upstream only what the cache cannot supply.

State machine per request:

    VALIDATE -> RESOLVE -> FETCH -> MERGE -> EXTRACT -> DONE
        |                    |
        +-> REJECTED         +-> FAILED (cache untouched)

Concurrency:
    Each fingerprint has its own asyncio lock in the CacheStore.
    With serialize_fetches=True the whole RESOLVE..EXTRACT sequence
    holds it, so concurrent requests for one query never fetch the
    same range twice. With serialize_fetches=False only RESOLVE and
    MERGE..EXTRACT hold it and FETCH runs unlocked; overlapping fetches
    are then possible but harmless because merge overwrites.
    Different fingerprints never contend.
"""

from __future__ import annotations

import asyncio
import time
from contextlib import nullcontext
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Optional

from logwindow.cache.merger import MergeReport, merge
from logwindow.cache.resolver import RangeResolver, Resolution
from logwindow.cache.store import CacheStore
from logwindow.core.config import CacheConfig
from logwindow.core.errors import LogWindowError
from logwindow.core.types import Result, Ok, Err, CountPoint
from logwindow.observability.logging import StructuredLogger
from logwindow.query.request import QueryRequest
from logwindow.query.source import LogSource, collect_events

logger = StructuredLogger(__name__)


class QueryState(Enum):
    """Stage a request reached."""
    VALIDATE = auto()
    RESOLVE = auto()
    FETCH = auto()
    MERGE = auto()
    EXTRACT = auto()
    DONE = auto()
    REJECTED = auto()
    FAILED = auto()


@dataclass
class QueryOutcome:
    """Detailed result of one execute() call."""
    request: QueryRequest
    state: QueryState = QueryState.VALIDATE
    points: list[CountPoint] = field(default_factory=list)
    error: Optional[LogWindowError] = None
    resolution: Optional[Resolution] = None
    merge_report: Optional[MergeReport] = None
    fetched_events: int = 0
    fetched_pages: int = 0
    latency_ms: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.state is QueryState.DONE

    def to_result(self) -> Result[list[CountPoint], LogWindowError]:
        if self.error is not None:
            return Err(self.error)
        return Ok(self.points)


def extract_points(store: CacheStore, fingerprint: str) -> list[CountPoint]:
    """
    Ascending (minute, count) pairs for the fingerprint's window.

    Buckets are restricted to [start_time, end_time); those before the
    start are already pruned, those at or after the end can remain from
    an earlier, later-ending window.
    """
    entry = store.get(fingerprint)
    if entry is None:
        return []
    series = entry.series
    return [
        CountPoint(timestamp=minute, count=series.get(minute))
        for minute in series.ordered_keys()
        if entry.start_time <= minute < entry.end_time
    ]


class QueryOrchestrator:
    """
    Incremental per-query windowed aggregation.

    Usage:
        orchestrator = QueryOrchestrator(source)
        result = await orchestrator.execute(
            QueryRequest("service:web status:error", start, end)
        )
        if result.is_ok():
            for point in result.unwrap():
                ...
    """

    __slots__ = ("_source", "_store", "_resolver", "_serialize_fetches")

    def __init__(
        self,
        source: LogSource,
        store: Optional[CacheStore] = None,
        config: Optional[CacheConfig] = None,
    ) -> None:
        config = config or CacheConfig()
        self._source = source
        self._store = store if store is not None else CacheStore()
        self._resolver = RangeResolver(self._store, config.safety_margin_minutes)
        self._serialize_fetches = config.serialize_fetches

    @property
    def store(self) -> CacheStore:
        return self._store

    @property
    def source(self) -> LogSource:
        return self._source

    async def execute(
        self,
        request: QueryRequest,
    ) -> Result[list[CountPoint], LogWindowError]:
        """
        Answer one request.

        Returns:
            Ok(points) ascending by minute, zero-count minutes absent
            Err(MalformedRequestError) before any cache interaction
            Err(UpstreamFetchError) unchanged from the source; cache untouched
        """
        outcome = await self.execute_detailed(request)
        return outcome.to_result()

    async def execute_detailed(self, request: QueryRequest) -> QueryOutcome:
        """Like execute(), but report every stage reached."""
        started = time.perf_counter()
        outcome = QueryOutcome(request=request)

        validation = request.validate()
        if validation.is_err():
            outcome.state = QueryState.REJECTED
            outcome.error = validation.error
            logger.warning("Rejected request", ref_id=request.ref_id, error=str(validation.error))
            return outcome

        fingerprint = request.fingerprint
        lock = self._store.lock_for(fingerprint)

        with logger.context(fingerprint=fingerprint, ref_id=request.ref_id):
            whole = lock if self._serialize_fetches else nullcontext()
            async with whole:
                await self._run(request, fingerprint, lock, outcome)

        outcome.latency_ms = (time.perf_counter() - started) * 1000
        logger.info(
            "Query finished",
            state=outcome.state.name,
            points=len(outcome.points),
            fetched_events=outcome.fetched_events,
            fetched_pages=outcome.fetched_pages,
            latency_ms=round(outcome.latency_ms, 3),
        )
        return outcome

    async def _run(
        self,
        request: QueryRequest,
        fingerprint: str,
        lock: asyncio.Lock,
        outcome: QueryOutcome,
    ) -> None:
        # Nested stage locks are only taken when the outer lock is not held
        stage_lock = nullcontext() if self._serialize_fetches else lock

        # RESOLVE
        outcome.state = QueryState.RESOLVE
        async with stage_lock:
            resolution = self._resolver.resolve(fingerprint, request.start)
        outcome.resolution = resolution
        logger.debug(
            "Resolved fetch range",
            outcome=resolution.outcome.name,
            fetch_start=resolution.fetch_start.isoformat(),
            fetch_end=request.end.isoformat(),
        )

        # FETCH
        outcome.state = QueryState.FETCH
        fetched = await collect_events(
            self._source, request.query_text, resolution.fetch_start, request.end,
        )
        if fetched.is_err():
            outcome.state = QueryState.FAILED
            outcome.error = fetched.error
            logger.error("Upstream fetch failed", error=str(fetched.error))
            return

        batch = fetched.unwrap()
        outcome.fetched_events = len(batch.events)
        outcome.fetched_pages = batch.pages

        async with stage_lock:
            # MERGE
            outcome.state = QueryState.MERGE
            outcome.merge_report = merge(
                self._store, fingerprint, batch.events, request.start, request.end,
            )

            # EXTRACT
            outcome.state = QueryState.EXTRACT
            outcome.points = extract_points(self._store, fingerprint)

        outcome.state = QueryState.DONE

