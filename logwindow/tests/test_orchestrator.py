"""
Integration Tests: Query Orchestrator

Tests:
    - Round trip over an empty cache
    - Incremental extension with the trailing safety margin
    - Prune on window advance
    - Rejection before any cache interaction
    - Upstream failure leaves the cache untouched
    - Fingerprint case folding
    - Concurrent same-fingerprint requests
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from logwindow.cache.resolver import ResolutionOutcome
from logwindow.cache.store import CacheStore
from logwindow.core.config import CacheConfig
from logwindow.core.errors import (
    ErrorCode,
    MalformedRequestError,
    UpstreamFetchError,
)
from logwindow.core.types import CountPoint, LogEvent
from logwindow.query.orchestrator import QueryOrchestrator, QueryState
from logwindow.query.request import QueryRequest
from logwindow.query.source import InMemoryLogSource, collect_events


T = datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)


def at(minutes: int, seconds: int = 0) -> datetime:
    return T + timedelta(minutes=minutes, seconds=seconds)


def event(minutes: int, seconds: int = 0, message: str = "error happened") -> LogEvent:
    return LogEvent(timestamp=at(minutes, seconds), message=message)


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def source() -> InMemoryLogSource:
    return InMemoryLogSource()


@pytest.fixture
def orchestrator(source) -> QueryOrchestrator:
    return QueryOrchestrator(source)


class TestRequestValidation:
    """Tests for QueryRequest validation."""

    def test_valid(self):
        result = QueryRequest.create("status:error", at(0), at(10))
        assert result.is_ok()
        assert result.unwrap().fingerprint == "status:error"

    def test_empty_query(self):
        result = QueryRequest.create("   ", at(0), at(10))
        assert result.is_err()
        assert result.error.code is ErrorCode.REQUEST_EMPTY_FINGERPRINT

    def test_inverted_range(self):
        result = QueryRequest.create("q", at(10), at(10))
        assert result.is_err()
        assert result.error.code is ErrorCode.REQUEST_INVERTED_RANGE

    def test_fingerprint_casefold(self):
        assert QueryRequest("Status:ERROR", at(0), at(1)).fingerprint == "status:error"


class TestPagination:
    """Tests for collect_events over a paged source."""

    def test_drains_all_pages(self):
        source = InMemoryLogSource([event(n) for n in range(5)], page_size=2)
        result = run(collect_events(source, "error", at(0), at(10)))
        fetched = result.unwrap()
        assert len(fetched.events) == 5
        assert fetched.pages == 3
        assert [c[3] for c in source.calls] == [None, "2", "4"]

    def test_failure_mid_pagination(self):
        source = InMemoryLogSource([event(n) for n in range(5)], page_size=2)
        error = UpstreamFetchError.transport("memory://")

        async def scenario():
            first = await source.fetch_page("error", at(0), at(10))
            source.fail_next(error)
            return first, await collect_events(source, "error", at(0), at(10))

        first, result = run(scenario())
        assert first.unwrap().has_more
        assert result.is_err()
        assert result.error is error


class TestOrchestrator:
    """Tests for QueryOrchestrator.execute()."""

    def test_round_trip(self, source, orchestrator):
        source.add(event(0), event(3, 15), event(7, 59))
        result = run(orchestrator.execute(QueryRequest("error", at(0), at(10))))
        assert result.unwrap() == [
            CountPoint(at(0), 1),
            CountPoint(at(3), 1),
            CountPoint(at(7), 1),
        ]

    def test_zero_minutes_absent(self, source, orchestrator):
        source.add(event(2), event(2, 30))
        points = run(orchestrator.execute(QueryRequest("error", at(0), at(10)))).unwrap()
        assert points == [CountPoint(at(2), 2)]

    def test_errors_scenario(self, source, orchestrator):
        source.add(event(2, 0), event(2, 10), event(2, 20))

        first = run(orchestrator.execute(QueryRequest("error", at(0), at(10))))
        assert first.unwrap() == [CountPoint(at(2), 3)]

        outcome = run(orchestrator.execute_detailed(QueryRequest("error", at(8), at(20))))
        assert outcome.succeeded
        assert outcome.resolution.outcome is ResolutionOutcome.PARTIAL
        assert outcome.resolution.fetch_start == at(8)
        assert source.calls[-1][1] == at(8)
        assert source.calls[-1][2] == at(20)

        entry = orchestrator.store.get("error")
        assert entry.window == (at(8), at(20))
        assert at(2) not in entry.series
        assert outcome.points == []
        assert outcome.merge_report.pruned == 1

    def test_incremental_fetch_only_tail(self, source, orchestrator):
        source.add(event(1), event(5))
        run(orchestrator.execute(QueryRequest("error", at(0), at(10))))

        source.add(event(12))
        points = run(orchestrator.execute(QueryRequest("error", at(5), at(15)))).unwrap()

        assert source.calls[-1][1] == at(8)
        assert points == [CountPoint(at(5), 1), CountPoint(at(12), 1)]

    def test_margin_not_double_counted(self, source, orchestrator):
        source.add(event(8, 30))
        run(orchestrator.execute(QueryRequest("error", at(0), at(10))))

        # Late arrival inside the previous window, plus a new event
        source.add(event(9, 10), event(12))
        points = run(orchestrator.execute(QueryRequest("error", at(5), at(15)))).unwrap()

        assert points == [
            CountPoint(at(8), 1),
            CountPoint(at(9), 1),
            CountPoint(at(12), 1),
        ]

    def test_unaligned_start_keeps_first_minute(self, source, orchestrator):
        source.add(event(0, 45), event(3))
        points = run(orchestrator.execute(QueryRequest("error", at(0, 37), at(10)))).unwrap()

        assert points == [CountPoint(at(0), 1), CountPoint(at(3), 1)]
        assert orchestrator.store.get("error").start_time == at(0)

    def test_unaligned_start_stable_on_repeat(self, source, orchestrator):
        source.add(*(event(n, 50) for n in range(5, 15)))
        request = QueryRequest("error", at(5, 30), at(15, 30))

        first = run(orchestrator.execute(request)).unwrap()
        outcome = run(orchestrator.execute_detailed(request))

        assert first[0] == CountPoint(at(5), 1)
        assert outcome.resolution.outcome is ResolutionOutcome.PARTIAL
        assert outcome.points == first
        assert len(first) == 10

    def test_repeat_identical_request(self, source, orchestrator):
        source.add(event(1), event(2))
        request = QueryRequest("error", at(0), at(10))
        first = run(orchestrator.execute(request)).unwrap()
        second = run(orchestrator.execute(request)).unwrap()
        assert first == second

    def test_rejected_before_cache(self, source, orchestrator):
        outcome = run(orchestrator.execute_detailed(QueryRequest("", at(0), at(10))))
        assert outcome.state is QueryState.REJECTED
        assert isinstance(outcome.error, MalformedRequestError)
        assert source.calls == []
        assert len(orchestrator.store) == 0
        assert orchestrator.store.stats.lookups == 0

    def test_inverted_range_rejected(self, source, orchestrator):
        result = run(orchestrator.execute(QueryRequest("error", at(10), at(5))))
        assert result.is_err()
        assert result.error.code is ErrorCode.REQUEST_INVERTED_RANGE
        assert source.calls == []

    def test_failure_leaves_cache_untouched(self, source, orchestrator):
        source.add(event(2))
        run(orchestrator.execute(QueryRequest("error", at(0), at(10))))
        before = list(orchestrator.store.get("error").series.items())

        error = UpstreamFetchError.http_status("memory://", 503)
        source.fail_next(error)
        outcome = run(orchestrator.execute_detailed(QueryRequest("error", at(5), at(15))))

        assert outcome.state is QueryState.FAILED
        assert outcome.error is error
        entry = orchestrator.store.get("error")
        assert entry.window == (at(0), at(10))
        assert list(entry.series.items()) == before

    def test_failure_on_first_request_creates_nothing(self, source, orchestrator):
        error = UpstreamFetchError.transport("memory://")
        source.fail_next(error)
        result = run(orchestrator.execute(QueryRequest("error", at(0), at(10))))
        assert result.is_err()
        assert result.error is error
        assert orchestrator.store.get("error") is None

    def test_case_folded_fingerprint(self, source, orchestrator):
        source.add(event(1))
        run(orchestrator.execute(QueryRequest("ERROR", at(0), at(10))))
        run(orchestrator.execute(QueryRequest("error", at(5), at(15))))

        assert orchestrator.store.fingerprints() == ["error"]
        # Upstream sees the text as written
        assert source.calls[0][0] == "ERROR"

    def test_separate_fingerprints(self, source, orchestrator):
        source.add(event(1, message="timeout"), event(2, message="error"))
        a = run(orchestrator.execute(QueryRequest("timeout", at(0), at(10)))).unwrap()
        b = run(orchestrator.execute(QueryRequest("error", at(0), at(10)))).unwrap()
        assert a == [CountPoint(at(1), 1)]
        assert b == [CountPoint(at(2), 1)]
        assert len(orchestrator.store) == 2

    def test_pages_reported(self):
        source = InMemoryLogSource([event(n) for n in range(5)], page_size=2)
        orchestrator = QueryOrchestrator(source)
        outcome = run(orchestrator.execute_detailed(QueryRequest("error", at(0), at(10))))
        assert outcome.fetched_pages == 3
        assert outcome.fetched_events == 5
        assert len(outcome.points) == 5

    def test_shared_store(self, source):
        store = CacheStore()
        source.add(event(1))
        run(QueryOrchestrator(source, store).execute(QueryRequest("error", at(0), at(10))))
        assert store.get("error") is not None


class TestConcurrency:
    """Concurrent requests for the same fingerprint."""

    @pytest.mark.parametrize("serialize", [True, False])
    def test_concurrent_same_fingerprint(self, serialize):
        source = InMemoryLogSource(
            [event(n, s) for n in range(20) for s in (0, 30)],
            latency_s=0.001,
        )
        orchestrator = QueryOrchestrator(source, config=CacheConfig(serialize_fetches=serialize))

        async def scenario():
            requests = [
                QueryRequest("error", at(i), at(i + 10)) for i in range(8)
            ]
            return await asyncio.gather(*(orchestrator.execute(r) for r in requests))

        results = run(scenario())

        for result in results:
            points = result.unwrap()
            keys = [p.timestamp for p in points]
            assert keys == sorted(set(keys))
            assert all(p.count >= 0 for p in points)

        entry = orchestrator.store.get("error")
        keys = list(entry.series.ordered_keys())
        assert len(keys) == len(set(keys))
        assert all(entry.series.get(k) == 2 for k in keys)
        assert all(k >= entry.start_time for k in keys)

    def test_serialized_fetches_do_not_overlap(self):
        source = InMemoryLogSource([event(n) for n in range(10)], latency_s=0.001)

        in_flight = 0
        peak = 0
        inner_fetch = source.fetch_page

        async def tracking_fetch(*args, **kwargs):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            try:
                return await inner_fetch(*args, **kwargs)
            finally:
                in_flight -= 1

        class Tracked:
            fetch_page = staticmethod(tracking_fetch)

        orchestrator = QueryOrchestrator(Tracked())

        async def scenario():
            request = QueryRequest("error", at(0), at(10))
            await asyncio.gather(*(orchestrator.execute(request) for _ in range(5)))

        run(scenario())
        assert peak == 1
