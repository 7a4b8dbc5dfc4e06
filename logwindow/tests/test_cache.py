"""
Unit Tests: Cache Entry, Store, Resolver and Merger

Tests:
    - CacheEntry window invariants
    - CacheStore lookups, upserts and per-fingerprint locks
    - Fetch-start resolution with the trailing safety margin
    - Overwrite-and-prune merge semantics
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from logwindow.cache.entry import CacheEntry
from logwindow.cache.merger import count_by_minute, merge
from logwindow.cache.resolver import (
    RangeResolver,
    ResolutionOutcome,
    resolve_fetch_start,
)
from logwindow.cache.store import CacheStore
from logwindow.core.types import LogEvent


T = datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)


def at(minutes: int, seconds: int = 0) -> datetime:
    return T + timedelta(minutes=minutes, seconds=seconds)


def events(*offsets: tuple[int, int]) -> list[LogEvent]:
    return [LogEvent(timestamp=at(m, s)) for m, s in offsets]


@pytest.fixture
def store() -> CacheStore:
    return CacheStore()


class TestCacheEntry:
    """Tests for CacheEntry."""

    def test_new(self):
        entry = CacheEntry.new("q", at(0), at(10))
        assert entry.window == (at(0), at(10))
        assert len(entry.series) == 0

    def test_inverted_window_rejected(self):
        with pytest.raises(ValueError):
            CacheEntry.new("q", at(10), at(0))

    def test_empty_window_allowed(self):
        entry = CacheEntry.new("q", at(5), at(5))
        assert entry.start_time == entry.end_time

    def test_covers_is_strict(self):
        entry = CacheEntry.new("q", at(0), at(10))
        assert entry.covers(at(5))
        assert not entry.covers(at(0))
        assert not entry.covers(at(10))

    def test_clear_keeps_window(self):
        entry = CacheEntry.new("q", at(0), at(10))
        entry.series.increment(at(1))
        entry.clear()
        assert len(entry.series) == 0
        assert entry.window == (at(0), at(10))


class TestCacheStore:
    """Tests for CacheStore."""

    def test_get_absent(self, store):
        assert store.get("missing") is None
        assert "missing" not in store
        assert len(store) == 0

    def test_set_and_replace(self, store):
        first = CacheEntry.new("q", at(0), at(10))
        second = CacheEntry.new("q", at(5), at(15))
        store.set("q", first)
        store.set("q", second)
        assert store.get("q") is second
        assert len(store) == 1
        assert store.stats.entry_count == 1

    def test_clear(self, store):
        store.set("a", CacheEntry.new("a", at(0), at(1)))
        store.set("b", CacheEntry.new("b", at(0), at(1)))
        store.clear()
        assert len(store) == 0
        assert list(store) == []

    def test_fingerprints_sorted(self, store):
        for fp in ("c", "a", "b"):
            store.set(fp, CacheEntry.new(fp, at(0), at(1)))
        assert store.fingerprints() == ["a", "b", "c"]

    def test_lock_per_fingerprint(self, store):
        assert store.lock_for("a") is store.lock_for("a")
        assert store.lock_for("a") is not store.lock_for("b")

    def test_lock_survives_clear(self, store):
        lock = store.lock_for("a")
        store.clear()
        assert store.lock_for("a") is lock

    def test_locks_independent(self, store):
        async def scenario():
            async with store.lock_for("a"):
                assert not store.lock_for("b").locked()
                async with store.lock_for("b"):
                    assert store.lock_for("a").locked()

        asyncio.run(scenario())


class TestResolver:
    """Tests for fetch-start resolution."""

    def test_unseen_fingerprint(self, store):
        resolution = resolve_fetch_start(store, "q", at(3))
        assert resolution.fetch_start == at(3)
        assert resolution.outcome is ResolutionOutcome.MISS
        assert store.stats.misses == 1

    def test_overlap_uses_margin(self, store):
        store.set("q", CacheEntry.new("q", at(0), at(10)))
        resolution = resolve_fetch_start(store, "q", at(5))
        assert resolution.fetch_start == at(8)
        assert resolution.outcome is ResolutionOutcome.PARTIAL
        assert resolution.reuses_cache
        assert store.stats.hits == 1

    def test_margin_truncated_to_minute(self, store):
        store.set("q", CacheEntry.new("q", at(0), at(10, 45)))
        resolution = resolve_fetch_start(store, "q", at(5))
        assert resolution.fetch_start == at(8)

    def test_start_on_cached_start_is_disjoint(self, store):
        store.set("q", CacheEntry.new("q", at(0), at(10)))
        resolution = resolve_fetch_start(store, "q", at(0))
        assert resolution.fetch_start == at(0)
        assert resolution.outcome is ResolutionOutcome.DISJOINT

    def test_start_at_cached_end_is_disjoint(self, store):
        store.set("q", CacheEntry.new("q", at(0), at(10)))
        resolution = resolve_fetch_start(store, "q", at(10))
        assert resolution.fetch_start == at(10)
        assert resolution.outcome is ResolutionOutcome.DISJOINT

    def test_start_before_window(self, store):
        store.set("q", CacheEntry.new("q", at(5), at(10)))
        resolution = resolve_fetch_start(store, "q", at(1))
        assert resolution.fetch_start == at(1)
        assert store.stats.disjoint == 1

    def test_resolver_is_read_only(self, store):
        entry = CacheEntry.new("q", at(0), at(10))
        entry.series.increment(at(3))
        store.set("q", entry)
        resolve_fetch_start(store, "q", at(5))
        assert store.get("q").window == (at(0), at(10))
        assert len(store.get("q").series) == 1

    def test_range_resolver_margin(self, store):
        store.set("q", CacheEntry.new("q", at(0), at(10)))
        resolver = RangeResolver(store, safety_margin_minutes=5)
        assert resolver.margin == timedelta(minutes=5)
        assert resolver.resolve("q", at(6)).fetch_start == at(5)


class TestMerger:
    """Tests for merge()."""

    def test_count_by_minute(self):
        counts = count_by_minute(events((2, 0), (2, 30), (3, 59)))
        assert counts[at(2)] == 2
        assert counts[at(3)] == 1

    def test_creates_entry(self, store):
        report = merge(store, "q", events((1, 5), (1, 50), (4, 0)), at(0), at(10))
        entry = store.get("q")
        assert report.created
        assert report.events == 3
        assert report.touched_minutes == 2
        assert entry.window == (at(0), at(10))
        assert list(entry.series.items()) == [(at(1), 2), (at(4), 1)]

    def test_overwrites_touched_minutes(self, store):
        merge(store, "q", events((8, 0), (8, 10), (9, 0)), at(0), at(10))
        merge(store, "q", events((8, 0), (9, 0), (9, 1), (12, 0)), at(5), at(15))
        series = store.get("q").series
        assert series.get(at(8)) == 1
        assert series.get(at(9)) == 2
        assert series.get(at(12)) == 1

    def test_prunes_before_new_start(self, store):
        merge(store, "q", events((2, 0), (2, 1), (2, 2)), at(0), at(10))
        report = merge(store, "q", [], at(8), at(20))
        entry = store.get("q")
        assert report.pruned == 1
        assert not report.created
        assert entry.window == (at(8), at(20))
        assert all(k >= entry.start_time for k in entry.series.ordered_keys())

    def test_window_start_truncated_to_minute(self, store):
        merge(store, "q", events((2, 10), (3, 0)), at(0), at(10))
        report = merge(store, "q", events((3, 0)), at(2, 40), at(12))
        entry = store.get("q")
        assert entry.start_time == at(2)
        assert entry.series.get(at(2)) == 1
        assert report.pruned == 0

    def test_untouched_minutes_kept(self, store):
        merge(store, "q", events((6, 0), (9, 0)), at(0), at(10))
        merge(store, "q", events((9, 0)), at(5), at(12))
        assert store.get("q").series.get(at(6)) == 1

    def test_idempotent(self, store):
        batch = events((1, 0), (1, 20), (3, 0))
        merge(store, "q", batch, at(0), at(10))
        first = list(store.get("q").series.items())
        merge(store, "q", batch, at(0), at(10))
        assert list(store.get("q").series.items()) == first

    def test_order_independent(self, store):
        batch = events((1, 0), (3, 0), (1, 20))
        other = CacheStore()
        merge(store, "q", batch, at(0), at(10))
        merge(other, "q", list(reversed(batch)), at(0), at(10))
        assert list(store.get("q").series.items()) == list(other.get("q").series.items())

    def test_stats_updated(self, store):
        merge(store, "q", events((1, 0), (2, 0)), at(0), at(10))
        merge(store, "q", [], at(5), at(15))
        assert store.stats.merges == 2
        assert store.stats.merged_events == 2
        assert store.stats.pruned_buckets == 2
