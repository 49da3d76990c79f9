"""
Tests for synthspine.engine.dedup.

Tests cover:
- Duplicate detection and the window that catches it
- Event-time bucketing shared by all windows
- Window expiry on the arrival clock
- Capacity bounds and pruning
- Concurrent check-and-record
"""

import threading

from synthspine.core.timestamps import ManualClock
from synthspine.engine.dedup import (
    LONG,
    MEDIUM,
    SHORT,
    DedupKey,
    Deduplicator,
    default_windows,
)


def _dedup(clock: ManualClock, **kwargs) -> Deduplicator:
    return Deduplicator(clock=clock, **kwargs)


class TestDedupKey:
    """Tests for DedupKey."""

    def test_only_referenced_attributes_count(self):
        a = DedupKey.for_event("g", {"x": 1, "noise": 1}, ("x",), 0)
        b = DedupKey.for_event("g", {"x": 1, "noise": 2}, ("x",), 0)
        c = DedupKey.for_event("g", {"x": 2, "noise": 1}, ("x",), 0)
        assert a == b
        assert a != c

    def test_bucket(self):
        assert DedupKey("g", "h", 1_999).bucket(1_000) == 1
        assert DedupKey("g", "h", 2_000).bucket(1_000) == 2


class TestDeduplicator:
    """Tests for Deduplicator."""

    def test_repeat_is_duplicate(self):
        dedup = _dedup(ManualClock(0))
        key = DedupKey("g", "h", 1_000)
        assert dedup.check(key) is None
        assert dedup.check(key) == SHORT
        assert dedup.seen(key) is True

    def test_different_guid_or_content(self):
        dedup = _dedup(ManualClock(0))
        dedup.check(DedupKey("g", "h", 1_000))
        assert dedup.check(DedupKey("g2", "h", 1_000)) is None
        assert dedup.check(DedupKey("g", "h2", 1_000)) is None

    def test_same_bucket(self):
        """Event times within one bucket are the same mutation."""
        dedup = _dedup(ManualClock(0))
        dedup.check(DedupKey("g", "h", 1_000))
        assert dedup.check(DedupKey("g", "h", 1_500)) == SHORT

    def test_later_bucket_is_a_refresh(self):
        """The same content at a later event time is new in every window."""
        dedup = _dedup(ManualClock(0))
        dedup.check(DedupKey("g", "h", 1_000))
        assert dedup.check(DedupKey("g", "h", 2_000)) is None
        assert dedup.check(DedupKey("g", "h", 31_000)) is None
        assert dedup.check(DedupKey("g", "h", 31_999)) == SHORT

    def test_windows_share_bucket_ms(self):
        dedup = _dedup(ManualClock(0), bucket_ms=60_000)
        dedup.check(DedupKey("g", "h", 60_000))
        assert dedup.check(DedupKey("g", "h", 90_000)) == SHORT
        assert dedup.check(DedupKey("g", "h", 120_000)) is None

    def test_windows_expire_on_arrival_clock(self):
        clock = ManualClock(0)
        dedup = _dedup(clock)
        key = DedupKey("g", "h", 1_000)
        dedup.check(key)

        clock.advance(61_000)
        assert dedup.check(key) == MEDIUM

        clock.advance(3_600_000)
        assert dedup.check(key) is None

    def test_custom_windows(self):
        clock = ManualClock(0)
        dedup = _dedup(clock, windows=default_windows(1, 2, 3))
        key = DedupKey("g", "h", 0)
        dedup.check(key)
        clock.advance(2_500)
        assert dedup.check(key) == LONG

    def test_capacity_evicts_oldest(self):
        clock = ManualClock(0)
        dedup = _dedup(clock, windows=default_windows(max_entries=2), shards=1)
        for guid in ("g1", "g2", "g3"):
            clock.advance(1)
            dedup.check(DedupKey(guid, "h", 0))

        assert dedup.size() == {SHORT: 2, MEDIUM: 2, LONG: 2}
        assert dedup.check(DedupKey("g1", "h", 0)) is None
        assert dedup.check(DedupKey("g3", "h", 0)) == SHORT

    def test_prune(self):
        clock = ManualClock(0)
        dedup = _dedup(clock)
        dedup.check(DedupKey("g", "h", 0))

        assert dedup.prune(30_000) == 0
        assert dedup.prune(61_000) == 1
        assert dedup.prune(3_600_000) == 2
        assert dedup.size() == {SHORT: 0, MEDIUM: 0, LONG: 0}

    def test_clear(self):
        dedup = _dedup(ManualClock(0))
        key = DedupKey("g", "h", 0)
        dedup.check(key)
        dedup.clear()
        assert dedup.check(key) is None

    def test_concurrent_single_winner(self):
        """Exactly one of many concurrent checks of a key is new."""
        dedup = _dedup(ManualClock(0))
        key = DedupKey("g", "h", 0)
        results: list[str | None] = []
        lock = threading.Lock()
        barrier = threading.Barrier(8)

        def worker():
            barrier.wait()
            outcome = dedup.check(key)
            with lock:
                results.append(outcome)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count(None) == 1
        assert results.count(SHORT) == 7
