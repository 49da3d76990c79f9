"""
Multi-window deduplication of entity mutations.

Providers re-send the same sample, collectors retry, and several providers
report the same logical system. A mutation whose GUID and relevant content
were already applied recently is dropped before the merger so that a burst
of repeats costs one merge, not many.

Manifesto:
    - **Keyed on what matters:** ``DedupKey`` is the GUID, a hash of only
      the attributes the matched rule reads, and an event-time bucket.
      Unrelated attributes changing does not defeat deduplication.
    - **Refreshes pass:** Every window keys on the same ``bucket_ms``
      bucket, so the same values reported at a later event time are a new
      mutation that refreshes tag and entity expiry. Windows differ only in
      how long they remember a key.
    - **Three scales:** SHORT, MEDIUM and LONG windows each keep their own
      entries, so a key evicted from the short window by capacity is still
      caught by the longer ones.
    - **Bounded:** Each window has a capacity; the oldest entries go first.
    - **Concurrent:** Keys are sharded by GUID with one lock per shard;
      check-and-record is atomic within the shard.

Architecture:
    ::

        seen(key) ──► shard = stable_shard(key.guid)
                          │
                          ▼   (shard lock held)
            ┌──────────────────────────────────────┐
            │ SHORT   span 60s    bucket = ts // b │
            │ MEDIUM  span 300s   bucket = ts // b │
            │ LONG    span 3600s  bucket = ts // b │
            └──────────────────────────────────────┘
            first window holding an unexpired entry → duplicate
            windows lacking the entry → recorded at arrival time

Window spans are measured on the injectable arrival clock, buckets on
event time.

Tags:
    deduplication, idempotency, windows, sharding
"""

from __future__ import annotations

import threading
from collections import OrderedDict
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from synthspine.core.hashing import content_hash, stable_shard
from synthspine.core.timestamps import now_ms

SHORT = "short"
MEDIUM = "medium"
LONG = "long"


@dataclass(frozen=True)
class DedupKey:
    """Identity of one entity mutation."""

    guid: str
    content_hash: str
    timestamp: int

    @classmethod
    def for_event(
        cls,
        guid: str,
        attributes: Mapping[str, Any],
        referenced: tuple[str, ...],
        timestamp: int,
    ) -> DedupKey:
        """Key over the subset of ``attributes`` named in ``referenced``."""
        subset = {name: attributes.get(name) for name in referenced}
        return cls(guid=guid, content_hash=content_hash(subset), timestamp=timestamp)

    def bucket(self, bucket_ms: int) -> int:
        return self.timestamp // bucket_ms


@dataclass(frozen=True)
class DedupWindow:
    """One window scale."""

    name: str
    span_ms: int
    max_entries: int


def default_windows(
    short_seconds: int = 60,
    medium_seconds: int = 300,
    long_seconds: int = 3600,
    max_entries: int = 100_000,
) -> tuple[DedupWindow, ...]:
    return (
        DedupWindow(SHORT, short_seconds * 1000, max_entries),
        DedupWindow(MEDIUM, medium_seconds * 1000, max_entries),
        DedupWindow(LONG, long_seconds * 1000, max_entries),
    )


_BucketKey = tuple[str, str, int]


class _Shard:
    def __init__(self, windows: tuple[DedupWindow, ...]):
        self.lock = threading.Lock()
        self.entries: dict[str, OrderedDict[_BucketKey, int]] = {w.name: OrderedDict() for w in windows}


class Deduplicator:
    """
    Sharded, bounded, three-window duplicate detector.

    Example:
        >>> clock = iter(range(0, 10_000, 100)).__next__
        >>> dedup = Deduplicator(clock=clock)
        >>> key = DedupKey("g1", "abc", timestamp=1_000)
        >>> dedup.seen(key)
        False
        >>> dedup.seen(key)
        True
    """

    def __init__(
        self,
        windows: tuple[DedupWindow, ...] | None = None,
        *,
        bucket_ms: int = 1000,
        shards: int = 16,
        clock: Callable[[], int] = now_ms,
    ):
        if bucket_ms <= 0:
            raise ValueError(f"bucket_ms must be positive, got {bucket_ms}")
        self._windows = windows or default_windows()
        self._bucket_ms = bucket_ms
        self._clock = clock
        self._shards = [_Shard(self._windows) for _ in range(max(1, shards))]
        # capacity is per window, spread over shards
        self._shard_capacity = {
            w.name: max(1, w.max_entries // len(self._shards)) for w in self._windows
        }

    @property
    def windows(self) -> tuple[DedupWindow, ...]:
        return self._windows

    def _bucket_key(self, key: DedupKey) -> _BucketKey:
        return (key.guid, key.content_hash, key.bucket(self._bucket_ms))

    def check(self, key: DedupKey) -> str | None:
        """
        Check and record ``key`` atomically.

        Returns:
            Name of the window that already held the key (a duplicate), or
            None if the mutation is new
        """
        now = self._clock()
        shard = self._shards[stable_shard(key.guid, len(self._shards))]
        bkey = self._bucket_key(key)
        caught: str | None = None
        with shard.lock:
            for window in self._windows:
                entries = shard.entries[window.name]
                recorded_at = entries.get(bkey)
                if recorded_at is not None and now - recorded_at < window.span_ms:
                    if caught is None:
                        caught = window.name
                    continue
                if recorded_at is not None:
                    del entries[bkey]
                entries[bkey] = now
                self._evict(entries, window, now)
        return caught

    def seen(self, key: DedupKey) -> bool:
        """True if ``key`` is a duplicate; records it either way."""
        return self.check(key) is not None

    def _evict(self, entries: OrderedDict[_BucketKey, int], window: DedupWindow, now: int) -> None:
        # insertion order is arrival order
        while entries:
            _, recorded_at = next(iter(entries.items()))
            if now - recorded_at >= window.span_ms or len(entries) > self._shard_capacity[window.name]:
                entries.popitem(last=False)
            else:
                break

    def prune(self, now: int | None = None) -> int:
        """Drop expired entries from every window; returns how many were removed."""
        now = self._clock() if now is None else now
        removed = 0
        for shard in self._shards:
            with shard.lock:
                for window in self._windows:
                    entries = shard.entries[window.name]
                    before = len(entries)
                    self._evict(entries, window, now)
                    removed += before - len(entries)
        return removed

    def size(self) -> dict[str, int]:
        """Entry count per window."""
        counts = {w.name: 0 for w in self._windows}
        for shard in self._shards:
            with shard.lock:
                for name, entries in shard.entries.items():
                    counts[name] += len(entries)
        return counts

    def clear(self) -> None:
        for shard in self._shards:
            with shard.lock:
                for entries in shard.entries.values():
                    entries.clear()
