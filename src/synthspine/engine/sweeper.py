"""
Expiration sweeping, on demand or on a background thread.

``ExpirationSweeper.sweep(now)`` is one pass:

1. Tags past their own TTL are removed from their entities. The entity's
   expiration and version are left alone.
2. Entities past ``expires_at`` are removed by compare-and-expire: the
   ``(guid, version)`` pairs are collected first and an entity is only
   removed if it still has that version when its lock is taken. A merge
   that lands in between wins.
3. Relationships past ``expires_at`` are marked EXPIRED and removed.
4. PROPOSED relationships still within their validation budget are
   re-validated.
5. The dedup cache drops entries older than their window.

``PeriodicSweeper`` runs passes on a daemon thread so ingestion never
waits for expiration work.

┌──────────────────────────────────────────────────────────────────┐
│  PeriodicSweeper.start()                                         │
│      │                                                           │
│      ▼                                                           │
│   daemon thread: while not stop_event.wait(interval):            │
│                      tick_count += 1                             │
│                      sweeper.sweep(clock())                      │
│                                                                  │
│  PeriodicSweeper.stop(): stop_event.set(); join(timeout)         │
└──────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from synthspine.core.models import Entity
from synthspine.core.timestamps import now_ms
from synthspine.engine.dedup import Deduplicator
from synthspine.engine.relationships import RelationshipBuilder
from synthspine.engine.sink import NullSink, RecordSink
from synthspine.engine.store import EntityStore, RelationshipStore
from synthspine.observability.logging import get_logger
from synthspine.observability.metrics import SynthesisMetrics

logger = get_logger(__name__)


@dataclass
class SweepReport:
    """What one sweep pass removed or changed."""

    now: int
    entities_removed: list[str] = field(default_factory=list)
    entities_skipped: int = 0
    tags_removed: list[tuple[str, str]] = field(default_factory=list)
    relationships_expired: list[tuple[str, str, str]] = field(default_factory=list)
    relationships_validated: int = 0
    dedup_pruned: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "now": self.now,
            "entities_removed": len(self.entities_removed),
            "entities_skipped": self.entities_skipped,
            "tags_removed": len(self.tags_removed),
            "relationships_expired": len(self.relationships_expired),
            "relationships_validated": self.relationships_validated,
            "dedup_pruned": self.dedup_pruned,
        }


class ExpirationSweeper:
    """
    Removes expired tags, entities and relationships.

    Args:
        entities: Entity store
        relationships: Relationship store
        builder: Used to re-validate PROPOSED relationships (optional)
        dedup: Dedup cache to prune (optional)
        sink: Receives retractions
        republish: Called with each entity whose tags changed, so its
            record (and derived values) can be published again
        metrics: Optional synthesis metrics
    """

    def __init__(
        self,
        entities: EntityStore,
        relationships: RelationshipStore,
        *,
        builder: RelationshipBuilder | None = None,
        dedup: Deduplicator | None = None,
        sink: RecordSink | None = None,
        republish: Callable[[Entity, int], None] | None = None,
        metrics: SynthesisMetrics | None = None,
    ):
        self._entities = entities
        self._relationships = relationships
        self._builder = builder
        self._dedup = dedup
        self._sink = sink or NullSink()
        self._republish = republish
        self._metrics = metrics
        self._lock = threading.Lock()

    def sweep(self, now: int) -> SweepReport:
        """Run one pass at ``now``; passes never overlap."""
        with self._lock:
            report = SweepReport(now=now)
            self._sweep_tags(now, report)
            self._sweep_entities(now, report)
            self._sweep_relationships(now, report)
            if self._builder is not None:
                report.relationships_validated = len(self._builder.validate_pending())
            if self._dedup is not None:
                report.dedup_pruned = self._dedup.prune(now)

        if self._metrics is not None:
            self._metrics.swept.labels(kind="tag").inc(len(report.tags_removed))
            self._metrics.swept.labels(kind="entity").inc(len(report.entities_removed))
            self._metrics.swept.labels(kind="relationship").inc(len(report.relationships_expired))
            self._metrics.active_entities.set(len(self._entities))
        logger.info("sweep.completed", **report.to_dict())
        return report

    def _sweep_tags(self, now: int, report: SweepReport) -> None:
        report.tags_removed = self._entities.expire_tags(now)
        if self._republish is None:
            return
        for guid in dict.fromkeys(guid for guid, _ in report.tags_removed):
            entity = self._entities.get(guid)
            if entity is not None and not entity.is_expired(now):
                self._republish(entity, now)

    def _sweep_entities(self, now: int, report: SweepReport) -> None:
        for guid, version in self._entities.expired_candidates(now):
            removed = self._entities.remove_if_unchanged(guid, version, now)
            if removed is None:
                # refreshed between collection and removal
                report.entities_skipped += 1
                continue
            report.entities_removed.append(guid)
            self._sink.retract_entity(guid)
            logger.debug("sweep.entity_expired", guid=guid, entity_type=removed.type)

    def _sweep_relationships(self, now: int, report: SweepReport) -> None:
        for rel in self._relationships.expire(now):
            report.relationships_expired.append(rel.key)
            self._sink.retract_relationship(rel.key)
            logger.debug(
                "sweep.relationship_expired",
                source=rel.source_guid,
                target=rel.target_guid,
                relationship_type=rel.relationship_type,
            )


class PeriodicSweeper:
    """Runs :meth:`ExpirationSweeper.sweep` every ``interval_seconds`` on a daemon thread.

    Example:
        >>> periodic = PeriodicSweeper(sweeper, interval_seconds=30.0)
        >>> periodic.start()
        >>> # ... later ...
        >>> periodic.stop()
    """

    def __init__(
        self,
        sweeper: ExpirationSweeper,
        interval_seconds: float = 30.0,
        clock: Callable[[], int] = now_ms,
    ):
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")
        self._sweeper = sweeper
        self._interval = interval_seconds
        self._clock = clock
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._tick_count = 0
        self._failures = 0
        self._last_tick: datetime | None = None
        self._last_report: SweepReport | None = None
        self._lock = threading.Lock()

    def start(self) -> None:
        if self.is_running:
            logger.warning("sweep.already_started")
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, daemon=True, name="synth-sweeper")
        self._thread.start()

    def _loop(self) -> None:
        logger.info("sweep.started", interval_seconds=self._interval)
        while not self._stop_event.wait(self._interval):
            self.tick()
        logger.info("sweep.stopped", tick_count=self._tick_count)

    def tick(self) -> SweepReport | None:
        """Run one pass now; a failing pass is logged and counted, never raised."""
        with self._lock:
            self._tick_count += 1
            self._last_tick = datetime.now(UTC)
        try:
            report = self._sweeper.sweep(self._clock())
        except Exception:
            with self._lock:
                self._failures += 1
            logger.exception("sweep.failed")
            return None
        with self._lock:
            self._last_report = report
        return report

    def stop(self, timeout: float = 5.0) -> None:
        if self._thread is None:
            return
        self._stop_event.set()
        self._thread.join(timeout=timeout)
        if self._thread.is_alive():
            logger.warning("sweep.stop_timeout")
        self._thread = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def tick_count(self) -> int:
        return self._tick_count

    def health(self) -> dict[str, Any]:
        return {
            "healthy": self.is_running,
            "tick_count": self._tick_count,
            "failures": self._failures,
            "last_tick": self._last_tick.isoformat() if self._last_tick else None,
            "interval_seconds": self._interval,
            "last_report": self._last_report.to_dict() if self._last_report else None,
        }
