"""
Synthesis engine: one event in, entity and relationship changes out.

Manifesto:
    The engine wires the components together and owns the per-event
    control flow. It holds no entity state of its own; state lives in the
    stores, rules live in the snapshot, and every component it calls is
    replaceable in tests.

    - **Pinned rules:** The snapshot is read once per event. A rule reload
      in the middle of an event does not change how that event is handled.
    - **Never raises on expected traffic:** No match, unresolved
      identifiers, duplicates and GUID collisions are logged, counted and
      reported in :class:`ProcessResult`.
    - **One type, one rule:** Within an entity type the first matching rule
      applies. Different entity types are independent, so one event may
      synthesize several entities.

Architecture:
    ::

        process(event)
          │  snapshot = holder.current                      (pin epoch)
          ├─ for definition in snapshot.definitions:
          │     RuleMatcher.match ──► no_match
          │     build_identifier ──► identifier_unresolved
          │     generate_guid
          │     Deduplicator.check ──► duplicate
          │     TagExtractor.extract
          │     EntityMerger.merge ──► guid_collision
          │     sink.publish_entity(record with derived values)
          │     (created) RelationshipBuilder.validate_pending(guid)
          └─ RelationshipBuilder.build(event, snapshot.relationship_rules)

Tags:
    engine, pipeline, synthesis, orchestration
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from synthspine.config.settings import SynthesisSettings, get_settings
from synthspine.core.errors import GuidCollisionError, IdentifierUnresolvedError
from synthspine.core.guid import generate_guid
from synthspine.core.models import Entity, EntityRecord, Event, RelationshipRecord
from synthspine.core.timestamps import now_ms
from synthspine.engine.dedup import DedupKey, Deduplicator, default_windows
from synthspine.engine.derived import to_entity_record
from synthspine.engine.identifier import build_identifier, try_build_identifier
from synthspine.engine.matcher import RuleMatcher
from synthspine.engine.merger import EntityMerger
from synthspine.engine.relationships import RelationshipBuilder, RelationshipOutcome
from synthspine.engine.sink import NullSink, RecordSink
from synthspine.engine.store import (
    EntityLookup,
    EntityStore,
    InMemoryEntityStore,
    InMemoryRelationshipStore,
    RelationshipStore,
    StoreEntityLookup,
)
from synthspine.engine.sweeper import ExpirationSweeper, SweepReport
from synthspine.engine.tags import TagExtractor
from synthspine.observability.logging import get_logger, push_context
from synthspine.observability.metrics import MetricsRegistry, SynthesisMetrics
from synthspine.rules.models import EntityDefinition
from synthspine.rules.snapshot import RuleSnapshot, SnapshotHolder

logger = get_logger(__name__)

# Reasons an entity type was skipped for an event
NO_MATCH = "no_match"
IDENTIFIER_UNRESOLVED = "identifier_unresolved"
DUPLICATE = "duplicate"
GUID_COLLISION = "guid_collision"


@dataclass(frozen=True)
class SynthesizedEntity:
    entity_type: str
    guid: str
    created: bool
    changed_tags: tuple[str, ...] = ()


@dataclass(frozen=True)
class SkippedEntity:
    entity_type: str
    reason: str
    guid: str | None = None
    detail: str | None = None


@dataclass
class ProcessResult:
    """Everything one event did."""

    event_type: str
    epoch: int
    entities: list[SynthesizedEntity] = field(default_factory=list)
    skipped: list[SkippedEntity] = field(default_factory=list)
    relationships: list[RelationshipOutcome] = field(default_factory=list)

    @property
    def proposed(self) -> list[RelationshipOutcome]:
        return [r for r in self.relationships if r.accepted]

    @property
    def rejected(self) -> list[RelationshipOutcome]:
        return [r for r in self.relationships if not r.accepted]

    def skipped_reasons(self) -> dict[str, str]:
        return {s.entity_type: s.reason for s in self.skipped}

    def to_dict(self) -> dict[str, Any]:
        return {
            "eventType": self.event_type,
            "epoch": self.epoch,
            "entities": [
                {"type": e.entity_type, "guid": e.guid, "created": e.created} for e in self.entities
            ],
            "skipped": [{"type": s.entity_type, "reason": s.reason} for s in self.skipped],
            "relationships": [
                {
                    "rule": r.rule,
                    "relationshipType": r.relationship_type,
                    "status": r.status,
                    "sourceGuid": r.source_guid,
                    "targetGuid": r.target_guid,
                    "state": r.relationship.state.value if r.relationship else None,
                }
                for r in self.relationships
            ],
        }


class SynthesisEngine:
    """
    Turns events into entities and relationships.

    Example:
        >>> engine = SynthesisEngine.in_memory(load_rules_dir("rules"))
        >>> result = engine.process(Event.from_dict(payload))
        >>> [e.guid for e in result.entities]
    """

    def __init__(
        self,
        rules: SnapshotHolder | RuleSnapshot,
        *,
        entity_store: EntityStore,
        relationship_store: RelationshipStore,
        lookup: EntityLookup,
        sink: RecordSink | None = None,
        dedup: Deduplicator | None = None,
        metrics: SynthesisMetrics | None = None,
        settings: SynthesisSettings | None = None,
        clock: Callable[[], int] = now_ms,
        lookup_retry_delay: float = 0.05,
    ):
        settings = settings or get_settings()
        self.holder = rules if isinstance(rules, SnapshotHolder) else SnapshotHolder(rules)
        self.entities = entity_store
        self.relationships = relationship_store
        self.sink = sink or NullSink()
        self.metrics = metrics or SynthesisMetrics()
        self.clock = clock
        self.dedup = dedup or Deduplicator(
            default_windows(
                settings.dedup_short_window_seconds,
                settings.dedup_medium_window_seconds,
                settings.dedup_long_window_seconds,
                settings.dedup_max_entries,
            ),
            bucket_ms=settings.dedup_bucket_ms,
            shards=settings.dedup_shards,
            clock=clock,
        )
        self.matcher = RuleMatcher(self.metrics)
        self.tags = TagExtractor()
        self.merger = EntityMerger(entity_store, self.metrics, clock=clock)
        self.builder = RelationshipBuilder(
            relationship_store,
            lookup,
            sink=self.sink,
            metrics=self.metrics,
            lookup_timeout_seconds=settings.lookup_timeout_seconds,
            lookup_max_attempts=settings.lookup_max_attempts,
            validation_max_attempts=settings.validation_max_attempts,
            retry_base_delay=lookup_retry_delay,
        )
        self.sweeper = ExpirationSweeper(
            entity_store,
            relationship_store,
            builder=self.builder,
            dedup=self.dedup,
            sink=self.sink,
            republish=self._republish,
            metrics=self.metrics,
        )

    @classmethod
    def in_memory(
        cls,
        rules: SnapshotHolder | RuleSnapshot,
        *,
        sink: RecordSink | None = None,
        settings: SynthesisSettings | None = None,
        clock: Callable[[], int] = now_ms,
        isolated_metrics: bool = True,
        lookup_retry_delay: float = 0.05,
    ) -> SynthesisEngine:
        """Engine over the in-memory reference stores."""
        entity_store = InMemoryEntityStore()
        return cls(
            rules,
            entity_store=entity_store,
            relationship_store=InMemoryRelationshipStore(),
            lookup=StoreEntityLookup(entity_store, clock=clock),
            sink=sink,
            metrics=SynthesisMetrics(MetricsRegistry()) if isolated_metrics else None,
            settings=settings,
            clock=clock,
            lookup_retry_delay=lookup_retry_delay,
        )

    @property
    def snapshot(self) -> RuleSnapshot:
        return self.holder.current

    def reload(self, snapshot: RuleSnapshot) -> RuleSnapshot:
        """Publish new rules for subsequent events; returns the previous snapshot."""
        return self.holder.swap(snapshot)

    # ------------------------------------------------------------------ #
    # Processing
    # ------------------------------------------------------------------ #

    def process(self, event: Event) -> ProcessResult:
        """Run one event through synthesis and relationship building."""
        snapshot = self.holder.current
        token = push_context(epoch=snapshot.epoch, event_type=event.event_type)
        try:
            self.metrics.events.inc()
            result = ProcessResult(event_type=event.event_type, epoch=snapshot.epoch)
            attributes = event.as_attributes()

            for definition in snapshot.definitions:
                self._synthesize(definition, event, attributes, result)

            if snapshot.relationship_rules:
                result.relationships = self.builder.build(event, snapshot.relationship_rules)
            return result
        finally:
            token.restore()

    def process_many(self, events: Iterable[Event]) -> list[ProcessResult]:
        return [self.process(event) for event in events]

    def _synthesize(
        self,
        definition: EntityDefinition,
        event: Event,
        attributes: dict[str, Any],
        result: ProcessResult,
    ) -> None:
        match = self.matcher.match(attributes, definition)
        if match.rule is None:
            result.skipped.append(SkippedEntity(definition.type, NO_MATCH))
            return
        rule = match.rule

        try:
            identifier = build_identifier(attributes, rule.identifier_spec)
        except IdentifierUnresolvedError as e:
            self.metrics.identifier_failures.labels(entity_type=definition.type).inc()
            logger.info(
                "synthesis.identifier_unresolved",
                entity_type=definition.type,
                rule=rule.rule_id,
                attributes=list(e.attributes),
            )
            result.skipped.append(SkippedEntity(definition.type, IDENTIFIER_UNRESOLVED, detail=e.message))
            return

        guid = generate_guid(
            event.account_id,
            definition.domain,
            definition.type,
            identifier,
            encode_identifier=rule.encode_identifier_in_guid,
        )

        window = self.dedup.check(DedupKey.for_event(guid, attributes, rule.referenced_attributes, event.timestamp))
        if window is not None:
            self.metrics.duplicates.labels(window=window).inc()
            logger.debug("synthesis.duplicate", entity_type=definition.type, guid=guid, window=window)
            result.skipped.append(SkippedEntity(definition.type, DUPLICATE, guid=guid, detail=window))
            return

        name = identifier
        if rule.name_spec is not None:
            name = try_build_identifier(attributes, rule.name_spec) or identifier
        tags = self.tags.extract(rule, attributes, event.timestamp)

        try:
            outcome = self.merger.merge(
                definition,
                guid=guid,
                identifier=identifier,
                name=name,
                account_id=event.account_id,
                tags=tags,
                event_time=event.timestamp,
            )
        except GuidCollisionError as e:
            self.metrics.guid_collisions.labels(entity_type=definition.type).inc()
            logger.error("synthesis.guid_collision", rule=rule.rule_id, flagged=True, **e.to_dict())
            result.skipped.append(SkippedEntity(definition.type, GUID_COLLISION, guid=guid, detail=e.message))
            return

        if outcome.created:
            self.metrics.entities_created.labels(entity_type=definition.type).inc()
            self.metrics.active_entities.inc()
            logger.info("synthesis.entity_created", entity_type=definition.type, guid=guid, name=name)
        elif outcome.changed:
            self.metrics.entities_updated.labels(entity_type=definition.type).inc()

        if outcome.created or outcome.changed:
            self.sink.publish_entity(to_entity_record(outcome.entity, definition, self.clock()))
        result.entities.append(
            SynthesizedEntity(definition.type, guid, outcome.created, outcome.changed_tags)
        )

        if outcome.created:
            self.builder.validate_pending(involving=guid)

    # ------------------------------------------------------------------ #
    # Reads and maintenance
    # ------------------------------------------------------------------ #

    def _republish(self, entity: Entity, now: int) -> None:
        self.sink.publish_entity(to_entity_record(entity, self.holder.current.definition(entity.type), now))

    def entity_record(self, guid: str, now: int | None = None) -> EntityRecord | None:
        """Current record of ``guid`` with derived values computed at ``now`` (the engine clock by default)."""
        entity = self.entities.get(guid)
        if entity is None:
            return None
        now = self.clock() if now is None else now
        return to_entity_record(entity, self.holder.current.definition(entity.type), now)

    def entity_records(self, now: int | None = None) -> list[EntityRecord]:
        snapshot = self.holder.current
        now = self.clock() if now is None else now
        return [to_entity_record(e, snapshot.definition(e.type), now) for e in self.entities.all()]

    def relationship_records(self) -> list[RelationshipRecord]:
        return [RelationshipRecord.from_relationship(r) for r in self.relationships.all()]

    def sweep(self, now: int | None = None) -> SweepReport:
        """One expiration pass at ``now`` (the engine clock by default)."""
        return self.sweeper.sweep(self.clock() if now is None else now)
