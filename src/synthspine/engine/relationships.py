"""
Relationship building and validation.

Manifesto:
    Edges often arrive before their endpoints. A broker sample names its
    cluster long before (or without) any cluster sample being seen. The
    builder therefore never blocks on existence:

    - **Resolve:** Each endpoint is built from event attributes
      (``BuildGuid``), read from an attribute (``ExtractGuid``) or looked
      up in the entity store (``LookupGuid``).
    - **Propose:** A resolved pair becomes a PROPOSED relationship with
      ``expires_at = event_time + ttl``. Repeats refresh the expiry.
    - **Validate:** Once both endpoints are confirmed live the relationship
      becomes VALIDATED. Until then it stays PROPOSED and simply expires if
      its endpoints never show up.
    - **Reject:** ``source == target`` is refused at build time.

    Every call into the lookup collaborator runs under a timeout and a
    bounded retry. A lookup that keeps failing counts as "not found" for
    this attempt; it never fails the event.

Architecture:
    ::

        Event ──► RelationshipRule (conditions) ──► resolve(source), resolve(target)
                                                        │
                        unresolved ◄────────────────────┤
                        self (rejected) ◄───────────────┤
                                                        ▼
                                 upsert PROPOSED ──► validate() ──► VALIDATED
                                        │
                                        └── TTL elapsed ──► EXPIRED (sweeper)

Tags:
    relationships, state-machine, lookup, timeout, retry
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from synthspine.core.errors import (
    EntityLookupError,
    LookupTimeoutError,
    LookupUnavailableError,
    SelfRelationshipError,
    SynthesisError,
)
from synthspine.core.guid import generate_guid
from synthspine.core.models import Event, Relationship, RelationshipRecord, RelationshipState
from synthspine.engine.conditions import evaluate_all
from synthspine.engine.identifier import render_value, try_build_identifier
from synthspine.engine.sink import NullSink, RecordSink
from synthspine.engine.store import EntityLookup, RelationshipStore
from synthspine.execution.retry import ExponentialBackoff, RetryContext
from synthspine.execution.timeout import run_with_timeout
from synthspine.observability.logging import get_logger
from synthspine.observability.metrics import SynthesisMetrics
from synthspine.rules.models import BuildGuid, ExtractGuid, LookupGuid, RelationshipRule, Resolution

logger = get_logger(__name__)

PROPOSED = "proposed"
REFRESHED = "refreshed"
SELF_RELATIONSHIP = "self_relationship"
UNRESOLVED = "unresolved"


@dataclass(frozen=True)
class RelationshipOutcome:
    """What one relationship rule did for one event."""

    rule: str
    relationship_type: str
    status: str
    relationship: Relationship | None = None
    source_guid: str | None = None
    target_guid: str | None = None

    @property
    def accepted(self) -> bool:
        return self.relationship is not None


class RelationshipBuilder:
    """
    Builds, refreshes and validates relationships.

    Args:
        store: Relationship store
        lookup: Lookup collaborator for ``LookupGuid`` and existence checks
        sink: Receives relationship records on every state change
        metrics: Optional synthesis metrics
        lookup_timeout_seconds: Deadline for each collaborator call
        lookup_max_attempts: Attempts per collaborator call (1 = no retry)
        validation_max_attempts: Periodic validations before a relationship
            is left to expire
        retry_base_delay: First backoff delay between lookup attempts
    """

    def __init__(
        self,
        store: RelationshipStore,
        lookup: EntityLookup,
        *,
        sink: RecordSink | None = None,
        metrics: SynthesisMetrics | None = None,
        lookup_timeout_seconds: float = 2.0,
        lookup_max_attempts: int = 3,
        validation_max_attempts: int = 5,
        retry_base_delay: float = 0.05,
        sleep: Callable[[float], None] | None = None,
    ):
        if lookup_max_attempts < 1:
            raise ValueError(f"lookup_max_attempts must be >= 1, got {lookup_max_attempts}")
        self._store = store
        self._lookup = lookup
        self._sink = sink or NullSink()
        self._metrics = metrics
        self._timeout = lookup_timeout_seconds
        self._max_attempts = lookup_max_attempts
        self._validation_max_attempts = validation_max_attempts
        self._retry_base_delay = retry_base_delay
        self._sleep = sleep

    # ------------------------------------------------------------------ #
    # Collaborator calls
    # ------------------------------------------------------------------ #

    def _guarded(self, operation: str, func: Callable[..., Any], *args: Any) -> Any:
        def attempt() -> Any:
            try:
                return run_with_timeout(func, self._timeout, operation=operation, args=args)
            except SynthesisError:
                raise
            except Exception as e:
                raise LookupUnavailableError(f"{operation} failed: {e}", cause=e) from e

        strategy = ExponentialBackoff(
            max_retries=self._max_attempts - 1,
            base_delay=self._retry_base_delay,
            max_delay=max(self._retry_base_delay, 1.0),
            retryable_errors=(EntityLookupError,),
        )
        ctx = RetryContext(strategy) if self._sleep is None else RetryContext(strategy, sleep=self._sleep)
        return ctx.run(attempt)

    def _lookup_call(self, operation: str, func: Callable[..., Any], *args: Any) -> tuple[bool, Any]:
        """``(ok, result)``; failures are counted, logged and reported as not ok."""
        try:
            return True, self._guarded(operation, func, *args)
        except LookupTimeoutError as e:
            reason = "timeout"
            error: SynthesisError = e
        except SynthesisError as e:
            reason = "unavailable"
            error = e
        if self._metrics is not None:
            self._metrics.lookup_failures.labels(reason=reason).inc()
        logger.warning("relationship.lookup_failed", operation=operation, reason=reason, **error.to_dict())
        return False, None

    # ------------------------------------------------------------------ #
    # Resolution
    # ------------------------------------------------------------------ #

    def resolve(self, resolution: Resolution, event: Event, attributes: Mapping[str, Any]) -> str | None:
        """GUID for one endpoint, or None if it cannot be resolved now."""
        if isinstance(resolution, BuildGuid):
            identifier = try_build_identifier(attributes, resolution.identifier)
            if identifier is None:
                return None
            account = event.account_id
            if resolution.account_attribute is not None:
                value = attributes.get(resolution.account_attribute)
                if value is None:
                    return None
                account = render_value(value)
            return generate_guid(
                account,
                resolution.domain,
                resolution.type,
                identifier,
                encode_identifier=resolution.encode_identifier_in_guid,
            )

        if isinstance(resolution, ExtractGuid):
            value = attributes.get(resolution.attribute)
            if value is None or value == "":
                return None
            return str(value)

        if isinstance(resolution, LookupGuid):
            criteria: dict[str, Any] = {}
            for entity_field, attribute in resolution.match_fields:
                value = attributes.get(attribute)
                if value is None:
                    return None
                criteria[entity_field] = value
            ok, guid = self._lookup_call("find", self._lookup.find, resolution.category, criteria)
            return guid if ok else None

        raise TypeError(f"Unknown resolution: {type(resolution).__name__}")

    # ------------------------------------------------------------------ #
    # Build
    # ------------------------------------------------------------------ #

    def build(self, event: Event, rules: tuple[RelationshipRule, ...]) -> list[RelationshipOutcome]:
        """Apply every matching relationship rule to ``event``."""
        attributes = event.as_attributes()
        outcomes: list[RelationshipOutcome] = []
        for rule in rules:
            if evaluate_all(rule.conditions, attributes):
                outcomes.append(self._build_one(rule, event, attributes))
        return outcomes

    def _build_one(self, rule: RelationshipRule, event: Event, attributes: Mapping[str, Any]) -> RelationshipOutcome:
        rel_type = rule.relationship_type
        source = self.resolve(rule.source, event, attributes)
        target = self.resolve(rule.target, event, attributes) if source is not None else None

        if source is None or target is None:
            if self._metrics is not None:
                self._metrics.relationships_unresolved.labels(relationship_type=rel_type).inc()
            logger.debug(
                "relationship.unresolved",
                rule=rule.name,
                relationship_type=rel_type,
                source_resolved=source is not None,
                target_resolved=target is not None,
            )
            return RelationshipOutcome(rule.name, rel_type, UNRESOLVED, source_guid=source, target_guid=target)

        if source == target:
            error = SelfRelationshipError(source, rel_type).with_context(rule=rule.name, event_type=event.event_type)
            if self._metrics is not None:
                self._metrics.self_relationships.labels(relationship_type=rel_type).inc()
            logger.warning("relationship.self_rejected", **error.to_dict())
            return RelationshipOutcome(rule.name, rel_type, SELF_RELATIONSHIP, source_guid=source, target_guid=target)

        proposal = Relationship(
            source_guid=source,
            target_guid=target,
            relationship_type=rel_type,
            expires_at=event.timestamp + rule.ttl_ms,
            state=RelationshipState.PROPOSED,
            last_event_time=event.timestamp,
        )
        stored, created = self._store.upsert(proposal)
        if created:
            if self._metrics is not None:
                self._metrics.relationships_proposed.labels(relationship_type=rel_type).inc()
            logger.debug(
                "relationship.proposed", rule=rule.name, source=source, target=target, relationship_type=rel_type
            )

        if stored.state is RelationshipState.PROPOSED:
            stored = self.validate(stored, count_attempt=False)
        else:
            self._sink.publish_relationship(RelationshipRecord.from_relationship(stored))

        return RelationshipOutcome(
            rule.name,
            rel_type,
            PROPOSED if created else REFRESHED,
            relationship=stored,
            source_guid=source,
            target_guid=target,
        )

    # ------------------------------------------------------------------ #
    # Validation
    # ------------------------------------------------------------------ #

    def validate(self, relationship: Relationship, *, count_attempt: bool = True) -> Relationship:
        """
        Check both endpoints; promote to VALIDATED when both are live.

        ``count_attempt`` charges a failed check against the periodic
        validation budget.
        """
        rel = relationship.copy()
        if rel.state is not RelationshipState.PROPOSED:
            return rel

        source_ok, source_exists = self._lookup_call("exists", self._lookup.exists, rel.source_guid)
        target_ok, target_exists = False, False
        if source_ok and source_exists:
            target_ok, target_exists = self._lookup_call("exists", self._lookup.exists, rel.target_guid)

        if source_ok and target_ok and source_exists and target_exists:
            rel.state = RelationshipState.VALIDATED
            if self._metrics is not None:
                self._metrics.relationships_validated.labels(relationship_type=rel.relationship_type).inc()
            logger.info(
                "relationship.validated",
                source=rel.source_guid,
                target=rel.target_guid,
                relationship_type=rel.relationship_type,
            )
        elif count_attempt:
            rel.validation_attempts += 1

        self._store.update(rel)
        self._sink.publish_relationship(RelationshipRecord.from_relationship(rel))
        return rel

    def validate_pending(self, involving: str | None = None) -> list[Relationship]:
        """
        Retry validation of PROPOSED relationships.

        With ``involving``, only relationships touching that GUID are checked
        and the attempt budget is ignored.
        Otherwise relationships that used up ``validation_max_attempts`` are
        skipped and left to expire.

        Returns:
            Relationships that became VALIDATED
        """
        validated: list[Relationship] = []
        for rel in self._store.pending():
            if involving is not None:
                if involving not in (rel.source_guid, rel.target_guid):
                    continue
            elif rel.validation_attempts >= self._validation_max_attempts:
                continue
            result = self.validate(rel, count_attempt=involving is None)
            if result.state is RelationshipState.VALIDATED:
                validated.append(result)
        return validated
