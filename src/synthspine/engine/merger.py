"""
Entity state merging.

Manifesto:
    The merger is the only writer of entity state. It applies the tags of
    one matched event to one GUID under that GUID's store lock, so updates
    from concurrent workers never interleave on the same entity.

    - **Event-time ordering:** A tag is replaced only by a value set at the
      same or a later event time. Late, out-of-order events never roll a
      tag back, and values whose TTL ran out before they arrived are dropped.
    - **Idempotent:** Re-applying the same event changes nothing, and an
      unchanged merge does not bump ``version``.
    - **Independent lifetimes:** Tag TTLs and entity expiration never touch
      each other. Entity expiration only moves forward.
    - **Identity guard:** A GUID stays bound to the identifier it was
      created with. A different identifier hashing to the same GUID is a
      collision and the record is refused.

Tags:
    merge, last-writer-wins, event-time, entity-state
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from synthspine.core.errors import GuidCollisionError
from synthspine.core.models import Entity, TagValue
from synthspine.core.timestamps import now_ms
from synthspine.engine.store import EntityStore
from synthspine.observability.logging import get_logger
from synthspine.observability.metrics import SynthesisMetrics
from synthspine.rules.models import EntityDefinition

logger = get_logger(__name__)


@dataclass(frozen=True)
class MergeOutcome:
    """Result of one merge: the entity as stored afterwards."""

    entity: Entity
    created: bool
    changed_tags: tuple[str, ...] = ()
    changed: bool = True


def apply_tags(
    current: dict[str, TagValue],
    incoming: dict[str, TagValue],
    now: int | None = None,
) -> tuple[str, ...]:
    """
    Merge ``incoming`` into ``current`` in place, last-writer-wins by event time.

    Incoming values whose own TTL has already passed at ``now`` are ignored,
    so a late event cannot bring back a tag the sweeper removed.

    Returns:
        Names of tags whose stored value changed
    """
    changed: list[str] = []
    for name, new in incoming.items():
        if now is not None and new.is_expired(now):
            continue
        existing = current.get(name)
        if existing is not None and (not new.supersedes(existing) or new == existing):
            continue
        current[name] = new
        changed.append(name)
    return tuple(changed)


def _refreshed_expiry(current: int | None, event_time: int, expiration_ms: int | None) -> int | None:
    if expiration_ms is None:
        return None
    candidate = event_time + expiration_ms
    return candidate if current is None else max(current, candidate)


class EntityMerger:
    """Applies extracted tags to stored entities."""

    def __init__(
        self,
        store: EntityStore,
        metrics: SynthesisMetrics | None = None,
        clock: Callable[[], int] = now_ms,
    ):
        self._store = store
        self._metrics = metrics
        self._clock = clock

    def merge(
        self,
        definition: EntityDefinition,
        *,
        guid: str,
        identifier: str,
        name: str,
        account_id: str,
        tags: dict[str, TagValue],
        event_time: int,
    ) -> MergeOutcome:
        """
        Create or update the entity ``guid``.

        Raises:
            GuidCollisionError: If ``guid`` is already bound to another
                identifier or entity type
        """
        if self._metrics is not None:
            with self._metrics.merge_duration.time():
                return self._merge(definition, guid, identifier, name, account_id, tags, event_time)
        return self._merge(definition, guid, identifier, name, account_id, tags, event_time)

    def _merge(
        self,
        definition: EntityDefinition,
        guid: str,
        identifier: str,
        name: str,
        account_id: str,
        tags: dict[str, TagValue],
        event_time: int,
    ) -> MergeOutcome:
        now = self._clock()
        with self._store.lock(guid):
            entity = self._store.get(guid)

            if entity is None:
                tags = {n: t for n, t in tags.items() if not t.is_expired(now)}
                entity = Entity(
                    guid=guid,
                    account_id=account_id,
                    domain=definition.domain,
                    type=definition.type,
                    identifier=identifier,
                    name=name,
                    tags=dict(tags),
                    last_seen_event_time=event_time,
                    expires_at=_refreshed_expiry(None, event_time, definition.entity_expiration_ms),
                    version=1,
                    name_set_by_event_time=event_time,
                )
                self._store.put(entity)
                return MergeOutcome(entity=entity, created=True, changed_tags=tuple(tags))

            if entity.identifier != identifier or entity.type != definition.type:
                raise GuidCollisionError(guid, entity.identifier, identifier).with_context(
                    entity_type=definition.type
                )

            before = (entity.name, entity.last_seen_event_time, entity.expires_at)
            changed_tags = apply_tags(entity.tags, tags, now)
            if event_time >= entity.name_set_by_event_time:
                entity.name = name
                entity.name_set_by_event_time = event_time
            entity.last_seen_event_time = max(entity.last_seen_event_time, event_time)
            entity.expires_at = _refreshed_expiry(entity.expires_at, event_time, definition.entity_expiration_ms)

            changed = bool(changed_tags) or before != (entity.name, entity.last_seen_event_time, entity.expires_at)
            if changed:
                entity.version += 1
                self._store.put(entity)
            return MergeOutcome(entity=entity, created=False, changed_tags=changed_tags, changed=changed)
