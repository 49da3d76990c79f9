"""
Entity and relationship stores, and the lookup collaborator contract.

The engine owns entity and relationship *state* but not where it lives.
Storage is a collaborator behind the :class:`EntityStore` and
:class:`RelationshipStore` protocols; lookups used by relationship rules go
through :class:`EntityLookup`, which may be remote, slow or failing.

The in-memory implementations here are the reference collaborators used
by the CLI and tests. They are thread-safe:

- Entities are guarded by striped per-GUID locks. The merger holds the lock of the
  GUID it mutates; the sweeper takes the same lock for compare-and-expire.
- Relationships are guarded by one store lock; every operation is short.

Architecture:
    ::

        EntityStore (Protocol)          RelationshipStore (Protocol)
        └── InMemoryEntityStore         └── InMemoryRelationshipStore

        EntityLookup (Protocol): find(category, criteria) / exists(guid)
        └── StoreEntityLookup ── answers from an EntityStore

Tags:
    storage, protocol, locking, compare-and-expire, lookup
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from typing import Any, Protocol, runtime_checkable

from synthspine.core.hashing import stable_shard
from synthspine.core.models import Entity, Relationship, RelationshipKey, RelationshipState

# =============================================================================
# Protocols
# =============================================================================


@runtime_checkable
class EntityStore(Protocol):
    """Durable home of entity state."""

    def lock(self, guid: str) -> Any:
        """Context manager serializing mutations of one GUID."""
        ...

    def get(self, guid: str) -> Entity | None: ...

    def put(self, entity: Entity) -> None: ...

    def exists(self, guid: str, now: int | None = None) -> bool: ...

    def remove_if_unchanged(self, guid: str, version: int, now: int) -> Entity | None:
        """Remove ``guid`` only if it is still at ``version`` and expired at ``now``."""
        ...

    def expired_candidates(self, now: int) -> list[tuple[str, int]]: ...

    def expire_tags(self, now: int) -> list[tuple[str, str]]: ...

    def find(self, category: str, criteria: Mapping[str, Any]) -> list[str]: ...

    def all(self) -> list[Entity]: ...

    def __len__(self) -> int: ...


@runtime_checkable
class RelationshipStore(Protocol):
    """Durable home of relationship state."""

    def get(self, key: RelationshipKey) -> Relationship | None: ...

    def upsert(self, relationship: Relationship) -> tuple[Relationship, bool]: ...

    def update(self, relationship: Relationship) -> None: ...

    def pending(self) -> list[Relationship]: ...

    def expire(self, now: int) -> list[Relationship]: ...

    def all(self) -> list[Relationship]: ...

    def __len__(self) -> int: ...


@runtime_checkable
class EntityLookup(Protocol):
    """
    Lookup collaborator used by relationship resolution and validation.

    Implementations may block, time out or raise; callers wrap every call in
    a timeout and a bounded retry.
    """

    def find(self, category: str, criteria: Mapping[str, Any]) -> str | None:
        """GUID of the entity in ``category`` (``DOMAIN/TYPE``) matching ``criteria``."""
        ...

    def exists(self, guid: str) -> bool:
        """True if ``guid`` is a live entity."""
        ...


# =============================================================================
# In-memory entity store
# =============================================================================


def _field_value(entity: Entity, field_name: str) -> Any:
    if field_name == "name":
        return entity.name
    if field_name == "identifier":
        return entity.identifier
    if field_name == "guid":
        return entity.guid
    tag = entity.tags.get(field_name)
    return tag.value if tag is not None else None


def _matches(entity: Entity, criteria: Mapping[str, Any]) -> bool:
    for field_name, expected in criteria.items():
        actual = _field_value(entity, field_name)
        if actual is None or str(actual) != str(expected):
            return False
    return True


class InMemoryEntityStore:
    """
    Thread-safe dict-backed entity store.

    ``get`` returns detached copies; callers mutate the copy and ``put`` it
    back while holding ``lock(guid)``.
    """

    def __init__(self, lock_stripes: int = 64) -> None:
        self._entities: dict[str, Entity] = {}
        # striped so removal never has to retire a lock another thread waits on
        self._locks = [threading.RLock() for _ in range(max(1, lock_stripes))]
        self._guard = threading.Lock()

    @contextmanager
    def lock(self, guid: str) -> Iterator[None]:
        with self._locks[stable_shard(guid, len(self._locks))]:
            yield

    def get(self, guid: str) -> Entity | None:
        with self._guard:
            entity = self._entities.get(guid)
        return entity.copy() if entity is not None else None

    def put(self, entity: Entity) -> None:
        stored = entity.copy()
        with self._guard:
            self._entities[entity.guid] = stored

    def exists(self, guid: str, now: int | None = None) -> bool:
        with self._guard:
            entity = self._entities.get(guid)
        if entity is None:
            return False
        return now is None or not entity.is_expired(now)

    def remove_if_unchanged(self, guid: str, version: int, now: int) -> Entity | None:
        with self.lock(guid):
            with self._guard:
                entity = self._entities.get(guid)
                if entity is None or entity.version != version or not entity.is_expired(now):
                    return None
                del self._entities[guid]
            return entity

    def expired_candidates(self, now: int) -> list[tuple[str, int]]:
        with self._guard:
            return [(e.guid, e.version) for e in self._entities.values() if e.is_expired(now)]

    def expire_tags(self, now: int) -> list[tuple[str, str]]:
        """Drop tag values past their own TTL; returns ``(guid, tag)`` pairs removed."""
        with self._guard:
            guids = [
                e.guid
                for e in self._entities.values()
                if any(t.is_expired(now) for t in e.tags.values())
            ]
        removed: list[tuple[str, str]] = []
        for guid in guids:
            with self.lock(guid):
                with self._guard:
                    entity = self._entities.get(guid)
                    if entity is None:
                        continue
                    expired = [name for name, tag in entity.tags.items() if tag.is_expired(now)]
                    for name in expired:
                        del entity.tags[name]
                removed.extend((guid, name) for name in expired)
        return removed

    def find(self, category: str, criteria: Mapping[str, Any]) -> list[str]:
        """GUIDs in ``category`` (``DOMAIN/TYPE``) whose fields match ``criteria``, sorted."""
        domain, _, entity_type = category.upper().partition("/")
        with self._guard:
            return sorted(
                e.guid
                for e in self._entities.values()
                if e.domain == domain and (not entity_type or e.type == entity_type) and _matches(e, criteria)
            )

    def all(self) -> list[Entity]:
        with self._guard:
            return [e.copy() for e in sorted(self._entities.values(), key=lambda e: e.guid)]

    def __len__(self) -> int:
        with self._guard:
            return len(self._entities)


# =============================================================================
# In-memory relationship store
# =============================================================================


class InMemoryRelationshipStore:
    """Thread-safe dict-backed relationship store keyed by ``(source, target, type)``."""

    def __init__(self) -> None:
        self._relationships: dict[RelationshipKey, Relationship] = {}
        self._lock = threading.Lock()

    def get(self, key: RelationshipKey) -> Relationship | None:
        with self._lock:
            rel = self._relationships.get(key)
        return rel.copy() if rel is not None else None

    def upsert(self, relationship: Relationship) -> tuple[Relationship, bool]:
        """
        Insert or refresh a relationship.

        A refresh keeps the later ``expires_at`` and ``last_event_time`` and
        never demotes a VALIDATED relationship back to PROPOSED.

        Returns:
            ``(stored copy, created)``
        """
        with self._lock:
            existing = self._relationships.get(relationship.key)
            if existing is None or existing.state is RelationshipState.EXPIRED:
                stored = relationship.copy()
                self._relationships[relationship.key] = stored
                return stored.copy(), True
            existing.expires_at = max(existing.expires_at, relationship.expires_at)
            existing.last_event_time = max(existing.last_event_time, relationship.last_event_time)
            return existing.copy(), False

    def update(self, relationship: Relationship) -> None:
        """Write back state changes of an existing relationship (validation)."""
        with self._lock:
            existing = self._relationships.get(relationship.key)
            if existing is None:
                return
            existing.state = relationship.state
            existing.validation_attempts = relationship.validation_attempts

    def pending(self) -> list[Relationship]:
        with self._lock:
            return [r.copy() for r in self._relationships.values() if r.state is RelationshipState.PROPOSED]

    def expire(self, now: int) -> list[Relationship]:
        """Mark relationships past ``expires_at`` EXPIRED and remove them."""
        expired: list[Relationship] = []
        with self._lock:
            for key, rel in list(self._relationships.items()):
                if rel.is_expired(now):
                    rel.state = RelationshipState.EXPIRED
                    expired.append(rel)
                    del self._relationships[key]
        return expired

    def all(self) -> list[Relationship]:
        with self._lock:
            return [r.copy() for _, r in sorted(self._relationships.items())]

    def __len__(self) -> int:
        with self._lock:
            return len(self._relationships)


# =============================================================================
# Lookup backed by the entity store
# =============================================================================


class StoreEntityLookup:
    """
    :class:`EntityLookup` answering from an :class:`InMemoryEntityStore`.

    With a ``clock``, entities already past ``expires_at`` but not yet swept
    are reported as missing.
    """

    def __init__(self, store: InMemoryEntityStore, clock: Callable[[], int] | None = None):
        self._store = store
        self._clock = clock

    def find(self, category: str, criteria: Mapping[str, Any]) -> str | None:
        now = self._clock() if self._clock is not None else None
        for guid in self._store.find(category, criteria):
            if self._store.exists(guid, now):
                return guid
        return None

    def exists(self, guid: str) -> bool:
        now = self._clock() if self._clock is not None else None
        return self._store.exists(guid, now)
