"""
Domain records: events in, entities and relationships out.

Manifesto:
    The engine turns attribute bags into a graph. The records here are the
    only shapes that cross component boundaries:

    - **Event:** Immutable attribute bag with event time and account
    - **TagValue / Entity:** Durable entity state, owned by the merger
    - **Relationship:** Typed, TTL-bound edge with a small state machine
    - **EntityRecord / RelationshipRecord:** Published output, camelCase wire form

    All times are integer epoch milliseconds.

Architecture:
    ::

        Event ──► (synthesis) ──► Entity{tags: {name: TagValue}}
          │                             │
          └──► (relationships) ──► Relationship ── PROPOSED ─► VALIDATED
                                        │                │
                                        └──── EXPIRED ◄──┘ (TTL elapsed)

Tags:
    domain-model, entity, relationship, event
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any

from synthspine.core.timestamps import to_ms

# Keys of the wire envelope; everything else at top level is an attribute.
_RESERVED_KEYS = frozenset({"eventType", "accountId", "timestamp", "attributes"})

# Envelope fields conditions can reference like ordinary attributes.
PSEUDO_ATTRIBUTES = ("eventType", "accountId")


@dataclass(frozen=True)
class Event:
    """
    One monitoring event, as delivered by a provider.

    Attributes may be missing or null; ``present()`` treats both the same.
    ``eventType`` and ``accountId`` are readable through ``get()`` so rule
    conditions can filter on them.
    """

    event_type: str
    account_id: str
    timestamp: int
    attributes: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "account_id", str(self.account_id))
        object.__setattr__(self, "attributes", MappingProxyType(dict(self.attributes)))

    def get(self, name: str) -> Any:
        """Attribute value (or pseudo-attribute), None when absent."""
        if name == "eventType":
            return self.event_type
        if name == "accountId":
            return self.account_id
        return self.attributes.get(name)

    def present(self, name: str) -> bool:
        """True if the attribute exists and is not null."""
        return self.get(name) is not None

    def as_attributes(self) -> dict[str, Any]:
        """Attributes merged with pseudo-attributes, for condition evaluation."""
        merged = dict(self.attributes)
        merged["eventType"] = self.event_type
        merged["accountId"] = self.account_id
        return merged

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Event:
        """
        Build an event from its wire form.

        Accepts ``{"eventType", "accountId", "timestamp", "attributes": {...}}``
        and the flat form where attributes sit next to the envelope keys.
        """
        missing = [k for k in ("eventType", "accountId", "timestamp") if data.get(k) is None]
        if missing:
            raise ValueError(f"Event missing required fields: {', '.join(missing)}")

        attributes = dict(data.get("attributes") or {})
        for key, value in data.items():
            if key not in _RESERVED_KEYS:
                attributes.setdefault(key, value)

        return cls(
            event_type=str(data["eventType"]),
            account_id=str(data["accountId"]),
            timestamp=to_ms(data["timestamp"]),
            attributes=attributes,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "eventType": self.event_type,
            "accountId": self.account_id,
            "timestamp": self.timestamp,
            "attributes": dict(self.attributes),
        }


@dataclass(frozen=True)
class TagValue:
    """
    A tag value with the event time that set it.

    ``expires_at`` is None for tags without a TTL; those live until
    superseded or until the owning entity expires.
    """

    value: Any
    set_by_event_time: int
    expires_at: int | None = None

    def is_expired(self, now: int) -> bool:
        return self.expires_at is not None and self.expires_at <= now

    def supersedes(self, other: TagValue) -> bool:
        """Event-time last-writer-wins: not older than ``other``."""
        return self.set_by_event_time >= other.set_by_event_time


@dataclass
class Entity:
    """
    Durable entity state.

    ``guid`` is fixed at creation. ``version`` increases with every applied
    merge and is what the sweeper compares before expiring the entity.
    """

    guid: str
    account_id: str
    domain: str
    type: str
    identifier: str
    name: str
    tags: dict[str, TagValue] = field(default_factory=dict)
    last_seen_event_time: int = 0
    expires_at: int | None = None
    version: int = 0
    name_set_by_event_time: int = 0

    def is_expired(self, now: int) -> bool:
        return self.expires_at is not None and self.expires_at <= now

    def live_tags(self, now: int | None = None) -> dict[str, Any]:
        """Plain tag values, skipping tags whose own TTL has passed at ``now``."""
        return {
            name: tag.value
            for name, tag in self.tags.items()
            if now is None or not tag.is_expired(now)
        }

    def copy(self) -> Entity:
        """Detached copy (tags dict is copied; TagValues are immutable)."""
        return Entity(
            guid=self.guid,
            account_id=self.account_id,
            domain=self.domain,
            type=self.type,
            identifier=self.identifier,
            name=self.name,
            tags=dict(self.tags),
            last_seen_event_time=self.last_seen_event_time,
            expires_at=self.expires_at,
            version=self.version,
            name_set_by_event_time=self.name_set_by_event_time,
        )


class RelationshipState(str, Enum):
    """Relationship lifecycle states."""

    PROPOSED = "PROPOSED"      # Built, endpoints not both confirmed
    VALIDATED = "VALIDATED"    # Both endpoints confirmed live
    EXPIRED = "EXPIRED"        # TTL elapsed without refresh; removed next


RelationshipKey = tuple[str, str, str]


@dataclass
class Relationship:
    """A typed, TTL-bound edge between two entity GUIDs."""

    source_guid: str
    target_guid: str
    relationship_type: str
    expires_at: int
    state: RelationshipState = RelationshipState.PROPOSED
    last_event_time: int = 0
    validation_attempts: int = 0

    @property
    def key(self) -> RelationshipKey:
        return (self.source_guid, self.target_guid, self.relationship_type)

    def is_expired(self, now: int) -> bool:
        return self.expires_at <= now

    def copy(self) -> Relationship:
        return Relationship(
            source_guid=self.source_guid,
            target_guid=self.target_guid,
            relationship_type=self.relationship_type,
            expires_at=self.expires_at,
            state=self.state,
            last_event_time=self.last_event_time,
            validation_attempts=self.validation_attempts,
        )


# =============================================================================
# Output records
# =============================================================================


@dataclass(frozen=True)
class EntityRecord:
    """Entity as published to storage/indexing."""

    guid: str
    domain: str
    type: str
    name: str
    tags: dict[str, Any]
    expires_at: int | None
    golden_tags: tuple[str, ...] = ()
    derived: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "guid": self.guid,
            "domain": self.domain,
            "type": self.type,
            "name": self.name,
            "tags": dict(self.tags),
            "goldenTags": list(self.golden_tags),
            "derived": dict(self.derived),
            "expiresAt": self.expires_at,
        }


@dataclass(frozen=True)
class RelationshipRecord:
    """Relationship as published to storage/indexing."""

    source_guid: str
    target_guid: str
    relationship_type: str
    expires_at: int
    state: RelationshipState

    @classmethod
    def from_relationship(cls, rel: Relationship) -> RelationshipRecord:
        return cls(
            source_guid=rel.source_guid,
            target_guid=rel.target_guid,
            relationship_type=rel.relationship_type,
            expires_at=rel.expires_at,
            state=rel.state,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "sourceGuid": self.source_guid,
            "targetGuid": self.target_guid,
            "relationshipType": self.relationship_type,
            "expiresAt": self.expires_at,
            "state": self.state.value,
        }
