"""Record sinks: where published entity and relationship records go."""

from __future__ import annotations

import threading
from typing import Protocol, runtime_checkable

from synthspine.core.models import EntityRecord, RelationshipKey, RelationshipRecord


@runtime_checkable
class RecordSink(Protocol):
    """Consumer of output records (storage, indexing, a message bus)."""

    def publish_entity(self, record: EntityRecord) -> None: ...

    def publish_relationship(self, record: RelationshipRecord) -> None: ...

    def retract_entity(self, guid: str) -> None: ...

    def retract_relationship(self, key: RelationshipKey) -> None: ...


class NullSink:
    """Discards everything."""

    def publish_entity(self, record: EntityRecord) -> None:
        pass

    def publish_relationship(self, record: RelationshipRecord) -> None:
        pass

    def retract_entity(self, guid: str) -> None:
        pass

    def retract_relationship(self, key: RelationshipKey) -> None:
        pass


class CollectingSink:
    """
    Keeps the latest record per GUID / relationship key, plus a publish log.

    Thread-safe; used by the CLI and tests.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.entities: dict[str, EntityRecord] = {}
        self.relationships: dict[RelationshipKey, RelationshipRecord] = {}
        self.log: list[tuple[str, object]] = []

    def publish_entity(self, record: EntityRecord) -> None:
        with self._lock:
            self.entities[record.guid] = record
            self.log.append(("entity", record))

    def publish_relationship(self, record: RelationshipRecord) -> None:
        key = (record.source_guid, record.target_guid, record.relationship_type)
        with self._lock:
            self.relationships[key] = record
            self.log.append(("relationship", record))

    def retract_entity(self, guid: str) -> None:
        with self._lock:
            self.entities.pop(guid, None)
            self.log.append(("entity_retracted", guid))

    def retract_relationship(self, key: RelationshipKey) -> None:
        with self._lock:
            self.relationships.pop(key, None)
            self.log.append(("relationship_retracted", key))

    def clear(self) -> None:
        with self._lock:
            self.entities.clear()
            self.relationships.clear()
            self.log.clear()
