"""
Immutable, versioned rule snapshots.

Manifesto:
    Rules change while events are in flight. Instead of a global mutable
    registry, the engine reads from a :class:`RuleSnapshot` that never
    changes after construction. A reload builds a whole new snapshot and
    :meth:`SnapshotHolder.swap` publishes it atomically; an event that
    already pinned the previous snapshot finishes against it.

    - **Immutable:** Tuples and read-only mappings only
    - **Versioned:** ``version`` is a content hash of the definitions
    - **Atomic swap:** One lock-protected reference assignment per reload

Architecture:
    ::

        rules/*.yaml ──► RuleFileSpec (pydantic) ──► EntityDefinition
                                                 └─► RelationshipRule
                                  │
                                  ▼
                            RuleSnapshot(version, epoch)
                                  │
                     SnapshotHolder.swap(new) ──► engine pins per event

Tags:
    rules, snapshot, immutability, hot-reload
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path
from types import MappingProxyType

from synthspine.core.errors import RuleConfigError
from synthspine.core.hashing import compute_hash
from synthspine.observability.logging import get_logger
from synthspine.rules.models import EntityDefinition, RelationshipRule
from synthspine.rules.schema import RuleFileSpec

logger = get_logger(__name__)

RULE_FILE_PATTERNS = ("*.yaml", "*.yml")


@dataclass(frozen=True)
class RuleSnapshot:
    """
    One consistent set of entity definitions and relationship rules.

    ``definitions`` keeps a stable order (sorted by ``DOMAIN/TYPE``) so
    every worker evaluates entity types in the same sequence.
    """

    definitions: tuple[EntityDefinition, ...]
    relationship_rules: tuple[RelationshipRule, ...] = ()
    version: str = ""
    epoch: int = 0
    definitions_by_type: Mapping[str, EntityDefinition] = field(
        default_factory=lambda: MappingProxyType({}), compare=False, repr=False
    )

    def __post_init__(self) -> None:
        by_type: dict[str, EntityDefinition] = {}
        for definition in self.definitions:
            if definition.type in by_type:
                raise RuleConfigError(
                    f"Entity type {definition.type} defined more than once"
                ).with_context(entity_type=definition.type, source_file=definition.source_file)
            by_type[definition.type] = definition
        object.__setattr__(self, "definitions_by_type", MappingProxyType(by_type))
        if not self.version:
            object.__setattr__(self, "version", _snapshot_version(self.definitions, self.relationship_rules))

    @classmethod
    def build(
        cls,
        definitions: Iterable[EntityDefinition],
        relationship_rules: Iterable[RelationshipRule] = (),
        *,
        epoch: int = 0,
    ) -> RuleSnapshot:
        return cls(
            definitions=tuple(sorted(definitions, key=lambda d: d.key)),
            relationship_rules=tuple(relationship_rules),
            epoch=epoch,
        )

    @classmethod
    def empty(cls) -> RuleSnapshot:
        return cls(definitions=())

    def definition(self, entity_type: str) -> EntityDefinition | None:
        return self.definitions_by_type.get(entity_type.upper())

    def with_epoch(self, epoch: int) -> RuleSnapshot:
        """Same rules, stamped with the epoch they are published under."""
        return RuleSnapshot(
            definitions=self.definitions,
            relationship_rules=self.relationship_rules,
            version=self.version,
            epoch=epoch,
        )

    def summary(self) -> dict[str, object]:
        return {
            "version": self.version,
            "epoch": self.epoch,
            "entity_types": [d.key for d in self.definitions],
            "rules": sum(len(d.rules) for d in self.definitions),
            "relationship_rules": len(self.relationship_rules),
        }


def _snapshot_version(
    definitions: tuple[EntityDefinition, ...],
    relationship_rules: tuple[RelationshipRule, ...],
) -> str:
    # source_file is provenance, not content
    parts = [repr(replace(d, source_file=None)) for d in definitions]
    parts += [repr(replace(r, source_file=None)) for r in relationship_rules]
    return compute_hash(*parts, length=16)


class SnapshotHolder:
    """
    Publishes the current snapshot.

    Readers call :attr:`current` once per event and keep the returned
    object; :meth:`swap` replaces the reference and bumps the epoch.

    Example:
        >>> holder = SnapshotHolder(RuleSnapshot.empty())
        >>> holder.epoch
        0
        >>> _ = holder.swap(RuleSnapshot.empty())
        >>> holder.epoch
        1
    """

    def __init__(self, snapshot: RuleSnapshot | None = None):
        self._lock = threading.Lock()
        self._snapshot = (snapshot or RuleSnapshot.empty()).with_epoch(0)

    @property
    def current(self) -> RuleSnapshot:
        return self._snapshot

    @property
    def epoch(self) -> int:
        return self._snapshot.epoch

    def swap(self, snapshot: RuleSnapshot) -> RuleSnapshot:
        """Publish ``snapshot`` as the next epoch; returns the one it replaced."""
        with self._lock:
            previous = self._snapshot
            self._snapshot = snapshot.with_epoch(previous.epoch + 1)
        logger.info(
            "rules.snapshot_swapped",
            epoch=self._snapshot.epoch,
            version=self._snapshot.version,
            previous_version=previous.version,
        )
        return previous


# =============================================================================
# Loading
# =============================================================================


def load_rule_file(path: str | Path) -> RuleFileSpec:
    """Parse one rule file, reporting failures as :class:`RuleConfigError`."""
    path = Path(path)
    try:
        return RuleFileSpec.from_yaml_file(path)
    except (OSError, ValueError) as e:
        raise RuleConfigError(f"{path.name}: {e}", cause=e).with_context(source_file=str(path)) from e


def load_rules_dir(directory: str | Path) -> RuleSnapshot:
    """
    Load every ``*.yaml``/``*.yml`` file under ``directory`` into a snapshot.

    Files are read in sorted path order so the snapshot version is stable.

    Raises:
        RuleConfigError: If the directory is missing, a file is invalid or
            an entity type is defined twice
    """
    directory = Path(directory)
    if not directory.is_dir():
        raise RuleConfigError(f"Rules directory not found: {directory}").with_context(
            source_file=str(directory)
        )

    paths = sorted({p for pattern in RULE_FILE_PATTERNS for p in directory.rglob(pattern)})
    definitions: list[EntityDefinition] = []
    relationship_rules: list[RelationshipRule] = []

    for path in paths:
        spec = load_rule_file(path)
        if spec.has_entity:
            definitions.append(spec.to_definition(source_file=str(path)))
        relationship_rules.extend(spec.to_relationship_rules(source_file=str(path)))
        logger.debug("rules.file_loaded", source_file=str(path), entity_type=spec.type)

    snapshot = RuleSnapshot.build(definitions, relationship_rules)
    logger.info("rules.loaded", directory=str(directory), files=len(paths), **snapshot.summary())
    return snapshot


def load_rules_text(documents: Mapping[str, str]) -> RuleSnapshot:
    """Build a snapshot from in-memory YAML documents keyed by a display name."""
    definitions: list[EntityDefinition] = []
    relationship_rules: list[RelationshipRule] = []
    for name in sorted(documents):
        try:
            spec = RuleFileSpec.from_yaml(documents[name])
        except ValueError as e:
            raise RuleConfigError(f"{name}: {e}", cause=e).with_context(source_file=name) from e
        if spec.has_entity:
            definitions.append(spec.to_definition(source_file=name))
        relationship_rules.extend(spec.to_relationship_rules(source_file=name))
    return RuleSnapshot.build(definitions, relationship_rules)
