"""
Derived values and published entity records.

Health-like summaries are views over tags, not facts with their own
lifetime. They are computed whenever a record is built from the current
(unexpired) tags and are never stored on the entity.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from synthspine.core.models import Entity, EntityRecord
from synthspine.engine.conditions import evaluate_all
from synthspine.rules.models import DerivedValue, EntityDefinition


def evaluate_derived(derived: DerivedValue, tags: Mapping[str, Any]) -> Any:
    """First case whose conditions all hold, else the default."""
    for case in derived.cases:
        if evaluate_all(case.conditions, tags):
            return case.value
    return derived.default


def compute_derived(definition: EntityDefinition | None, tags: Mapping[str, Any]) -> dict[str, Any]:
    if definition is None:
        return {}
    return {d.name: evaluate_derived(d, tags) for d in definition.derived_values}


def to_entity_record(entity: Entity, definition: EntityDefinition | None, now: int | None = None) -> EntityRecord:
    """Publishable record with live tags and derived values evaluated at ``now``."""
    tags = entity.live_tags(now)
    return EntityRecord(
        guid=entity.guid,
        domain=entity.domain,
        type=entity.type,
        name=entity.name,
        tags=tags,
        expires_at=entity.expires_at,
        golden_tags=definition.golden_tags if definition is not None else (),
        derived=compute_derived(definition, tags),
    )
