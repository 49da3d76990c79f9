"""Core primitives: records, identity, hashing, durations, timestamps and errors.

Architecture::

    errors.py       Structured error hierarchy (SynthesisError and friends)
    models.py       Event, Entity, TagValue, Relationship and output records
    guid.py         Deterministic entity GUIDs
    hashing.py      Identity/content hashes and stable sharding
    durations.py    ISO-8601 and alias durations to milliseconds
    timestamps.py   Epoch-millisecond helpers and a manual clock
"""

from .durations import DURATION_ALIASES, format_duration, parse_duration
from .errors import (
    DurationError,
    EntityLookupError,
    ErrorCategory,
    ErrorContext,
    GuidCollisionError,
    IdentifierUnresolvedError,
    LookupTimeoutError,
    LookupUnavailableError,
    RuleConfigError,
    SelfRelationshipError,
    SynthesisError,
)
from .guid import GuidParts, generate_guid, is_guid, parse_guid
from .hashing import compute_hash, content_hash, stable_shard
from .models import (
    Entity,
    EntityRecord,
    Event,
    Relationship,
    RelationshipRecord,
    RelationshipState,
    TagValue,
)
from .timestamps import ManualClock, now_ms, to_iso8601, to_ms

__all__ = [
    # Errors
    "SynthesisError",
    "ErrorCategory",
    "ErrorContext",
    "RuleConfigError",
    "DurationError",
    "IdentifierUnresolvedError",
    "GuidCollisionError",
    "SelfRelationshipError",
    "EntityLookupError",
    "LookupUnavailableError",
    "LookupTimeoutError",
    # Records
    "Event",
    "Entity",
    "TagValue",
    "Relationship",
    "RelationshipState",
    "EntityRecord",
    "RelationshipRecord",
    # Identity
    "generate_guid",
    "parse_guid",
    "is_guid",
    "GuidParts",
    "compute_hash",
    "content_hash",
    "stable_shard",
    # Time
    "parse_duration",
    "format_duration",
    "DURATION_ALIASES",
    "now_ms",
    "to_ms",
    "to_iso8601",
    "ManualClock",
]
