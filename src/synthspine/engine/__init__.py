"""Synthesis engine: matching, identity, dedup, merging, relationships and expiration."""

from .conditions import evaluate, evaluate_all
from .dedup import DedupKey, Deduplicator, DedupWindow, default_windows
from .derived import compute_derived, evaluate_derived, to_entity_record
from .engine import ProcessResult, SkippedEntity, SynthesisEngine, SynthesizedEntity
from .identifier import build_identifier, render_value
from .matcher import MatchResult, RuleMatcher
from .merger import EntityMerger, MergeOutcome
from .relationships import RelationshipBuilder, RelationshipOutcome
from .runner import PartitionedRunner, shard_key
from .sink import CollectingSink, NullSink, RecordSink
from .store import (
    EntityLookup,
    EntityStore,
    InMemoryEntityStore,
    InMemoryRelationshipStore,
    RelationshipStore,
    StoreEntityLookup,
)
from .sweeper import ExpirationSweeper, PeriodicSweeper, SweepReport
from .tags import TagExtractor, extract_tags

__all__ = [
    # Engine
    "SynthesisEngine",
    "ProcessResult",
    "SynthesizedEntity",
    "SkippedEntity",
    "PartitionedRunner",
    "shard_key",
    # Components
    "evaluate",
    "evaluate_all",
    "RuleMatcher",
    "MatchResult",
    "build_identifier",
    "render_value",
    "TagExtractor",
    "extract_tags",
    "DedupKey",
    "DedupWindow",
    "Deduplicator",
    "default_windows",
    "EntityMerger",
    "MergeOutcome",
    "compute_derived",
    "evaluate_derived",
    "to_entity_record",
    "RelationshipBuilder",
    "RelationshipOutcome",
    "ExpirationSweeper",
    "PeriodicSweeper",
    "SweepReport",
    # Collaborators
    "EntityStore",
    "RelationshipStore",
    "EntityLookup",
    "InMemoryEntityStore",
    "InMemoryRelationshipStore",
    "StoreEntityLookup",
    "RecordSink",
    "CollectingSink",
    "NullSink",
]
