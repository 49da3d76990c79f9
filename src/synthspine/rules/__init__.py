"""Rule definitions: YAML schema, frozen rule model and versioned snapshots."""

from .models import (
    AnyOf,
    AttributeAbsent,
    AttributeCompare,
    AttributeEquals,
    AttributePresent,
    AttributeRef,
    AttributeTag,
    BuildGuid,
    Condition,
    ConstantTag,
    DerivedCase,
    DerivedValue,
    EntityDefinition,
    ExtractGuid,
    FallbackChain,
    FragmentTemplate,
    IdentifierSpec,
    Literal,
    LookupGuid,
    Negate,
    RelationshipRule,
    Resolution,
    SynthesisRule,
    TagMapping,
)
from .schema import RuleFileSpec
from .snapshot import RuleSnapshot, SnapshotHolder, load_rule_file, load_rules_dir, load_rules_text

__all__ = [
    # Conditions
    "Condition",
    "AttributeEquals",
    "AttributePresent",
    "AttributeAbsent",
    "AnyOf",
    "AttributeCompare",
    "Negate",
    # Identifiers
    "IdentifierSpec",
    "AttributeRef",
    "FallbackChain",
    "FragmentTemplate",
    "Literal",
    # Tags
    "TagMapping",
    "ConstantTag",
    "AttributeTag",
    # Definitions
    "SynthesisRule",
    "EntityDefinition",
    "DerivedValue",
    "DerivedCase",
    "RelationshipRule",
    "Resolution",
    "BuildGuid",
    "ExtractGuid",
    "LookupGuid",
    # Loading
    "RuleFileSpec",
    "RuleSnapshot",
    "SnapshotHolder",
    "load_rule_file",
    "load_rules_dir",
    "load_rules_text",
]
