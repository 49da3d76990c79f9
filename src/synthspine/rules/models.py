"""
Immutable rule model: what the engine evaluates.

These frozen dataclasses are produced by the YAML schema layer
(:mod:`synthspine.rules.schema`) and collected into a
:class:`~synthspine.rules.snapshot.RuleSnapshot`. Nothing in the engine
mutates them; a rule change means a new snapshot.

Closed variants:

    Condition       = AttributeEquals | AttributePresent | AttributeAbsent
                    | AnyOf | AttributeCompare | Negate(Condition)
    IdentifierSpec  = AttributeRef | FallbackChain | FragmentTemplate
    Fragment        = Literal | AttributeRef
    TagMapping      = ConstantTag | AttributeTag
    Resolution      = BuildGuid | ExtractGuid | LookupGuid
"""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import cached_property
from typing import Any, Literal as TypingLiteral

# =============================================================================
# Conditions
# =============================================================================


@dataclass(frozen=True)
class AttributeEquals:
    attribute: str
    value: Any


@dataclass(frozen=True)
class AttributePresent:
    attribute: str


@dataclass(frozen=True)
class AttributeAbsent:
    attribute: str


@dataclass(frozen=True)
class AnyOf:
    attribute: str
    values: tuple[Any, ...]


CompareOp = TypingLiteral["gt", "gte", "lt", "lte"]


@dataclass(frozen=True)
class AttributeCompare:
    """Numeric comparison ``attribute <op> value``."""

    attribute: str
    op: CompareOp
    value: float


@dataclass(frozen=True)
class Negate:
    inner: Condition


Condition = AttributeEquals | AttributePresent | AttributeAbsent | AnyOf | AttributeCompare | Negate


def condition_attributes(condition: Condition) -> tuple[str, ...]:
    """Attributes a condition reads."""
    if isinstance(condition, Negate):
        return condition_attributes(condition.inner)
    return (condition.attribute,)


# =============================================================================
# Identifiers
# =============================================================================


@dataclass(frozen=True)
class AttributeRef:
    attribute: str


@dataclass(frozen=True)
class FallbackChain:
    """Attributes tried in order until one is present and non-null."""

    attributes: tuple[str, ...]


@dataclass(frozen=True)
class Literal:
    text: str


Fragment = Literal | AttributeRef


@dataclass(frozen=True)
class FragmentTemplate:
    """Literal separators and attribute fragments joined in declared order."""

    fragments: tuple[Fragment, ...]


IdentifierSpec = AttributeRef | FallbackChain | FragmentTemplate


def identifier_attributes(spec: IdentifierSpec) -> tuple[str, ...]:
    """Attributes an identifier spec reads."""
    if isinstance(spec, AttributeRef):
        return (spec.attribute,)
    if isinstance(spec, FallbackChain):
        return spec.attributes
    return tuple(f.attribute for f in spec.fragments if isinstance(f, AttributeRef))


# =============================================================================
# Tags
# =============================================================================


@dataclass(frozen=True)
class ConstantTag:
    value: Any
    ttl_ms: int | None = None


@dataclass(frozen=True)
class AttributeTag:
    """
    Tag sourced from an event attribute.

    ``source_attribute`` is tried first, then ``fallback_chain`` in order;
    ``default`` applies when nothing resolves (None = omit the tag).
    """

    source_attribute: str
    fallback_chain: tuple[str, ...] = ()
    rename_to: str | None = None
    ttl_ms: int | None = None
    default: Any = None


TagMapping = ConstantTag | AttributeTag


# =============================================================================
# Synthesis rules and entity definitions
# =============================================================================


@dataclass(frozen=True)
class SynthesisRule:
    """One way of recognising an entity of ``entity_type`` in an event."""

    entity_type: str
    identifier_spec: IdentifierSpec
    name_spec: IdentifierSpec | None = None
    encode_identifier_in_guid: bool = True
    conditions: tuple[Condition, ...] = ()
    tag_mappings: tuple[tuple[str, TagMapping], ...] = ()
    index: int = 0

    @property
    def rule_id(self) -> str:
        return f"{self.entity_type}[{self.index}]"

    @cached_property
    def referenced_attributes(self) -> tuple[str, ...]:
        """Sorted attributes whose values shape this rule's output (dedup content)."""
        attrs: set[str] = set(identifier_attributes(self.identifier_spec))
        if self.name_spec is not None:
            attrs.update(identifier_attributes(self.name_spec))
        for _, mapping in self.tag_mappings:
            if isinstance(mapping, AttributeTag):
                attrs.add(mapping.source_attribute)
                attrs.update(mapping.fallback_chain)
        return tuple(sorted(attrs))


@dataclass(frozen=True)
class DerivedCase:
    conditions: tuple[Condition, ...]
    value: Any


@dataclass(frozen=True)
class DerivedValue:
    """
    Categorical summary over an entity's tags (case/when, first match wins).

    Recomputed on read; never stored as a tag.
    """

    name: str
    cases: tuple[DerivedCase, ...]
    default: Any = None


@dataclass(frozen=True)
class EntityDefinition:
    """Everything the engine knows about one entity type."""

    domain: str
    type: str
    rules: tuple[SynthesisRule, ...]
    golden_tags: tuple[str, ...] = ()
    alertable: bool = False
    entity_expiration_ms: int | None = None
    is_container: bool = False
    derived_values: tuple[DerivedValue, ...] = ()
    source_file: str | None = None

    @property
    def key(self) -> str:
        return f"{self.domain}/{self.type}"


# =============================================================================
# Relationship rules
# =============================================================================


@dataclass(frozen=True)
class BuildGuid:
    """Construct the GUID from event attributes; the entity need not exist."""

    domain: str
    type: str
    identifier: IdentifierSpec
    encode_identifier_in_guid: bool = True
    account_attribute: str | None = None


@dataclass(frozen=True)
class ExtractGuid:
    """Read an already-known GUID from an event attribute."""

    attribute: str


@dataclass(frozen=True)
class LookupGuid:
    """
    Ask the entity store for a matching entity.

    ``match_fields`` pairs an entity field (``name``, ``identifier`` or a tag
    name) with the event attribute supplying the value.
    """

    category: str
    match_fields: tuple[tuple[str, str], ...]


Resolution = BuildGuid | ExtractGuid | LookupGuid


@dataclass(frozen=True)
class RelationshipRule:
    name: str
    relationship_type: str
    ttl_ms: int
    source: Resolution
    target: Resolution
    conditions: tuple[Condition, ...] = field(default=())
    source_file: str | None = None
