"""Pydantic models for rule YAML validation.

Rule files are the only authoring surface of the engine. Each file
describes one entity type (its synthesis rules, golden tags, derived
values and lifecycle configuration) and may also carry relationship
rules. The models here validate a file and convert it into the frozen
dataclasses of :mod:`synthspine.rules.models`.

Usage::

    from synthspine.rules.schema import RuleFileSpec

    spec = RuleFileSpec.from_yaml_file("rules/kafka_cluster.yaml")
    definition = spec.to_definition()
    relationship_rules = spec.to_relationship_rules()

Example YAML::

    domain: INFRA
    type: KAFKA_BROKER
    goldenTags: [brokerId]
    rules:
      - identifier:
          template: [{attribute: clusterName}, ":", {attribute: brokerId}]
        name: brokerHost
        conditions:
          - {attribute: eventType, value: KafkaBrokerSample}
        tags:
          brokerId: {}
          brokerHost: {fallbackAttribute: [hostname]}
          underReplicatedPartitions: {ttl: PT5M}
    configuration:
      entityExpirationTime: FOUR_HOURS
    relationships:
      - name: cluster-contains-broker
        relationshipType: CONTAINS
        expires: PT15M
        conditions: [{attribute: eventType, value: KafkaBrokerSample}]
        source:
          buildGuid: {domain: INFRA, type: KAFKA_CLUSTER, identifier: clusterName}
        target:
          buildGuid:
            domain: INFRA
            type: KAFKA_BROKER
            identifier: {template: [{attribute: clusterName}, ":", {attribute: brokerId}]}

Tags:
    rules, yaml, declarative, validation, pydantic
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from synthspine.core.durations import parse_duration
from synthspine.core.errors import DurationError
from synthspine.rules.models import (
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
    Fragment,
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

_COMPARE_OPS = ("gt", "gte", "lt", "lte")

DEFAULT_ENTITY_EXPIRATION = "EIGHT_DAYS"


def _check_duration(value: str | int | None) -> str | int | None:
    try:
        parse_duration(value)
    except DurationError as e:
        raise ValueError(e.message) from e
    return value


# =============================================================================
# Conditions
# =============================================================================


class ConditionSpec(BaseModel):
    """One condition: ``attribute`` plus exactly one operator.

    ``value`` tests equality, ``present: true|false`` tests presence or
    absence, ``anyOf`` tests membership, ``gt/gte/lt/lte`` compare
    numerically. ``negate: true`` inverts the result.
    """

    model_config = ConfigDict(extra="forbid")

    attribute: str = Field(..., min_length=1)
    value: Any = None
    present: bool | None = None
    anyOf: list[Any] | None = None
    gt: float | None = None
    gte: float | None = None
    lt: float | None = None
    lte: float | None = None
    negate: bool = False

    @model_validator(mode="after")
    def validate_single_operator(self) -> ConditionSpec:
        """Exactly one operator per condition."""
        given = [
            name
            for name in ("value", "present", "anyOf", *_COMPARE_OPS)
            if name in self.model_fields_set and (name == "value" or getattr(self, name) is not None)
        ]
        if len(given) != 1:
            raise ValueError(
                f"Condition on '{self.attribute}' needs exactly one of "
                f"value/present/anyOf/gt/gte/lt/lte, got {given or 'none'}"
            )
        return self

    def to_condition(self) -> Condition:
        condition: Condition
        if "value" in self.model_fields_set:
            condition = AttributeEquals(self.attribute, self.value)
        elif self.present is not None:
            condition = AttributePresent(self.attribute) if self.present else AttributeAbsent(self.attribute)
        elif self.anyOf is not None:
            condition = AnyOf(self.attribute, tuple(self.anyOf))
        else:
            op = next(name for name in _COMPARE_OPS if getattr(self, name) is not None)
            condition = AttributeCompare(self.attribute, op, getattr(self, op))
        return Negate(condition) if self.negate else condition


def _conditions(specs: list[ConditionSpec]) -> tuple[Condition, ...]:
    return tuple(spec.to_condition() for spec in specs)


# =============================================================================
# Identifiers
# =============================================================================


class FragmentRefSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    attribute: str = Field(..., min_length=1)


class TemplateSpec(BaseModel):
    """``{template: [...]}``: plain strings are literals, ``{attribute}`` entries are references."""

    model_config = ConfigDict(extra="forbid")

    template: list[str | FragmentRefSpec] = Field(..., min_length=1)

    @field_validator("template")
    @classmethod
    def validate_has_attribute(cls, v: list[str | FragmentRefSpec]) -> list[str | FragmentRefSpec]:
        """A template made only of literals would give every entity the same identifier."""
        if not any(isinstance(f, FragmentRefSpec) for f in v):
            raise ValueError("Identifier template must reference at least one attribute")
        return v


IdentifierForm = str | list[str] | TemplateSpec


def to_identifier_spec(form: IdentifierForm) -> IdentifierSpec:
    """Convert a YAML identifier form into an :data:`IdentifierSpec`."""
    if isinstance(form, str):
        return AttributeRef(form)
    if isinstance(form, list):
        if len(form) == 1:
            return AttributeRef(form[0])
        return FallbackChain(tuple(form))
    fragments: list[Fragment] = [
        AttributeRef(f.attribute) if isinstance(f, FragmentRefSpec) else Literal(f) for f in form.template
    ]
    return FragmentTemplate(tuple(fragments))


def _validate_identifier_form(v: IdentifierForm) -> IdentifierForm:
    if isinstance(v, str) and not v:
        raise ValueError("Identifier attribute must not be empty")
    if isinstance(v, list) and (not v or not all(v)):
        raise ValueError("Identifier fallback chain must list at least one attribute")
    return v


# =============================================================================
# Tags
# =============================================================================


class TagSpec(BaseModel):
    """Tag mapping keyed by its source attribute.

    ``value`` makes the tag a constant. ``entityTagName`` renames it on the
    entity, ``fallbackAttribute`` lists attributes tried when the source is
    absent, ``default`` applies when nothing resolves.
    """

    model_config = ConfigDict(extra="forbid")

    value: Any = None
    entityTagName: str | None = None
    fallbackAttribute: list[str] = Field(default_factory=list)
    ttl: str | int | None = None
    default: Any = None

    @field_validator("ttl")
    @classmethod
    def validate_ttl(cls, v: str | int | None) -> str | int | None:
        return _check_duration(v)

    @model_validator(mode="after")
    def validate_constant(self) -> TagSpec:
        """Constant tags take no attribute options."""
        if "value" in self.model_fields_set and self.fallbackAttribute:
            raise ValueError("A constant tag cannot declare fallbackAttribute")
        return self

    def to_mapping(self, source: str) -> tuple[str, TagMapping]:
        tag_name = self.entityTagName or source
        ttl_ms = parse_duration(self.ttl)
        if "value" in self.model_fields_set:
            return tag_name, ConstantTag(self.value, ttl_ms=ttl_ms)
        return tag_name, AttributeTag(
            source_attribute=source,
            fallback_chain=tuple(self.fallbackAttribute),
            rename_to=self.entityTagName,
            ttl_ms=ttl_ms,
            default=self.default,
        )


# =============================================================================
# Synthesis rules
# =============================================================================


class RuleSpec(BaseModel):
    """One synthesis rule of an entity type."""

    model_config = ConfigDict(extra="forbid")

    identifier: IdentifierForm
    name: IdentifierForm | None = None
    encodeIdentifierInGUID: bool = True
    conditions: list[ConditionSpec] = Field(default_factory=list)
    tags: dict[str, TagSpec | None] = Field(default_factory=dict)

    @field_validator("identifier", "name")
    @classmethod
    def validate_identifier(cls, v: IdentifierForm | None) -> IdentifierForm | None:
        return v if v is None else _validate_identifier_form(v)

    @model_validator(mode="after")
    def validate_unique_tag_names(self) -> RuleSpec:
        """Two mappings must not write the same entity tag."""
        names = [(spec.entityTagName if spec else None) or source for source, spec in self.tags.items()]
        duplicates = {n for n in names if names.count(n) > 1}
        if duplicates:
            raise ValueError(f"Duplicate entity tag names: {sorted(duplicates)}")
        return self

    def to_rule(self, entity_type: str, index: int) -> SynthesisRule:
        mappings = tuple((spec or TagSpec()).to_mapping(source) for source, spec in self.tags.items())
        return SynthesisRule(
            entity_type=entity_type,
            identifier_spec=to_identifier_spec(self.identifier),
            name_spec=to_identifier_spec(self.name) if self.name is not None else None,
            encode_identifier_in_guid=self.encodeIdentifierInGUID,
            conditions=_conditions(self.conditions),
            tag_mappings=mappings,
            index=index,
        )


class DerivedCaseSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    when: list[ConditionSpec] = Field(..., min_length=1)
    value: Any


class DerivedValueSpec(BaseModel):
    """Case/when expression over an entity's tags; first matching case wins."""

    model_config = ConfigDict(extra="forbid")

    cases: list[DerivedCaseSpec] = Field(..., min_length=1)
    default: Any = None

    def to_derived(self, name: str) -> DerivedValue:
        return DerivedValue(
            name=name,
            cases=tuple(DerivedCase(_conditions(c.when), c.value) for c in self.cases),
            default=self.default,
        )


class ConfigurationSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    alertable: bool = False
    entityExpirationTime: str | int | None = DEFAULT_ENTITY_EXPIRATION
    isContainer: bool = False

    @field_validator("entityExpirationTime")
    @classmethod
    def validate_expiration(cls, v: str | int | None) -> str | int | None:
        return _check_duration(v)


# =============================================================================
# Relationship rules
# =============================================================================


class BuildGuidSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    domain: str = Field(..., min_length=1)
    type: str = Field(..., min_length=1)
    identifier: IdentifierForm
    encodeIdentifierInGUID: bool = True
    accountAttribute: str | None = None

    @field_validator("identifier")
    @classmethod
    def validate_identifier(cls, v: IdentifierForm) -> IdentifierForm:
        return _validate_identifier_form(v)


class ExtractGuidSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    attribute: str = Field(..., min_length=1)


class LookupGuidSpec(BaseModel):
    """``fields`` maps entity field (``name``, ``identifier`` or a tag) to event attribute."""

    model_config = ConfigDict(extra="forbid")

    category: str = Field(..., min_length=1, description="DOMAIN/TYPE of the entity to find")
    fields: dict[str, str] = Field(..., min_length=1)


class ResolutionSpec(BaseModel):
    """Exactly one of ``buildGuid``, ``extractGuid``, ``lookupGuid``."""

    model_config = ConfigDict(extra="forbid")

    buildGuid: BuildGuidSpec | None = None
    extractGuid: ExtractGuidSpec | None = None
    lookupGuid: LookupGuidSpec | None = None

    @model_validator(mode="after")
    def validate_one_of(self) -> ResolutionSpec:
        given = [n for n in ("buildGuid", "extractGuid", "lookupGuid") if getattr(self, n) is not None]
        if len(given) != 1:
            raise ValueError(f"Resolution needs exactly one of buildGuid/extractGuid/lookupGuid, got {given or 'none'}")
        return self

    def to_resolution(self) -> Resolution:
        if self.buildGuid is not None:
            b = self.buildGuid
            return BuildGuid(
                domain=b.domain.upper(),
                type=b.type.upper(),
                identifier=to_identifier_spec(b.identifier),
                encode_identifier_in_guid=b.encodeIdentifierInGUID,
                account_attribute=b.accountAttribute,
            )
        if self.extractGuid is not None:
            return ExtractGuid(self.extractGuid.attribute)
        if self.lookupGuid is None:
            raise ValueError("Resolution has none of buildGuid/extractGuid/lookupGuid")
        return LookupGuid(
            category=self.lookupGuid.category.upper(),
            match_fields=tuple(self.lookupGuid.fields.items()),
        )


class RelationshipRuleSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1)
    relationshipType: str = Field(..., min_length=1)
    expires: str | int
    conditions: list[ConditionSpec] = Field(default_factory=list)
    source: ResolutionSpec
    target: ResolutionSpec

    @field_validator("expires")
    @classmethod
    def validate_expires(cls, v: str | int) -> str | int:
        """Relationships must expire; NEVER is refused."""
        _check_duration(v)
        if parse_duration(v) is None:
            raise ValueError("Relationship expiry cannot be NEVER")
        return v

    def to_rule(self, source_file: str | None = None) -> RelationshipRule:
        ttl_ms = parse_duration(self.expires)
        if ttl_ms is None:
            raise ValueError(f"Relationship {self.name!r} cannot have expiry NEVER")
        return RelationshipRule(
            name=self.name,
            relationship_type=self.relationshipType.upper(),
            ttl_ms=ttl_ms,
            source=self.source.to_resolution(),
            target=self.target.to_resolution(),
            conditions=_conditions(self.conditions),
            source_file=source_file,
        )


# =============================================================================
# Root
# =============================================================================


class RuleFileSpec(BaseModel):
    """Complete rule file.

    A file holds one entity type (``domain``, ``type``, ``rules``), a list of
    ``relationships``, or both.
    """

    model_config = ConfigDict(extra="forbid")

    domain: str | None = None
    type: str | None = None
    goldenTags: list[str] = Field(default_factory=list)
    derivedValues: dict[str, DerivedValueSpec] = Field(default_factory=dict)
    rules: list[RuleSpec] = Field(default_factory=list)
    configuration: ConfigurationSpec = Field(default_factory=ConfigurationSpec)
    relationships: list[RelationshipRuleSpec] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_content(self) -> RuleFileSpec:
        """An entity section needs domain, type and rules together."""
        has_entity = self.domain is not None or self.type is not None or bool(self.rules)
        if has_entity and not (self.domain and self.type and self.rules):
            raise ValueError("Entity definitions need domain, type and at least one rule")
        if not has_entity and not self.relationships:
            raise ValueError("Rule file defines neither an entity type nor relationships")
        names = [r.name for r in self.relationships]
        if len(names) != len(set(names)):
            duplicates = [n for n in names if names.count(n) > 1]
            raise ValueError(f"Duplicate relationship names: {set(duplicates)}")
        return self

    @property
    def has_entity(self) -> bool:
        return self.domain is not None

    def to_definition(self, source_file: str | None = None) -> EntityDefinition:
        """Convert the entity section to an :class:`EntityDefinition`."""
        if self.domain is None or self.type is None:
            raise ValueError("Rule file has no entity section")
        entity_type = self.type.upper()
        return EntityDefinition(
            domain=self.domain.upper(),
            type=entity_type,
            rules=tuple(rule.to_rule(entity_type, i) for i, rule in enumerate(self.rules)),
            golden_tags=tuple(self.goldenTags),
            alertable=self.configuration.alertable,
            entity_expiration_ms=parse_duration(self.configuration.entityExpirationTime),
            is_container=self.configuration.isContainer,
            derived_values=tuple(spec.to_derived(name) for name, spec in self.derivedValues.items()),
            source_file=source_file,
        )

    def to_relationship_rules(self, source_file: str | None = None) -> tuple[RelationshipRule, ...]:
        return tuple(r.to_rule(source_file) for r in self.relationships)

    @classmethod
    def from_yaml(cls, yaml_content: str) -> RuleFileSpec:
        """Parse and validate YAML content.

        Raises:
            ValueError: If YAML is invalid or doesn't match schema
                (pydantic's ``ValidationError`` is a ``ValueError``).
        """
        try:
            data = yaml.safe_load(yaml_content)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML: {e}") from e
        if not isinstance(data, dict):
            raise ValueError("Rule file must be a YAML mapping")
        return cls.model_validate(data)

    @classmethod
    def from_yaml_file(cls, path: str | Path) -> RuleFileSpec:
        """Load and validate from a YAML file."""
        content = Path(path).read_text(encoding="utf-8")
        return cls.from_yaml(content)
