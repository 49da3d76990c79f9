"""
Structured error types for the synthesis engine.

Provides a typed hierarchy of errors with metadata for retry decisions,
categorization of rule-authoring defects, and structured logging.

Most conditions the engine meets while processing events are expected
traffic (no rule matched, a fallback chain resolved to nothing, a target
entity has not been synthesized yet). Those are counted and logged, never
raised to the caller. The exceptions here are for the cases where a single
step cannot produce its output, so the engine can decide what to do with
the record:

- **Category:** What kind of problem (rule config, identity, relationship, lookup)
- **Retryable:** Whether calling the same collaborator again may succeed
- **Context:** Entity type, rule, GUID and custom metadata for the log line
- **Cause:** Chained underlying exception for root cause analysis

Manifesto:
    - **Typed Error Hierarchy:** One subclass per failure the engine handles
    - **Explicit Retry Semantics:** Lookup failures are retryable, rule defects are not
    - **Rich Context:** Errors carry the entity type / GUID they concern
    - **Error Chaining:** Preserve original exceptions while adding context

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                       SynthesisError                            │
        │  (category, retryable, context, cause)                          │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                 │
        │  RuleConfigError          IdentityError        RelationshipError│
        │  (CONFIG)                 (IDENTITY)           (RELATIONSHIP)   │
        │       │                       │                      │          │
        │  DurationError        IdentifierUnresolved   SelfRelationship   │
        │                       GuidCollisionError                        │
        │                                                                 │
        │  EntityLookupError (LOOKUP, retryable)                          │
        │       │                                                         │
        │  LookupUnavailableError   LookupTimeoutError                    │
        └─────────────────────────────────────────────────────────────────┘

Examples:
    Raising a collision with context:

    >>> err = GuidCollisionError("MXxJTkZSQXxDTFVTVEVSfGFiYw", "prod", "prod-eu").with_context(
    ...     entity_type="KAFKA_CLUSTER"
    ... )
    >>> err.context.entity_type
    'KAFKA_CLUSTER'
    >>> err.retryable
    False

Tags:
    error-handling, exception-hierarchy, retry-logic, synthesis
"""

from __future__ import annotations

import builtins
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """
    Error categories for classification and counting.

    Categories separate rule-authoring defects (CONFIG, IDENTITY) that an
    operator must fix from collaborator hiccups (LOOKUP) that go away on
    retry.
    """

    CONFIG = "CONFIG"                # Invalid rule definitions, durations
    IDENTITY = "IDENTITY"            # Identifier / GUID construction
    RELATIONSHIP = "RELATIONSHIP"    # Relationship construction
    LOOKUP = "LOOKUP"                # Entity store lookups
    INTERNAL = "INTERNAL"            # Bugs, unexpected state


@dataclass
class ErrorContext:
    """
    Structured metadata context for errors.

    Typed fields for the identifiers the engine always knows at the point of
    failure; anything else goes in ``metadata``.

    Attributes:
        entity_type: Entity type being synthesized
        rule: Rule name or index within the definition
        guid: GUID concerned
        event_type: Event type of the triggering event
        account_id: Account of the triggering event
        source_file: Rule file the error originates from
        metadata: Additional key-value pairs
    """

    entity_type: str | None = None
    rule: str | None = None
    guid: str | None = None
    event_type: str | None = None
    account_id: str | None = None
    source_file: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["entity_type", "rule", "guid", "event_type", "account_id", "source_file"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class SynthesisError(Exception):
    """
    Base exception for all synthesis engine errors.

    Subclasses set ``default_category`` and ``default_retryable`` so call
    sites only pass a message and, where useful, a cause.

    Examples:
        >>> error = SynthesisError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.to_dict()["retryable"]
        False
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> SynthesisError:
        """
        Add context to this error (fluent API).

        Usage:
            raise IdentifierUnresolvedError("no identifier").with_context(
                entity_type="KAFKA_BROKER", rule="0"
            )
        """
        for key, value in kwargs.items():
            if key != "metadata" and hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class RuleConfigError(SynthesisError):
    """
    Rule definition error.

    Never retryable - the rule definition must be fixed.
    """

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class DurationError(RuleConfigError):
    """A duration is neither ISO-8601 nor a known alias."""

    def __init__(self, value: Any, message: str | None = None):
        self.value = value
        super().__init__(message or f"Invalid duration: {value!r}")


# =============================================================================
# IDENTITY ERRORS
# =============================================================================


class IdentityError(SynthesisError):
    """Identifier or GUID could not be produced for an event."""

    default_category = ErrorCategory.IDENTITY


class IdentifierUnresolvedError(IdentityError):
    """Every candidate attribute for an identifier was absent or null."""

    def __init__(self, attributes: list[str] | tuple[str, ...], message: str | None = None):
        self.attributes = tuple(attributes)
        super().__init__(message or f"Identifier unresolved, tried: {', '.join(self.attributes)}")


class GuidCollisionError(IdentityError):
    """
    Two semantically distinct entities map to the same GUID.

    Fatal to the offending record only; indicates a rule-authoring defect
    and is flagged for operator review.
    """

    def __init__(self, guid: str, existing_identifier: str, new_identifier: str):
        self.guid = guid
        self.existing_identifier = existing_identifier
        self.new_identifier = new_identifier
        super().__init__(
            f"GUID {guid} already bound to identifier {existing_identifier!r}, "
            f"refusing {new_identifier!r}",
            context=ErrorContext(guid=guid),
        )


# =============================================================================
# RELATIONSHIP ERRORS
# =============================================================================


class RelationshipError(SynthesisError):
    """Relationship could not be constructed."""

    default_category = ErrorCategory.RELATIONSHIP


class SelfRelationshipError(RelationshipError):
    """Source and target resolved to the same GUID."""

    def __init__(self, guid: str, relationship_type: str):
        self.guid = guid
        self.relationship_type = relationship_type
        super().__init__(
            f"{relationship_type} relationship from {guid} to itself rejected",
            context=ErrorContext(guid=guid),
        )


# =============================================================================
# LOOKUP ERRORS (Retryable)
# =============================================================================


class EntityLookupError(SynthesisError):
    """Entity store lookup failed; another attempt may succeed."""

    default_category = ErrorCategory.LOOKUP
    default_retryable = True


class LookupUnavailableError(EntityLookupError):
    """The lookup collaborator raised or is unreachable."""


class LookupTimeoutError(EntityLookupError, builtins.TimeoutError):
    """The lookup collaborator did not answer within its timeout."""

    def __init__(self, operation: str, timeout_seconds: float):
        self.operation = operation
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Lookup '{operation}' timed out after {timeout_seconds}s")


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_retryable(error: Exception) -> bool:
    """Check if an error is retryable."""
    if isinstance(error, SynthesisError):
        return error.retryable
    return isinstance(error, (ConnectionError, builtins.TimeoutError))


def categorize_error(error: Exception) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, SynthesisError):
        return error.category
    if isinstance(error, (ConnectionError, builtins.TimeoutError)):
        return ErrorCategory.LOOKUP
    return ErrorCategory.INTERNAL


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "SynthesisError",
    # Config
    "RuleConfigError",
    "DurationError",
    # Identity
    "IdentityError",
    "IdentifierUnresolvedError",
    "GuidCollisionError",
    # Relationship
    "RelationshipError",
    "SelfRelationshipError",
    # Lookup
    "EntityLookupError",
    "LookupUnavailableError",
    "LookupTimeoutError",
    # Utilities
    "is_retryable",
    "categorize_error",
]
