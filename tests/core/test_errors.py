"""
Tests for synthspine.core.errors.

Tests cover:
- Categories and retryability defaults
- Context propagation via with_context
- Serialization for logging
- Helper classification functions
"""

from synthspine.core.errors import (
    DurationError,
    EntityLookupError,
    ErrorCategory,
    GuidCollisionError,
    IdentifierUnresolvedError,
    LookupTimeoutError,
    LookupUnavailableError,
    RuleConfigError,
    SelfRelationshipError,
    SynthesisError,
    categorize_error,
    is_retryable,
)


class TestSynthesisError:
    """Tests for the base error."""

    def test_defaults(self):
        error = SynthesisError("boom")
        assert error.category == ErrorCategory.INTERNAL
        assert error.retryable is False
        assert str(error) == "boom"

    def test_with_context(self):
        """Known fields go to the context, the rest to metadata."""
        error = RuleConfigError("bad").with_context(entity_type="CLUSTER", line=3)
        assert error.context.entity_type == "CLUSTER"
        assert error.context.metadata == {"line": 3}

    def test_to_dict(self):
        cause = ValueError("inner")
        error = LookupUnavailableError("lookup failed", cause=cause).with_context(guid="g1")
        data = error.to_dict()
        assert data["error_type"] == "LookupUnavailableError"
        assert data["category"] == "LOOKUP"
        assert data["retryable"] is True
        assert data["context"] == {"guid": "g1"}
        assert data["cause"] == "inner"
        assert error.__cause__ is cause


class TestSubclasses:
    """Tests for the concrete error types."""

    def test_duration_error_is_config(self):
        error = DurationError("FOREVER")
        assert isinstance(error, RuleConfigError)
        assert error.category == ErrorCategory.CONFIG
        assert "FOREVER" in error.message

    def test_identifier_unresolved(self):
        error = IdentifierUnresolvedError(["a", "b"])
        assert error.attributes == ("a", "b")
        assert error.category == ErrorCategory.IDENTITY
        assert "a, b" in error.message

    def test_guid_collision(self):
        error = GuidCollisionError("G", "prod", "prod-eu").with_context(entity_type="CLUSTER")
        assert error.existing_identifier == "prod"
        assert error.new_identifier == "prod-eu"
        assert error.context.guid == "G"
        assert error.context.entity_type == "CLUSTER"
        assert error.retryable is False

    def test_self_relationship(self):
        error = SelfRelationshipError("G", "CONTAINS")
        assert error.category == ErrorCategory.RELATIONSHIP
        assert error.to_dict()["context"] == {"guid": "G"}

    def test_lookup_timeout(self):
        """Timeouts are retryable lookup errors and builtin TimeoutErrors."""
        error = LookupTimeoutError("find", 0.5)
        assert isinstance(error, EntityLookupError)
        assert isinstance(error, TimeoutError)
        assert error.retryable is True
        assert "0.5" in error.message


class TestHelpers:
    """Tests for is_retryable and categorize_error."""

    def test_is_retryable(self):
        assert is_retryable(LookupUnavailableError("x"))
        assert not is_retryable(RuleConfigError("x"))
        assert is_retryable(ConnectionError())
        assert not is_retryable(ValueError())

    def test_categorize(self):
        assert categorize_error(GuidCollisionError("g", "a", "b")) == ErrorCategory.IDENTITY
        assert categorize_error(TimeoutError()) == ErrorCategory.LOOKUP
        assert categorize_error(KeyError()) == ErrorCategory.INTERNAL
