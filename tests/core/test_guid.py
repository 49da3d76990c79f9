"""
Tests for synthspine.core.guid.

Tests cover:
- Determinism across calls
- Sensitivity to every identity component
- Encoded vs raw identifier segments
- Decoding and validation
"""

import base64

import pytest

from synthspine.core.guid import GuidParts, generate_guid, is_guid, parse_guid
from synthspine.core.hashing import compute_hash


class TestGenerateGuid:
    """Tests for generate_guid."""

    def test_deterministic(self):
        """Same inputs always give the same GUID."""
        guids = {generate_guid("1", "INFRA", "CLUSTER", "prod") for _ in range(5)}
        assert len(guids) == 1

    def test_known_value(self):
        """The GUID is a pure function of its inputs, stable across restarts."""
        segment = compute_hash("1", "INFRA", "CLUSTER", "prod")
        raw = f"1|INFRA|CLUSTER|{segment}".encode()
        expected = base64.urlsafe_b64encode(raw).decode().rstrip("=")

        assert generate_guid("1", "INFRA", "CLUSTER", "prod") == expected

    @pytest.mark.parametrize(
        "args",
        [
            ("2", "INFRA", "CLUSTER", "prod"),
            ("1", "APM", "CLUSTER", "prod"),
            ("1", "INFRA", "BROKER", "prod"),
            ("1", "INFRA", "CLUSTER", "staging"),
        ],
    )
    def test_every_component_matters(self, args):
        """Changing any component changes the GUID."""
        assert generate_guid(*args) != generate_guid("1", "INFRA", "CLUSTER", "prod")

    def test_domain_and_type_are_case_insensitive(self):
        """Domain and type are normalised to upper case."""
        assert generate_guid("1", "infra", "cluster", "prod") == generate_guid("1", "INFRA", "CLUSTER", "prod")

    def test_no_padding(self):
        """GUIDs are URL-safe and unpadded."""
        guid = generate_guid("1", "INFRA", "CLUSTER", "x")
        assert "=" not in guid
        assert "+" not in guid and "/" not in guid

    def test_encoded_length_is_bounded(self):
        """Long identifiers do not make encoded GUIDs longer."""
        short = generate_guid("1", "INFRA", "CLUSTER", "a")
        long = generate_guid("1", "INFRA", "CLUSTER", "a" * 500)
        assert len(short) == len(long)

    def test_raw_identifier_segment(self):
        """Without encoding the identifier is carried verbatim."""
        guid = generate_guid("1", "INFRA", "HOST", "web-1", encode_identifier=False)
        assert parse_guid(guid).segment == "web-1"


class TestParseGuid:
    """Tests for parse_guid and is_guid."""

    def test_round_trip_parts(self):
        """Parsing yields the account, domain, type and segment."""
        guid = generate_guid("42", "infra", "host", "web-1", encode_identifier=False)
        assert parse_guid(guid) == GuidParts("42", "INFRA", "HOST", "web-1")

    def test_segment_may_contain_separator(self):
        """Raw identifiers containing '|' stay in the segment."""
        guid = generate_guid("1", "INFRA", "HOST", "a|b", encode_identifier=False)
        assert parse_guid(guid).segment == "a|b"

    def test_invalid(self):
        """Strings that are not GUIDs are rejected."""
        with pytest.raises(ValueError):
            parse_guid(base64.urlsafe_b64encode(b"only|two").decode())
        assert is_guid("abc") is False

    def test_is_guid(self):
        assert is_guid(generate_guid("1", "INFRA", "CLUSTER", "prod"))
