"""
Tests for synthspine.core.hashing.

Tests cover:
- Deterministic hash computation
- Hash length options
- Order-independent content hashing
- Stable shard assignment
"""

import pytest

from synthspine.core.hashing import compute_hash, content_hash, stable_shard


class TestComputeHash:
    """Tests for compute_hash function."""

    def test_hash_deterministic(self):
        """Test that same inputs produce same hash."""
        assert compute_hash("a", "b", "c") == compute_hash("a", "b", "c")

    def test_hash_order_matters(self):
        """Test that value order affects the hash."""
        assert compute_hash("a", "b") != compute_hash("b", "a")

    def test_hash_default_length(self):
        assert len(compute_hash("value")) == 32

    def test_hash_custom_length(self):
        """Test hash with custom length."""
        assert len(compute_hash("value", length=16)) == 16
        assert len(compute_hash("value", length=64)) == 64


class TestContentHash:
    """Tests for content_hash."""

    def test_key_order_ignored(self):
        assert content_hash({"b": 2, "a": 1}) == content_hash({"a": 1, "b": 2})

    def test_value_types_distinguished(self):
        """1 and "1" are different content."""
        assert content_hash({"a": 1}) != content_hash({"a": "1"})

    def test_missing_vs_null(self):
        """A null value is still part of the content."""
        assert content_hash({"a": None}) != content_hash({})

    def test_non_json_values(self):
        """Values without a JSON form are hashed by their string form."""
        assert content_hash({"a": object}) == content_hash({"a": object})


class TestStableShard:
    """Tests for stable_shard."""

    def test_in_range(self):
        for key in ("a", "b", "c", "prod", "staging"):
            assert 0 <= stable_shard(key, 7) < 7

    def test_stable(self):
        """Same key, same shard, independent of PYTHONHASHSEED."""
        assert stable_shard("cluster-prod", 16) == stable_shard("cluster-prod", 16)

    def test_spreads_keys(self):
        shards = {stable_shard(f"key-{i}", 4) for i in range(100)}
        assert shards == {0, 1, 2, 3}

    def test_rejects_zero(self):
        with pytest.raises(ValueError):
            stable_shard("a", 0)
