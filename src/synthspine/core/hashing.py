"""
Deterministic hashing utilities for entity identity and deduplication.

Provides stable, reproducible hash functions used by the GUID generator
(identity hash) and the deduplicator (content hash over the attribute
subset a rule actually reads).

Manifesto:
    Synthesis must be replay-safe and restart-safe:
    - **Identity hash:** Same (account, domain, type, identifier) → same GUID
    - **Content hash:** Same relevant attributes → same dedup key
    - **Deterministic:** No process-seeded ``hash()``, no dict ordering leaks
    - **Collision-resistant:** SHA-256 based

Examples:
    >>> compute_hash("1", "INFRA", "KAFKA_CLUSTER", "prod") == compute_hash(
    ...     "1", "INFRA", "KAFKA_CLUSTER", "prod")
    True
    >>> compute_hash("a", "b") != compute_hash("b", "a")
    True
    >>> content_hash({"b": 2, "a": 1}) == content_hash({"a": 1, "b": 2})
    True

Tags:
    hashing, deduplication, idempotency, identity
"""

import hashlib
import json
from collections.abc import Mapping
from typing import Any


def compute_hash(*values: Any, length: int = 32) -> str:
    """
    Compute deterministic hash from values.

    Concatenates string representations of all values with '|' and
    computes SHA-256.

    Args:
        *values: Values to hash (converted to strings)
        length: Hex digest length (default 32 = 128 bits)

    Returns:
        Hex string of specified length
    """
    content = "|".join(str(v) for v in values)
    return hashlib.sha256(content.encode()).hexdigest()[:length]


def content_hash(attributes: Mapping[str, Any], length: int = 32) -> str:
    """
    Compute an order-independent hash of an attribute mapping.

    Keys are sorted and values serialized as canonical JSON, so ``1`` and
    ``"1"`` hash differently while key order never matters.
    """
    canonical = json.dumps(dict(attributes), sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()[:length]


def stable_shard(key: str, shards: int) -> int:
    """Map a key to a shard index in ``[0, shards)`` independently of PYTHONHASHSEED."""
    if shards <= 0:
        raise ValueError(f"shards must be positive, got {shards}")
    digest = hashlib.sha256(key.encode()).digest()
    return int.from_bytes(digest[:8], "big") % shards
