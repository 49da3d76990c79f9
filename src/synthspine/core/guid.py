"""
Entity GUID generation.

A GUID is a pure function of (account, domain, type, identifier). It never
depends on mutable entity data, the clock, or process state, so the same
logical entity gets the same handle on every worker and after restarts.

Format::

    base64url_nopad("{account}|{DOMAIN}|{TYPE}|{segment}")

    segment = compute_hash(account, DOMAIN, TYPE, identifier)   when encoding
            = identifier                                        otherwise

Encoding keeps GUIDs bounded in length for long composite identifiers;
the identifier itself stays on the entity record.

Examples:
    >>> g = generate_guid("1", "INFRA", "KAFKA_CLUSTER", "prod")
    >>> g == generate_guid("1", "INFRA", "KAFKA_CLUSTER", "prod")
    True
    >>> parse_guid(generate_guid("1", "INFRA", "HOST", "web-1", encode_identifier=False))
    GuidParts(account_id='1', domain='INFRA', type='HOST', segment='web-1')
"""

from __future__ import annotations

import base64
import binascii
from typing import NamedTuple

from synthspine.core.hashing import compute_hash

_SEPARATOR = "|"


class GuidParts(NamedTuple):
    """Decoded components of a GUID."""

    account_id: str
    domain: str
    type: str
    segment: str


def generate_guid(
    account_id: str,
    domain: str,
    entity_type: str,
    identifier: str,
    *,
    encode_identifier: bool = True,
) -> str:
    """
    Build the deterministic GUID for an entity.

    Args:
        account_id: Owning account
        domain: Entity domain (upper-cased)
        entity_type: Entity type (upper-cased)
        identifier: Identifier produced by the identifier builder
        encode_identifier: Replace the identifier by its hash in the GUID

    Returns:
        URL-safe base64 string without padding
    """
    domain = domain.upper()
    entity_type = entity_type.upper()
    account_id = str(account_id)
    if encode_identifier:
        segment = compute_hash(account_id, domain, entity_type, identifier)
    else:
        segment = identifier
    raw = _SEPARATOR.join((account_id, domain, entity_type, segment))
    return base64.urlsafe_b64encode(raw.encode()).decode().rstrip("=")


def parse_guid(guid: str) -> GuidParts:
    """
    Decode a GUID into its parts.

    Raises:
        ValueError: If the string is not a GUID produced by ``generate_guid``
    """
    padded = guid + "=" * (-len(guid) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded.encode()).decode()
    except (binascii.Error, UnicodeDecodeError) as e:
        raise ValueError(f"Not a valid GUID: {guid!r}") from e
    parts = raw.split(_SEPARATOR, 3)
    if len(parts) != 4:
        raise ValueError(f"Not a valid GUID: {guid!r}")
    return GuidParts(*parts)


def is_guid(value: str) -> bool:
    """True if ``value`` decodes as a GUID."""
    try:
        parse_guid(value)
    except ValueError:
        return False
    return True
