"""
Identifier construction from event attributes.

An identifier is the stable, human-meaningful key of an entity within its
type (a cluster name, ``cluster:brokerId``). It feeds the GUID generator,
so rendering must be deterministic: ``3`` and ``3.0`` render the same,
booleans render lowercase.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from synthspine.core.errors import IdentifierUnresolvedError
from synthspine.rules.models import (
    AttributeRef,
    FallbackChain,
    FragmentTemplate,
    IdentifierSpec,
    Literal,
)


def render_value(value: Any) -> str:
    """Render an attribute value as identifier text."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _present(attributes: Mapping[str, Any], name: str) -> bool:
    value = attributes.get(name)
    return value is not None and value != ""


def resolve_first(attributes: Mapping[str, Any], names: tuple[str, ...]) -> Any:
    """First present value among ``names``, or None."""
    for name in names:
        if _present(attributes, name):
            return attributes[name]
    return None


def build_identifier(attributes: Mapping[str, Any], spec: IdentifierSpec) -> str:
    """
    Build the identifier described by ``spec``.

    Raises:
        IdentifierUnresolvedError: If the referenced attribute is absent,
            every fallback is absent, or any template fragment is absent
    """
    if isinstance(spec, AttributeRef):
        if not _present(attributes, spec.attribute):
            raise IdentifierUnresolvedError((spec.attribute,))
        return render_value(attributes[spec.attribute])

    if isinstance(spec, FallbackChain):
        value = resolve_first(attributes, spec.attributes)
        if value is None:
            raise IdentifierUnresolvedError(spec.attributes)
        return render_value(value)

    if isinstance(spec, FragmentTemplate):
        missing = [
            f.attribute
            for f in spec.fragments
            if isinstance(f, AttributeRef) and not _present(attributes, f.attribute)
        ]
        if missing:
            raise IdentifierUnresolvedError(
                missing, f"Identifier template missing attributes: {', '.join(missing)}"
            )
        return "".join(
            f.text if isinstance(f, Literal) else render_value(attributes[f.attribute])
            for f in spec.fragments
        )

    raise TypeError(f"Unknown identifier spec: {type(spec).__name__}")


def try_build_identifier(attributes: Mapping[str, Any], spec: IdentifierSpec) -> str | None:
    """Like :func:`build_identifier` but returns None instead of raising."""
    try:
        return build_identifier(attributes, spec)
    except IdentifierUnresolvedError:
        return None
