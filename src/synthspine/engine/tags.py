"""Tag extraction: event attributes to timestamped tag values."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from synthspine.core.models import TagValue
from synthspine.rules.models import ConstantTag, SynthesisRule, TagMapping

_UNRESOLVED = object()


def _resolve(mapping: TagMapping, attributes: Mapping[str, Any]) -> Any:
    if isinstance(mapping, ConstantTag):
        return mapping.value
    for name in (mapping.source_attribute, *mapping.fallback_chain):
        value = attributes.get(name)
        if value is not None:
            return value
    if mapping.default is not None:
        return mapping.default
    return _UNRESOLVED


def _expires_at(ttl_ms: int | None, timestamp: int) -> int | None:
    return None if ttl_ms is None else timestamp + ttl_ms


def extract_tags(
    tag_mappings: tuple[tuple[str, TagMapping], ...],
    attributes: Mapping[str, Any],
    timestamp: int,
) -> dict[str, TagValue]:
    """
    Resolve every mapping against ``attributes``.

    Mappings that resolve to nothing (and declare no default) are left out
    of the result; they are not an error. Each value records ``timestamp``
    as the event time that set it.
    """
    tags: dict[str, TagValue] = {}
    for tag_name, mapping in tag_mappings:
        value = _resolve(mapping, attributes)
        if value is _UNRESOLVED:
            continue
        tags[tag_name] = TagValue(
            value=value,
            set_by_event_time=timestamp,
            expires_at=_expires_at(mapping.ttl_ms, timestamp),
        )
    return tags


class TagExtractor:
    """Extracts the tags a synthesis rule declares."""

    def extract(self, rule: SynthesisRule, attributes: Mapping[str, Any], timestamp: int) -> dict[str, TagValue]:
        return extract_tags(rule.tag_mappings, attributes, timestamp)

    @staticmethod
    def tag_names(rule: SynthesisRule) -> tuple[str, ...]:
        return tuple(name for name, _ in rule.tag_mappings)


__all__ = ["TagExtractor", "extract_tags"]
