"""Rule matching: first rule in declared order wins."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from synthspine.engine.conditions import evaluate_all
from synthspine.observability.logging import get_logger
from synthspine.observability.metrics import SynthesisMetrics
from synthspine.rules.models import EntityDefinition, SynthesisRule

logger = get_logger(__name__)


@dataclass(frozen=True)
class MatchResult:
    """Outcome of matching one event against one entity type.

    ``matched_count`` counts every rule whose conditions held, so a value
    above one flags overlapping rules even though only ``rule`` is applied.
    """

    rule: SynthesisRule | None
    matched_count: int = 0

    @property
    def matched(self) -> bool:
        return self.rule is not None

    @property
    def ambiguous(self) -> bool:
        return self.matched_count > 1


NO_MATCH = MatchResult(rule=None, matched_count=0)


class RuleMatcher:
    """Select the synthesis rule of an entity type that applies to an event."""

    def __init__(self, metrics: SynthesisMetrics | None = None):
        self._metrics = metrics

    def match(self, attributes: Mapping[str, Any], definition: EntityDefinition) -> MatchResult:
        selected: SynthesisRule | None = None
        matched = 0
        for rule in definition.rules:
            if evaluate_all(rule.conditions, attributes):
                matched += 1
                if selected is None:
                    selected = rule

        if selected is None:
            if self._metrics is not None:
                self._metrics.no_match.labels(entity_type=definition.type).inc()
            return NO_MATCH

        if matched > 1:
            if self._metrics is not None:
                self._metrics.ambiguous.labels(entity_type=definition.type).inc()
            logger.warning(
                "synthesis.ambiguous_match",
                entity_type=definition.type,
                rule=selected.rule_id,
                matched_rules=matched,
            )
        return MatchResult(rule=selected, matched_count=matched)
