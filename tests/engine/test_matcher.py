"""Tests for synthspine.engine.matcher."""

from synthspine.engine.matcher import RuleMatcher
from synthspine.observability.metrics import MetricsRegistry, SynthesisMetrics
from synthspine.rules.snapshot import load_rules_text

OVERLAPPING = """
domain: INFRA
type: HOST
rules:
  - identifier: hostname
    conditions: [{attribute: eventType, value: SystemSample}]
  - identifier: fqdn
    conditions: [{attribute: fqdn, present: true}]
  - identifier: ip
    conditions: [{attribute: eventType, value: NetworkSample}]
"""


class TestRuleMatcher:
    """Tests for first-match rule selection."""

    def setup_method(self):
        self.metrics = SynthesisMetrics(MetricsRegistry())
        self.matcher = RuleMatcher(self.metrics)
        self.definition = load_rules_text({"host.yaml": OVERLAPPING}).definition("HOST")

    def test_first_match_wins(self):
        result = self.matcher.match({"eventType": "NetworkSample", "ip": "10.0.0.1"}, self.definition)
        assert result.matched
        assert result.rule.index == 2
        assert not result.ambiguous

    def test_ambiguous_counted(self):
        """Several matching rules: the first applies and the overlap is counted."""
        result = self.matcher.match({"eventType": "SystemSample", "fqdn": "h.example"}, self.definition)
        assert result.rule.index == 0
        assert result.matched_count == 2
        assert result.ambiguous
        assert self.metrics.ambiguous.labels(entity_type="HOST").value == 1

    def test_no_match_counted(self):
        result = self.matcher.match({"eventType": "Other"}, self.definition)
        assert not result.matched
        assert result.rule is None
        assert self.metrics.no_match.labels(entity_type="HOST").value == 1

    def test_without_metrics(self):
        assert RuleMatcher().match({"eventType": "Other"}, self.definition).rule is None
