"""Tests for synthspine.engine.derived."""

from synthspine.core.models import Entity, TagValue
from synthspine.engine.derived import compute_derived, evaluate_derived, to_entity_record


class TestDerivedValues:
    """Tests for derived value evaluation."""

    def test_first_case_wins(self, cluster_definition):
        (health,) = cluster_definition.derived_values
        assert evaluate_derived(health, {"offlinePartitionsCount": 2}) == "Critical"
        assert evaluate_derived(health, {"offlinePartitionsCount": 0}) == "Healthy"

    def test_missing_tag_falls_to_default(self, cluster_definition):
        assert compute_derived(cluster_definition, {}) == {"health": "Healthy"}

    def test_no_definition(self):
        assert compute_derived(None, {"a": 1}) == {}


class TestToEntityRecord:
    """Tests for to_entity_record."""

    def _entity(self) -> Entity:
        return Entity(
            guid="G",
            account_id="1",
            domain="INFRA",
            type="CLUSTER",
            identifier="prod",
            name="prod",
            tags={
                "clusterName": TagValue("prod", 0),
                "offlinePartitionsCount": TagValue(3, 0, expires_at=300_000),
            },
            expires_at=10_000_000,
        )

    def test_record(self, cluster_definition):
        record = to_entity_record(self._entity(), cluster_definition, now=0)
        assert record.tags == {"clusterName": "prod", "offlinePartitionsCount": 3}
        assert record.derived == {"health": "Critical"}
        assert record.golden_tags == ("clusterName",)
        assert record.expires_at == 10_000_000

    def test_expired_tags_leave_derived_values(self, cluster_definition):
        """Derived values are recomputed from the tags still live at ``now``."""
        record = to_entity_record(self._entity(), cluster_definition, now=300_000)
        assert "offlinePartitionsCount" not in record.tags
        assert record.derived == {"health": "Healthy"}

    def test_derived_not_stored(self, cluster_definition):
        entity = self._entity()
        to_entity_record(entity, cluster_definition, now=0)
        assert "health" not in entity.tags
