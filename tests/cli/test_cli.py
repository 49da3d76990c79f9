"""
Integration tests for the synthspine CLI.

Tests cover:
- ``--version`` and ``guid``
- ``rules validate`` in text and JSON form
- ``process`` replays, sweeps and input errors
"""

import json

import pytest
from typer.testing import CliRunner

from synthspine import __version__
from synthspine.cli.app import app
from synthspine.core.guid import generate_guid
from synthspine.observability.logging import configure_logging

T0 = 1_700_000_000_000

EVENTS = [
    {"eventType": "SystemSample", "accountId": "1", "timestamp": T0, "hostname": "b1", "cpuPercent": 12.5},
    {
        "eventType": "ClusterSample",
        "accountId": "1",
        "timestamp": T0 + 1000,
        "attributes": {"clusterName": "prod", "activeControllerCount": 1, "offlinePartitionsCount": 0},
    },
    {
        "eventType": "BrokerSample",
        "accountId": "1",
        "timestamp": T0 + 2000,
        "clusterName": "prod",
        "brokerId": 1,
        "hostname": "b1",
    },
    {"eventType": "BrokerSample", "accountId": "1", "timestamp": T0 + 3000, "brokerId": 2, "hostname": "b1"},
]

runner = CliRunner()


@pytest.fixture(autouse=True)
def restore_logging():
    """Point logging back at the real stderr once the runner has closed its streams."""
    yield
    configure_logging(level="WARNING", format="console", force=True)


def _flat(output: str) -> str:
    """Undo console line wrapping."""
    return " ".join(output.split())


@pytest.fixture
def events_file(tmp_path):
    path = tmp_path / "events.jsonl"
    lines = ["# kafka replay", ""] + [json.dumps(e) for e in EVENTS]
    path.write_text("\n".join(lines) + "\n")
    return path


class TestRoot:
    """Tests for the root command."""

    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert result.stdout.strip() == f"synthspine {__version__}"

    def test_guid(self):
        result = runner.invoke(app, ["guid", "1", "INFRA", "CLUSTER", "prod"])
        assert result.exit_code == 0
        assert result.stdout.strip() == generate_guid("1", "INFRA", "CLUSTER", "prod")

    def test_guid_no_encode(self):
        result = runner.invoke(app, ["guid", "1", "INFRA", "HOST", "h1", "--no-encode"])
        assert result.stdout.strip() == generate_guid("1", "INFRA", "HOST", "h1", encode_identifier=False)


class TestRulesValidate:
    """Tests for ``rules validate``."""

    def test_text(self, rules_dir):
        result = runner.invoke(app, ["--log-level", "ERROR", "rules", "validate", str(rules_dir)])
        assert result.exit_code == 0
        assert "OK snapshot version" in _flat(result.stdout)

    def test_json(self, rules_dir):
        result = runner.invoke(app, ["--log-level", "ERROR", "rules", "validate", str(rules_dir), "--json"])
        assert result.exit_code == 0

        data = json.loads(result.stdout)
        assert len(data["version"]) == 16
        assert [t["type"] for t in data["entityTypes"]] == ["INFRA/BROKER", "INFRA/CLUSTER", "INFRA/HOST"]
        rels = {r["name"]: r for r in data["relationshipRules"]}
        assert rels["host-runs-broker"]["source"] == "lookup INFRA/HOST"
        assert rels["cluster-contains-broker"]["target"] == "build INFRA/BROKER"

    def test_invalid_rules(self, tmp_path):
        (tmp_path / "bad.yaml").write_text("domain: INFRA\n")
        result = runner.invoke(app, ["--log-level", "ERROR", "rules", "validate", str(tmp_path)])
        assert result.exit_code == 1
        assert "Error" in result.output

    def test_missing_directory(self, tmp_path):
        result = runner.invoke(app, ["--log-level", "ERROR", "rules", "validate", str(tmp_path / "nope")])
        assert result.exit_code == 1
        assert "Rules directory not found" in _flat(result.output)


class TestProcess:
    """Tests for ``process``."""

    def _run(self, *args):
        return runner.invoke(app, ["--log-level", "ERROR", "process", *args])

    def test_json_graph(self, rules_dir, events_file):
        result = self._run(str(rules_dir), str(events_file), "--json")
        assert result.exit_code == 0, result.output

        data = json.loads(result.stdout)
        summary = data["summary"]
        assert summary["events"] == 4
        assert summary["entities"] == 3
        assert summary["relationships"] == 2
        assert summary["skipped"]["identifier_unresolved"] == 1
        assert summary["rejected"] == {"unresolved": 2}
        assert "sweep" not in summary

        by_type = {e["type"]: e for e in data["entities"]}
        assert by_type["CLUSTER"]["derived"] == {"health": "Healthy"}
        assert by_type["BROKER"]["tags"]["underReplicatedPartitions"] == 0
        assert by_type["HOST"]["guid"] == generate_guid("1", "INFRA", "HOST", "b1", encode_identifier=False)
        assert {r["relationshipType"]: r["state"] for r in data["relationships"]} == {
            "CONTAINS": "VALIDATED",
            "RUNS": "VALIDATED",
        }

    def test_sweep_at(self, rules_dir, events_file):
        result = self._run(str(rules_dir), str(events_file), "--json", "--sweep-at", str(T0 + 20 * 60_000))
        assert result.exit_code == 0, result.output

        data = json.loads(result.stdout)
        sweep = data["summary"]["sweep"]
        assert sweep["relationships_expired"] == 2
        assert sweep["entities_removed"] == 0
        assert data["relationships"] == []
        by_type = {e["type"]: e for e in data["entities"]}
        assert "cpuPercent" not in by_type["HOST"]["tags"]
        assert "activeControllerCount" not in by_type["CLUSTER"]["tags"]

    def test_table_output(self, rules_dir, events_file):
        result = self._run(str(rules_dir), str(events_file))
        assert result.exit_code == 0, result.output
        assert "Entities" in result.stdout
        assert "Summary" in result.stdout

    def test_metrics_json(self, rules_dir, events_file):
        result = self._run(str(rules_dir), str(events_file), "--json", "--metrics")
        assert result.exit_code == 0, result.output

        lines = json.loads(result.stdout)["metrics"].splitlines()
        assert "synth_events_total 4.0" in lines
        assert 'synth_identifier_failures_total{entity_type="BROKER"} 1.0' in lines
        assert "# TYPE synth_merge_duration_seconds histogram" in lines

    def test_metrics_after_table(self, rules_dir, events_file):
        result = self._run(str(rules_dir), str(events_file), "--metrics")
        assert result.exit_code == 0, result.output
        assert "# TYPE synth_events_total counter" in result.stdout
        assert "synth_entities_created_total" in result.stdout

    def test_no_metrics_by_default(self, rules_dir, events_file):
        result = self._run(str(rules_dir), str(events_file), "--json")
        assert "metrics" not in json.loads(result.stdout)

    def test_bad_line(self, rules_dir, tmp_path):
        path = tmp_path / "events.jsonl"
        path.write_text(json.dumps(EVENTS[0]) + "\n{not json\n")
        result = self._run(str(rules_dir), str(path))
        assert result.exit_code == 1
        assert "events.jsonl:2" in _flat(result.output)

    def test_missing_envelope_field(self, rules_dir, tmp_path):
        path = tmp_path / "events.jsonl"
        path.write_text(json.dumps({"eventType": "SystemSample", "hostname": "h"}) + "\n")
        result = self._run(str(rules_dir), str(path))
        assert result.exit_code == 1
        assert "accountId" in _flat(result.output)

    def test_missing_rules(self, tmp_path, events_file):
        result = self._run(str(tmp_path / "nope"), str(events_file))
        assert result.exit_code == 1
