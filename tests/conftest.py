"""
Shared pytest fixtures and configuration for synthspine tests.

This module provides:
- Sample rule documents (Kafka cluster and broker, with a CONTAINS edge)
- A settable clock and an isolated settings object
- Engine and event factories
- Context and settings cleanup between tests

Usage:
    Fixtures are auto-discovered by pytest. Request them as test arguments:

    def test_something(make_engine, make_event):
        engine = make_engine()
        engine.process(make_event("ClusterSample", clusterName="prod"))
"""

from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import pytest

from synthspine.config.settings import SynthesisSettings, clear_settings_cache
from synthspine.core.models import Event
from synthspine.core.timestamps import ManualClock
from synthspine.engine.engine import SynthesisEngine
from synthspine.engine.sink import CollectingSink
from synthspine.observability.logging import clear_context
from synthspine.rules.snapshot import RuleSnapshot, load_rules_text

# 2023-11-14T22:13:20Z
T0 = 1_700_000_000_000

CLUSTER_YAML = """
domain: INFRA
type: CLUSTER
goldenTags: [clusterName]
derivedValues:
  health:
    cases:
      - when: [{attribute: offlinePartitionsCount, gt: 0}]
        value: Critical
    default: Healthy
rules:
  - identifier: clusterName
    name: clusterName
    conditions:
      - {attribute: eventType, value: ClusterSample}
    tags:
      clusterName: {}
      provider: {value: kafka}
      activeControllerCount: {ttl: PT5M}
      offlinePartitionsCount: {ttl: P5M}
configuration:
  alertable: true
  entityExpirationTime: EIGHT_DAYS
  isContainer: true
"""

BROKER_YAML = """
domain: INFRA
type: BROKER
goldenTags: [brokerId]
rules:
  - identifier:
      template: [{attribute: clusterName}, ":", {attribute: brokerId}]
    name: [hostname, brokerHost]
    conditions:
      - {attribute: eventType, value: BrokerSample}
    tags:
      brokerId: {}
      hostname: {fallbackAttribute: [brokerHost]}
      underReplicatedPartitions: {ttl: PT5M}
configuration:
  entityExpirationTime: FOUR_HOURS
relationships:
  - name: cluster-contains-broker
    relationshipType: CONTAINS
    expires: PT15M
    conditions:
      - {attribute: eventType, value: BrokerSample}
    source:
      buildGuid: {domain: INFRA, type: CLUSTER, identifier: clusterName}
    target:
      buildGuid:
        domain: INFRA
        type: BROKER
        identifier:
          template: [{attribute: clusterName}, ":", {attribute: brokerId}]
"""

RULES_DIR = Path(__file__).parent.parent / "rules"


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their location."""
    for item in items:
        test_path = Path(item.fspath).relative_to(Path(__file__).parent)

        if test_path.parts[0] == "cli" or "integration" in item.name:
            item.add_marker(pytest.mark.integration)

        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration", "slow"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Cleanup Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def clean_state() -> Generator[None, None, None]:
    """Clear the log context and cached settings around each test."""
    clear_context()
    clear_settings_cache()
    yield
    clear_context()
    clear_settings_cache()


# =============================================================================
# Rules
# =============================================================================


@pytest.fixture
def rules_snapshot() -> RuleSnapshot:
    """Cluster and broker definitions plus the CONTAINS relationship rule."""
    return load_rules_text({"cluster.yaml": CLUSTER_YAML, "broker.yaml": BROKER_YAML})


@pytest.fixture
def cluster_definition(rules_snapshot: RuleSnapshot):
    return rules_snapshot.definition("CLUSTER")


@pytest.fixture
def broker_definition(rules_snapshot: RuleSnapshot):
    return rules_snapshot.definition("BROKER")


@pytest.fixture
def rules_dir() -> Path:
    """The sample rule directory shipped with the repository."""
    return RULES_DIR


# =============================================================================
# Engine
# =============================================================================


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(T0)


@pytest.fixture
def settings() -> SynthesisSettings:
    """Defaults, without reading the environment's .env file."""
    return SynthesisSettings(_env_file=None, lookup_timeout_seconds=1.0)


@pytest.fixture
def sink() -> CollectingSink:
    return CollectingSink()


@pytest.fixture
def make_engine(
    rules_snapshot: RuleSnapshot,
    clock: ManualClock,
    settings: SynthesisSettings,
    sink: CollectingSink,
) -> Callable[..., SynthesisEngine]:
    """Factory for in-memory engines sharing the test clock and sink."""

    def _make(snapshot: RuleSnapshot | None = None, **kwargs: Any) -> SynthesisEngine:
        kwargs.setdefault("sink", sink)
        kwargs.setdefault("settings", settings)
        kwargs.setdefault("clock", clock)
        kwargs.setdefault("lookup_retry_delay", 0.0)
        return SynthesisEngine.in_memory(snapshot or rules_snapshot, **kwargs)

    return _make


@pytest.fixture
def engine(make_engine: Callable[..., SynthesisEngine]) -> SynthesisEngine:
    return make_engine()


@pytest.fixture
def make_event() -> Callable[..., Event]:
    """Factory: ``make_event(event_type, timestamp=T0, account_id="1", **attributes)``."""

    def _make(event_type: str, timestamp: int = T0, account_id: str = "1", **attributes: Any) -> Event:
        return Event(event_type=event_type, account_id=account_id, timestamp=timestamp, attributes=attributes)

    return _make
