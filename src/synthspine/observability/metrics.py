"""Prometheus-style metrics for synthesis signals.

Synthesis failures and ambiguous rule matches point at rule-authoring
defects, so they are exported as counters rather than buried in logs.
``synthspine process --metrics`` prints the registry in the Prometheus text
exposition format after a replay.

Metric types:
- Counter: monotonically increasing, optionally split by labels
- Gauge: a single value that can go up or down
- Histogram: distribution of durations, with a timing context manager

Example:
    >>> from synthspine.observability.metrics import MetricsRegistry, SynthesisMetrics
    >>>
    >>> metrics = SynthesisMetrics(MetricsRegistry())
    >>> metrics.no_match.labels(entity_type="KAFKA_BROKER").inc()
    >>> metrics.no_match.labels(entity_type="KAFKA_BROKER").value
    1.0
"""

import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

LabelKey = tuple[tuple[str, str], ...]


def _render_labels(key: LabelKey) -> str:
    if not key:
        return ""
    return "{" + ",".join(f'{name}="{value}"' for name, value in key) + "}"


class _Metric:
    kind = "untyped"

    def __init__(self, name: str, description: str = ""):
        self.name = name
        self.description = description
        self._lock = threading.Lock()

    def header(self) -> list[str]:
        lines = [f"# HELP {self.name} {self.description}"] if self.description else []
        lines.append(f"# TYPE {self.name} {self.kind}")
        return lines

    def samples(self) -> list[str]:
        raise NotImplementedError


class Counter(_Metric):
    """A monotonically increasing counter, one series per label set."""

    kind = "counter"

    def __init__(self, name: str, description: str = "", labels: list[str] | None = None):
        super().__init__(name, description)
        self.label_names = tuple(labels or ())
        self._values: dict[LabelKey, float] = {}

    def labels(self, **labels: str) -> "CounterSeries":
        """Series for ``labels``; the names must be exactly the declared ones."""
        if set(labels) != set(self.label_names):
            raise ValueError(f"{self.name} takes labels {list(self.label_names)}, got {sorted(labels)}")
        return CounterSeries(self, tuple(sorted((k, str(v)) for k, v in labels.items())))

    def inc(self, value: float = 1.0) -> None:
        self.labels().inc(value)

    def _inc(self, key: LabelKey, value: float) -> None:
        with self._lock:
            self._values[key] = self._values.get(key, 0.0) + value

    def _get(self, key: LabelKey) -> float:
        with self._lock:
            return self._values.get(key, 0.0)

    def samples(self) -> list[str]:
        with self._lock:
            return [f"{self.name}{_render_labels(key)} {value}" for key, value in sorted(self._values.items())]


class CounterSeries:
    """One label set of a :class:`Counter`."""

    def __init__(self, counter: Counter, key: LabelKey):
        self._counter = counter
        self._key = key

    def inc(self, value: float = 1.0) -> None:
        if value < 0:
            raise ValueError("Counter can only increase")
        self._counter._inc(self._key, value)

    @property
    def value(self) -> float:
        return self._counter._get(self._key)


class Gauge(_Metric):
    """A single value that can go up or down."""

    kind = "gauge"

    def __init__(self, name: str, description: str = ""):
        super().__init__(name, description)
        self._value: float = 0.0

    def set(self, value: float) -> None:
        with self._lock:
            self._value = value

    def inc(self, value: float = 1.0) -> None:
        with self._lock:
            self._value += value

    @property
    def value(self) -> float:
        with self._lock:
            return self._value

    def samples(self) -> list[str]:
        return [f"{self.name} {self.value}"]


class Histogram(_Metric):
    """Cumulative-bucket distribution of observed values."""

    kind = "histogram"

    DEFAULT_BUCKETS = (0.0001, 0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, float("inf"))

    def __init__(self, name: str, description: str = "", buckets: tuple[float, ...] | None = None):
        super().__init__(name, description)
        self._buckets = buckets or self.DEFAULT_BUCKETS
        self._counts = dict.fromkeys(self._buckets, 0)
        self._sum = 0.0
        self._count = 0

    def observe(self, value: float) -> None:
        with self._lock:
            self._sum += value
            self._count += 1
            for bound in self._buckets:
                if value <= bound:
                    self._counts[bound] += 1

    @contextmanager
    def time(self) -> Iterator[None]:
        """Observe the wall time spent inside the block."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self.observe(time.perf_counter() - start)

    @property
    def data(self) -> dict[str, Any]:
        with self._lock:
            return {"buckets": dict(self._counts), "sum": self._sum, "count": self._count}

    def samples(self) -> list[str]:
        data = self.data
        lines = []
        for bound, count in data["buckets"].items():
            le = "+Inf" if bound == float("inf") else bound
            lines.append(f'{self.name}_bucket{{le="{le}"}} {count}')
        lines.append(f"{self.name}_sum {data['sum']}")
        lines.append(f"{self.name}_count {data['count']}")
        return lines


class MetricsRegistry:
    """Get-or-create registry of named metrics."""

    def __init__(self):
        self._metrics: dict[str, _Metric] = {}
        self._lock = threading.Lock()

    def _get_or_create(self, name: str, kind: type[_Metric], factory: Any) -> Any:
        with self._lock:
            metric = self._metrics.get(name)
            if metric is None:
                metric = self._metrics[name] = factory()
            elif not isinstance(metric, kind):
                raise ValueError(f"Metric {name!r} is already registered as a {metric.kind}")
            return metric

    def counter(self, name: str, description: str = "", labels: list[str] | None = None) -> Counter:
        return self._get_or_create(name, Counter, lambda: Counter(name, description, labels))

    def gauge(self, name: str, description: str = "") -> Gauge:
        return self._get_or_create(name, Gauge, lambda: Gauge(name, description))

    def histogram(self, name: str, description: str = "", buckets: tuple[float, ...] | None = None) -> Histogram:
        return self._get_or_create(name, Histogram, lambda: Histogram(name, description, buckets))

    def names(self) -> list[str]:
        with self._lock:
            return sorted(self._metrics)

    def export_prometheus(self) -> str:
        """Every metric in the Prometheus text exposition format, sorted by name."""
        with self._lock:
            metrics = sorted(self._metrics.values(), key=lambda m: m.name)
        lines: list[str] = []
        for metric in metrics:
            lines.extend(metric.header())
            lines.extend(metric.samples())
        return "\n".join(lines) + "\n" if lines else ""


# Process-wide registry for engines that do not bring their own
_default_registry = MetricsRegistry()


class SynthesisMetrics:
    """Pre-defined metrics for the synthesis pipeline.

    Pass a fresh ``MetricsRegistry`` per engine in tests; production code
    shares the process-wide registry.
    """

    def __init__(self, registry: MetricsRegistry | None = None):
        reg = registry or _default_registry
        self.registry = reg

        self.events = reg.counter("synth_events_total", "Events processed")
        self.no_match = reg.counter(
            "synth_no_match_total", "Events matching no rule of an entity type", ["entity_type"]
        )
        self.ambiguous = reg.counter(
            "synth_ambiguous_match_total",
            "Events matching more than one rule of an entity type",
            ["entity_type"],
        )
        self.identifier_failures = reg.counter(
            "synth_identifier_failures_total",
            "Matched events whose identifier could not be built",
            ["entity_type"],
        )
        self.duplicates = reg.counter(
            "synth_duplicates_dropped_total", "Mutations dropped as duplicates", ["window"]
        )
        self.entities_created = reg.counter(
            "synth_entities_created_total", "Entities created", ["entity_type"]
        )
        self.entities_updated = reg.counter(
            "synth_entities_updated_total", "Entity merges applied", ["entity_type"]
        )
        self.guid_collisions = reg.counter(
            "synth_guid_collisions_total", "Records rejected for GUID collision", ["entity_type"]
        )
        self.relationships_proposed = reg.counter(
            "synth_relationships_proposed_total", "Relationships proposed", ["relationship_type"]
        )
        self.relationships_validated = reg.counter(
            "synth_relationships_validated_total", "Relationships validated", ["relationship_type"]
        )
        self.relationships_unresolved = reg.counter(
            "synth_relationships_unresolved_total",
            "Relationship rules whose endpoint did not resolve",
            ["relationship_type"],
        )
        self.self_relationships = reg.counter(
            "synth_self_relationships_rejected_total",
            "Relationships rejected because source equals target",
            ["relationship_type"],
        )
        self.lookup_failures = reg.counter(
            "synth_lookup_failures_total", "Failed entity lookups", ["reason"]
        )
        self.swept = reg.counter(
            "synth_sweep_removed_total", "Items removed by the expiration sweeper", ["kind"]
        )
        self.merge_duration = reg.histogram(
            "synth_merge_duration_seconds", "Entity merge duration in seconds"
        )
        self.active_entities = reg.gauge("synth_active_entities", "Entities currently stored")

    def export_prometheus(self) -> str:
        return self.registry.export_prometheus()
