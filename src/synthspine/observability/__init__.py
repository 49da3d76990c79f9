"""Observability package: structured logging and Prometheus-style metrics.

Key components:
- logging: structlog configuration and synthesis context propagation
- metrics: counters/gauges/histograms and the predefined synthesis signals
"""

from .logging import (
    LogContext,
    bind_context,
    clear_context,
    configure_logging,
    get_context,
    get_logger,
    log_scope,
    log_step,
    push_context,
    set_context,
)
from .metrics import (
    Counter,
    Gauge,
    Histogram,
    MetricsRegistry,
    SynthesisMetrics,
)

__all__ = [
    # Logging
    "configure_logging",
    "get_logger",
    "LogContext",
    "get_context",
    "set_context",
    "bind_context",
    "clear_context",
    "push_context",
    "log_scope",
    "log_step",
    # Metrics
    "MetricsRegistry",
    "Counter",
    "Gauge",
    "Histogram",
    "SynthesisMetrics",
]
