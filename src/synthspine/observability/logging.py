"""
Structured, context-aware logging.

This module provides:
- Structured logging with structlog
- Synthesis context propagation via contextvars
- A timing helper for periodic work (sweeps, validation passes)
- Environment-based configuration

Configuration is read from environment variables:
- SYNTH_LOG_LEVEL: DEBUG | INFO | WARNING | ERROR (default: INFO)
- SYNTH_LOG_FORMAT: json | console (default: console)

Usage:
    from synthspine.observability.logging import configure_logging, get_logger, bind_context

    configure_logging()
    log = get_logger(__name__)

    bind_context(entity_type="KAFKA_CLUSTER", guid=guid)
    log.info("synthesis.entity_created")

Design choice: contextvars
- Thread-safe and asyncio-compatible
- Shard workers each carry their own context without passing it around
- Clean integration with structlog processors
"""

from __future__ import annotations

import logging
import os
import sys
import time
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar, Token
from dataclasses import asdict, dataclass
from typing import Any, Literal

import structlog
from structlog.types import Processor

# Track if logging has been configured
_configured = False


@dataclass
class LogContext:
    """
    Synthesis context attached to all log entries.

    epoch: Rule snapshot epoch in use
    shard: Worker shard processing the event
    event_type / entity_type / rule: What is being synthesized
    guid: Entity the log line concerns
    """

    epoch: int | None = None
    shard: int | None = None
    event_type: str | None = None
    entity_type: str | None = None
    rule: str | None = None
    guid: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict."""
        return {k: v for k, v in asdict(self).items() if v is not None}

    def merge(self, **kwargs: Any) -> LogContext:
        """Create new context with merged values."""
        current = asdict(self)
        current.update({k: v for k, v in kwargs.items() if k in current})
        return LogContext(**current)


_log_context: ContextVar[LogContext] = ContextVar("log_context")  # noqa: B039


def get_context() -> LogContext:
    """Get the current log context."""
    return _log_context.get(LogContext())


def set_context(**kwargs: Any) -> LogContext:
    """Replace the current log context."""
    ctx = LogContext().merge(**kwargs)
    _log_context.set(ctx)
    return ctx


def bind_context(**kwargs: Any) -> LogContext:
    """Merge values into the current context."""
    updated = get_context().merge(**kwargs)
    _log_context.set(updated)
    return updated


def clear_context() -> None:
    """Clear the current context (reset to empty)."""
    _log_context.set(LogContext())


class _ContextToken:
    """Token for restoring context after a scoped operation."""

    def __init__(self, token: Token[LogContext]):
        self._token = token

    def restore(self) -> None:
        _log_context.reset(self._token)


def push_context(**kwargs: Any) -> _ContextToken:
    """
    Push new context values, returning a token to restore later.

    Usage:
        token = push_context(entity_type="KAFKA_BROKER")
        try:
            synthesize()
        finally:
            token.restore()
    """
    updated = get_context().merge(**kwargs)
    return _ContextToken(_log_context.set(updated))


@contextmanager
def log_scope(**kwargs: Any) -> Iterator[LogContext]:
    """Context manager form of ``push_context``."""
    token = push_context(**kwargs)
    try:
        yield get_context()
    finally:
        token.restore()


def add_context_processor(
    logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Structlog processor that adds synthesis context to every log entry."""
    for key, value in get_context().to_dict().items():
        if key not in event_dict:
            event_dict[key] = value
    return event_dict


def configure_logging(
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] | None = None,
    format: Literal["json", "console"] | None = None,
    force: bool = False,
) -> None:
    """
    Configure structured logging for the application.

    Should be called once at startup (CLI entry, worker startup).
    Subsequent calls are no-ops unless force=True.

    Args:
        level: Log level (overrides SYNTH_LOG_LEVEL env var)
        format: Output format (overrides SYNTH_LOG_FORMAT env var)
        force: Reconfigure even if already configured
    """
    global _configured

    if _configured and not force:
        return

    log_level = (level or os.environ.get("SYNTH_LOG_LEVEL", "INFO")).upper()
    log_format = (format or os.environ.get("SYNTH_LOG_FORMAT", "console")).lower()

    processors: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        add_context_processor,
        structlog.processors.format_exc_info,
        structlog.processors.StackInfoRenderer(),
    ]

    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=True,
                exception_formatter=structlog.dev.plain_traceback,
            )
        )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, log_level, logging.INFO),
        force=True,
    )
    logging.getLogger("synthspine").setLevel(getattr(logging, log_level, logging.INFO))

    _configured = True


def is_configured() -> bool:
    """Check if logging has been configured."""
    return _configured


def get_logger(name: str | None = None) -> Any:
    """
    Get a structured logger.

    The logger automatically includes the synthesis context in all entries.
    """
    return structlog.get_logger(name)


@contextmanager
def log_step(event: str, level: str = "info", **fields: Any) -> Iterator[dict[str, Any]]:
    """
    Log a step's completion with its duration.

    The yielded dict collects metrics to include in the ``.end`` line.

    Usage:
        with log_step("sweep", now=now) as metrics:
            metrics["entities_removed"] = 3
    """
    log = get_logger("synthspine.timing")
    metrics: dict[str, Any] = dict(fields)
    started = time.perf_counter()
    try:
        yield metrics
    except Exception:
        metrics["duration_ms"] = round((time.perf_counter() - started) * 1000, 2)
        log.error(f"{event}.error", exc_info=True, **metrics)
        raise
    metrics["duration_ms"] = round((time.perf_counter() - started) * 1000, 2)
    getattr(log, level)(f"{event}.end", **metrics)
