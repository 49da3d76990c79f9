"""
Tests for synthspine.observability.logging.

Tests cover:
- Context push, restore and scoping
- The context processor
- log_step timing and error logging
- JSON output
"""

import json

import pytest

from synthspine.observability.logging import (
    LogContext,
    add_context_processor,
    bind_context,
    configure_logging,
    get_context,
    get_logger,
    is_configured,
    log_scope,
    log_step,
    push_context,
    set_context,
)


@pytest.fixture
def json_logging():
    configure_logging(level="INFO", format="json", force=True)
    yield
    configure_logging(level="WARNING", format="console", force=True)


class TestLogContext:
    """Tests for context propagation."""

    def test_push_and_restore(self):
        set_context(epoch=1)
        token = push_context(entity_type="BROKER", guid="g1")
        assert get_context().to_dict() == {"epoch": 1, "entity_type": "BROKER", "guid": "g1"}

        token.restore()
        assert get_context().to_dict() == {"epoch": 1}

    def test_unknown_keys_ignored(self):
        assert bind_context(colour="blue", shard=2).to_dict() == {"shard": 2}

    def test_log_scope(self):
        with log_scope(rule="BROKER[0]") as ctx:
            assert ctx.rule == "BROKER[0]"
        assert get_context() == LogContext()

    def test_processor_does_not_override(self):
        set_context(guid="from-context", shard=1)
        event_dict = add_context_processor(None, "info", {"event": "x", "guid": "explicit"})
        assert event_dict == {"event": "x", "guid": "explicit", "shard": 1}


class TestLogStep:
    """Tests for log_step."""

    def test_records_duration(self):
        with log_step("sweep", now=5) as step:
            step["entities_removed"] = 2
        assert step["now"] == 5
        assert step["duration_ms"] >= 0

    def test_reraises(self):
        with pytest.raises(RuntimeError):
            with log_step("sweep") as step:
                raise RuntimeError("boom")
        assert "duration_ms" in step


class TestJsonOutput:
    """Tests for configured JSON output."""

    def test_context_in_json_lines(self, json_logging, capsys):
        log = get_logger("synthspine.tests.json")
        with log_scope(epoch=3, entity_type="BROKER"):
            log.info("synthesis.entity_created", guid="g1")

        line = capsys.readouterr().err.strip().splitlines()[-1]
        record = json.loads(line)
        assert record["event"] == "synthesis.entity_created"
        assert record["level"] == "info"
        assert record["epoch"] == 3
        assert record["entity_type"] == "BROKER"
        assert record["guid"] == "g1"
        assert is_configured()

    def test_level_filter(self, json_logging, capsys):
        get_logger("synthspine.tests.level").debug("hidden")
        assert "hidden" not in capsys.readouterr().err
