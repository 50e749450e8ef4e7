"""
Tests for aipex observability module.
"""

import json
import logging

import pytest

from aipex.observability import ExecutionLogger, JSONLogger, configure_logging

# =============================================================================
# JSONLogger Tests
# =============================================================================


class TestJSONLogger:
    """Tests for JSONLogger."""

    def test_logs_valid_json(self, caplog):
        caplog.set_level(logging.INFO, logger="test.json")
        logger = JSONLogger(name="test.json")

        logger.info("Turn started", turn=1)

        record = json.loads(caplog.records[-1].getMessage())
        assert record["message"] == "Turn started"
        assert record["level"] == "info"
        assert record["turn"] == 1
        assert "timestamp" in record

    def test_with_context_adds_fields(self, caplog):
        caplog.set_level(logging.INFO, logger="test.json")
        logger = JSONLogger(name="test.json").with_context(session_id="s1")

        logger.warning("Careful", tool="click")

        record = json.loads(caplog.records[-1].getMessage())
        assert record["session_id"] == "s1"
        assert record["tool"] == "click"
        assert caplog.records[-1].levelno == logging.WARNING

    def test_disabled_level_is_skipped(self, caplog):
        caplog.set_level(logging.WARNING, logger="test.json")
        logger = JSONLogger(name="test.json")

        logger.debug("noise")

        assert caplog.records == []

    def test_non_json_values_are_stringified(self, caplog):
        caplog.set_level(logging.INFO, logger="test.json")

        JSONLogger(name="test.json").info("Error", error=ValueError("bad"))

        record = json.loads(caplog.records[-1].getMessage())
        assert record["error"] == "bad"


# =============================================================================
# ExecutionLogger Tests
# =============================================================================


class TestExecutionLogger:
    """Tests for ExecutionLogger."""

    def test_records_carry_session_id(self, caplog):
        caplog.set_level(logging.DEBUG, logger="aipex.execution")
        log = ExecutionLogger(session_id="abc-123")

        log.execution_started(input_preview="x" * 200, max_turns=5)
        log.tool_call_completed(tool_name="click", call_id="c1", duration_ms=12.345)

        started = json.loads(caplog.records[0].getMessage())
        tool = json.loads(caplog.records[1].getMessage())
        assert started["session_id"] == "abc-123"
        assert len(started["input_preview"]) == 80
        assert tool["duration_ms"] == 12.35

    def test_failure_is_logged_as_error(self, caplog):
        caplog.set_level(logging.DEBUG, logger="aipex.execution")

        ExecutionLogger(session_id="s1").execution_failed(
            error="boom", error_code="LLM_API_ERROR", recoverable=False, turns=2
        )

        assert caplog.records[-1].levelno == logging.ERROR
        record = json.loads(caplog.records[-1].getMessage())
        assert record["error_code"] == "LLM_API_ERROR"

    def test_stop_signal_details(self, caplog):
        caplog.set_level(logging.DEBUG, logger="aipex.execution")

        ExecutionLogger(session_id="s1").stop_signal("loop_detected", 4, tool_name="click")

        record = json.loads(caplog.records[-1].getMessage())
        assert record["signal"] == "loop_detected"
        assert record["tool_name"] == "click"

    def test_custom_inner_logger(self):
        calls = []

        class Recorder:
            def debug(self, message, **context):
                calls.append(("debug", message, context))

            info = warning = error = debug

        log = ExecutionLogger(session_id="s1", inner=Recorder())
        log.turn_started(turn_id="t1", number=1)

        assert calls == [("debug", "Turn started", {"turn_id": "t1", "number": 1})]


# =============================================================================
# Setup Tests
# =============================================================================


@pytest.fixture
def restore_aipex_logger():
    root = logging.getLogger("aipex")
    handlers = list(root.handlers)
    level = root.level
    yield root
    root.handlers = handlers
    root.setLevel(level)


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_installs_single_handler(self, restore_aipex_logger):
        configure_logging("DEBUG")
        configure_logging("WARNING", json_format=True)

        installed = [h for h in restore_aipex_logger.handlers if getattr(h, "_aipex_handler", False)]
        assert len(installed) == 1
        assert restore_aipex_logger.level == logging.WARNING

    def test_json_formatter_wraps_plain_messages(self, restore_aipex_logger):
        configure_logging("INFO", json_format=True)
        handler = next(h for h in restore_aipex_logger.handlers if getattr(h, "_aipex_handler", False))
        record = logging.LogRecord("aipex.test", logging.INFO, __file__, 1, "plain %s", ("text",), None)

        data = json.loads(handler.format(record))

        assert data["message"] == "plain text"
        assert data["logger"] == "aipex.test"
        assert data["level"] == "info"
