"""Tests for structured logging configuration."""

from __future__ import annotations

import json
import logging
import sys

from adaptcore.logging_config import JSONFormatter, get_logger, make_explainability_id, setup_logging, trace_info


def test_json_formatter_outputs_valid_json():
    formatter = JSONFormatter()
    record = logging.LogRecord(
        name="test", level=logging.INFO, pathname="test.py",
        lineno=1, msg="hello %s", args=("world",), exc_info=None
    )
    parsed = json.loads(formatter.format(record))
    assert parsed["message"] == "hello world"
    assert parsed["level"] == "INFO"
    assert parsed["logger"] == "test"
    assert "timestamp" in parsed
    assert "context" not in parsed


def test_json_formatter_includes_exception():
    formatter = JSONFormatter()
    try:
        raise ValueError("test error")
    except ValueError:
        exc_info = sys.exc_info()
    record = logging.LogRecord(
        name="test", level=logging.ERROR, pathname="test.py",
        lineno=1, msg="fail", args=(), exc_info=exc_info
    )
    parsed = json.loads(formatter.format(record))
    assert parsed["exception"]["type"] == "ValueError"
    assert parsed["exception"]["message"] == "test error"


def test_json_formatter_collects_context():
    formatter = JSONFormatter()
    record = logging.LogRecord(
        name="test", level=logging.INFO, pathname="test.py",
        lineno=1, msg="ctx", args=(), exc_info=None
    )
    record.ctx_athlete_id = "ath-1"
    record.ctx_delta_pct = -20.0
    parsed = json.loads(formatter.format(record))
    assert parsed["context"] == {"athlete_id": "ath-1", "delta_pct": -20.0}


def test_get_logger_returns_named_logger():
    log = get_logger("my.module")
    assert log.name == "my.module"
    assert isinstance(log, logging.Logger)


def test_setup_logging_idempotent():
    root = logging.getLogger()
    initial_count = len(root.handlers)
    setup_logging("INFO")
    setup_logging("INFO")
    assert len(root.handlers) <= initial_count + 1


def test_explainability_ids_are_unique():
    a, b = make_explainability_id(), make_explainability_id()
    assert a.startswith("exp_")
    assert a != b


def test_trace_info_carries_event_and_id(caplog):
    with caplog.at_level(logging.INFO, logger="adaptcore.trace"):
        trace_info("exp_1", "volume_guard_clamp", before_min=300, after_min=240)
    record = caplog.records[-1]
    assert record.getMessage() == "volume_guard_clamp"
    assert record.ctx_event == "volume_guard_clamp"
    assert record.ctx_explainability_id == "exp_1"
    assert record.ctx_before_min == 300


def test_trace_records_lift_event_to_top_level():
    formatter = JSONFormatter()
    record = logging.LogRecord(
        name="adaptcore.trace", level=logging.INFO, pathname="rules.py",
        lineno=1, msg="adaptation_preview", args=(), exc_info=None
    )
    record.ctx_event = "adaptation_preview"
    record.ctx_explainability_id = "exp_42"
    record.ctx_reason_code = "ramp_high"
    parsed = json.loads(formatter.format(record))
    assert parsed["event"] == "adaptation_preview"
    assert parsed["explainability_id"] == "exp_42"
    assert parsed["context"] == {"reason_code": "ramp_high"}
