"""Tests for structured logging and activity sinks."""

from __future__ import annotations

import json
import logging

from fleetdiag.logging import (
    JsonFormatter,
    LoggingActivityLog,
    NullActivityLog,
    RecordingActivityLog,
)


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("fleetdiag.test", logging.WARNING, __file__, 1, "pc1 down", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_extras() -> None:
    payload = json.loads(JsonFormatter().format(_record(target="pc1", transport="RPC")))
    assert payload["level"] == "WARNING"
    assert payload["message"] == "pc1 down"
    assert payload["target"] == "pc1"
    assert payload["transport"] == "RPC"
    assert "collector" not in payload


def test_recording_sink_keeps_order_and_fields() -> None:
    sink = RecordingActivityLog()
    sink.log(logging.INFO, "first", target="pc1")
    sink.log(logging.WARNING, "second")
    assert sink.messages() == ["first", "second"]
    assert sink.messages(logging.WARNING) == ["second"]
    assert sink.records[0][2] == {"target": "pc1"}


def test_null_sink_accepts_anything() -> None:
    NullActivityLog().log(logging.ERROR, "ignored", target="pc1")


def test_logging_sink_forwards_extras(caplog) -> None:
    sink = LoggingActivityLog(logging.getLogger("fleetdiag.test.activity"))
    with caplog.at_level(logging.INFO, logger="fleetdiag.test.activity"):
        sink.log(logging.INFO, "pc1: using WinRM", target="pc1", transport="WinRM")
    assert caplog.records[0].getMessage() == "pc1: using WinRM"
    assert caplog.records[0].target == "pc1"
