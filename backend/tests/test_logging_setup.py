from __future__ import annotations

import json
import logging

from telemetry.logging_setup import JsonFormatter


def _record(msg: str, **kwargs) -> logging.LogRecord:
    return logging.LogRecord("report.aggregator", logging.WARNING, __file__, 1, msg, (), None, **kwargs)


def test_json_formatter_carries_structured_fields():
    rec = _record("lookup timed out")
    rec.extra = {"slot": "flood", "timeoutS": 20.0}
    out = json.loads(JsonFormatter().format(rec))

    assert out["lvl"] == "WARNING"
    assert out["name"] == "report.aggregator"
    assert out["msg"] == "lookup timed out"
    assert out["extra"] == {"slot": "flood", "timeoutS": 20.0}
    assert isinstance(out["t"], int)


def test_json_formatter_without_extra():
    out = json.loads(JsonFormatter().format(_record("hello")))
    assert "extra" not in out
    assert "exc_info" not in out
