from __future__ import annotations

import json
import logging
import os
import sys
import time


class JsonFormatter(logging.Formatter):
    """
    One JSON object per line:
      {"t": 1700000000000, "lvl": "INFO", "name": "report.aggregator", "msg": "...", "extra": {...}}

    Structured fields are passed as `logger.info("msg", extra={"extra": {...}})`.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "t": int(time.time() * 1000),
            "lvl": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
        }
        extra = getattr(record, "extra", None)
        if isinstance(extra, dict):
            payload["extra"] = extra
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logging(level: str | None = None) -> None:
    """
    Configure the root logger once (explicit `level`, else LOG_LEVEL, else INFO).
    """
    root = logging.getLogger()
    if getattr(root, "_hazard_configured", False):
        return

    lvl_name = (level or os.getenv("LOG_LEVEL") or "INFO").strip().upper()
    lvl = logging.getLevelName(lvl_name)
    if not isinstance(lvl, int):
        lvl = logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())

    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(lvl)
    root._hazard_configured = True  # type: ignore[attr-defined]


def get_logger(name: str) -> logging.Logger:
    setup_logging()
    return logging.getLogger(name)
