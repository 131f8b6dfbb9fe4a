"""
Structured logging for the completion gateway and its callers.

Events attach their fields through ``extra=log_fields(category, request_id,
**fields)``. The JSON formatter lifts ``category`` and ``request_id`` to the
top level of each entry so one request can be followed across the cache,
provider and retry logs; the remaining fields go under ``fields``.

LOG_FORMAT=text switches to a one-line human format for local runs.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, TextIO

EXTRA_ATTR = "_extra"
_PROMOTED_FIELDS = ("category", "request_id")
_NOISY_LOGGERS = ("httpx", "httpcore", "openai")


def _split_extra(record: logging.LogRecord) -> tuple[dict[str, Any], dict[str, Any]]:
    """Return (promoted, remaining) structured fields of a record."""
    extra = dict(getattr(record, EXTRA_ATTR, None) or {})
    promoted = {key: extra.pop(key) for key in _PROMOTED_FIELDS if key in extra}
    return promoted, extra


class JSONFormatter(logging.Formatter):
    """One JSON object per line, keyed for log aggregation."""

    def __init__(self, service_name: str) -> None:
        super().__init__()
        self._service = service_name

    def format(self, record: logging.LogRecord) -> str:
        promoted, fields = _split_extra(record)
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "service": self._service,
            "logger": record.name,
            **promoted,
            "message": record.getMessage(),
        }
        if fields:
            entry["fields"] = fields
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """``LEVEL logger [category request_id] message k=v ...``"""

    def format(self, record: logging.LogRecord) -> str:
        promoted, fields = _split_extra(record)
        tag = " ".join(str(v) for v in promoted.values())
        line = f"{record.levelname:<7} {record.name}"
        if tag:
            line += f" [{tag}]"
        line += f" {record.getMessage()}"
        if fields:
            line += " " + " ".join(f"{k}={v}" for k, v in fields.items())
        if record.exc_info and record.exc_info[1]:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logging(
    service_name: str,
    level: str | None = None,
    stream: TextIO | None = None,
) -> logging.Logger:
    """
    Configure the root logger and return the service logger.

    `level` defaults to LOG_LEVEL (INFO), the output format to LOG_FORMAT
    ("json" or "text"), the stream to stdout. Calling it again replaces the
    previous handler.
    """
    level_name = (level or os.environ.get("LOG_LEVEL", "INFO")).upper()
    numeric_level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(stream or sys.stdout)
    if os.environ.get("LOG_FORMAT", "json").lower() == "text":
        handler.setFormatter(TextFormatter())
    else:
        handler.setFormatter(JSONFormatter(service_name))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(numeric_level)

    for noisy in _NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logger = logging.getLogger(service_name)
    logger.info("Logging initialized", extra=log_fields("startup", level=level_name))
    return logger


def log_fields(category: str, request_id: str = "", **fields: Any) -> dict[str, Any]:
    """Build the ``extra`` mapping for a categorized log event."""
    data: dict[str, Any] = {"category": category}
    if request_id:
        data["request_id"] = request_id
    data.update(fields)
    return {EXTRA_ATTR: data}
