"""Structured logging configuration.

Queue code passes record identifiers through ``extra``::

    logger.info("Queue item completed", extra={"job_id": job.id, "agent_id": job.agent_id})

The JSON formatter writes those fields next to the message; the text
formatter appends them as ``key=value`` pairs.
"""

import logging
import json
import sys
from typing import Any, Dict

from ..config.settings import settings

# Attributes every LogRecord carries; anything else came from ``extra``.
_RECORD_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


def record_fields(record: logging.LogRecord) -> Dict[str, Any]:
    """Fields attached to a record through ``extra``."""
    fields: Dict[str, Any] = {}
    for key, value in vars(record).items():
        if key in _RECORD_ATTRS:
            continue
        if key == "extra" and isinstance(value, dict):
            fields.update(value)
        else:
            fields[key] = value
    return fields


class JSONFormatter(logging.Formatter):
    """Format logs as JSON."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        log_data.update(record_fields(record))
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Plain text lines with ``extra`` fields appended."""

    def __init__(self) -> None:
        super().__init__("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = record_fields(record)
        if fields:
            line += " " + " ".join(f"{k}={v}" for k, v in fields.items())
        return line


def get_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        if settings.log_format == "json":
            handler.setFormatter(JSONFormatter())
        else:
            handler.setFormatter(TextFormatter())
        logger.addHandler(handler)
        logger.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    return logger
