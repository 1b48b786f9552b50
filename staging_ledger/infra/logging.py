"""Structured logging helpers shared by the staging ledger."""

from __future__ import annotations

import json
import logging
import sys
from typing import Any, Dict

ROOT_LOGGER_NAME = "staging_ledger"

# Attributes every LogRecord carries; anything else arrived through `extra=`.
_RESERVED_RECORD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__.keys()
) | {"message", "asctime"}

__all__ = ["ROOT_LOGGER_NAME", "StructuredFormatter", "configure_logging", "get_logger"]


def get_logger(name: str) -> logging.Logger:
    """Return a logger namespaced under the staging ledger root logger."""

    if name == ROOT_LOGGER_NAME or name.startswith(f"{ROOT_LOGGER_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def _extra_fields(record: logging.LogRecord) -> Dict[str, Any]:
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _RESERVED_RECORD_ATTRS and not key.startswith("_")
    }


class StructuredFormatter(logging.Formatter):
    """Formatter that appends `extra=` context to each event line."""

    def __init__(self, *, json_output: bool = False) -> None:
        super().__init__("%(asctime)s | %(levelname)-8s | %(name)s - %(message)s")
        self.json_output = json_output

    def format(self, record: logging.LogRecord) -> str:
        extra = _extra_fields(record)
        if self.json_output:
            payload: Dict[str, Any] = {
                "ts": self.formatTime(record),
                "level": record.levelname,
                "logger": record.name,
                "event": record.getMessage(),
                **extra,
            }
            if record.exc_info:
                payload["exc_info"] = self.formatException(record.exc_info)
            return json.dumps(payload, default=str, sort_keys=True)

        line = super().format(record)
        if extra:
            line = f"{line} {json.dumps(extra, default=str, sort_keys=True)}"
        return line


def configure_logging(level: str = "INFO", *, json_output: bool = False) -> logging.Logger:
    """Install a single stderr handler on the staging ledger root logger."""

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(level.upper())

    # Remove existing handlers to avoid duplicate lines on reconfiguration
    if logger.handlers:
        logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(StructuredFormatter(json_output=json_output))
    logger.addHandler(handler)
    return logger
