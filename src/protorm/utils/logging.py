"""Logging setup for protorm.

protoc reads the plugin response from stdout, so every handler configured
here writes to stderr. Console output is a concise human format; JSON output
is available for build systems that collect structured logs.

Usage:
    >>> from protorm.utils.logging import configure_logging, get_logger
    >>> configure_logging(level="DEBUG")
    >>> log = get_logger(__name__)
    >>> log.info("built schema", extra={"entities": 3})
"""

from __future__ import annotations

import json
import logging
import logging.config
from typing import Any, Optional

# Attributes every LogRecord has; anything else was passed through `extra`
_RECORD_ATTRIBUTES = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys() | {"message", "asctime"}
)


class JsonFormatter(logging.Formatter):
    """Render each record as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key not in _RECORD_ATTRIBUTES and not key.startswith("_"):
                payload[key] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        if record.stack_info:
            payload["stack_info"] = record.stack_info
        return json.dumps(payload, default=str)


def configure_logging(level: str = "WARNING", json_logs: bool = False, force: bool = True) -> None:
    """Configure the root logger to write to stderr.

    Args:
        level: Logging level name ("DEBUG", "INFO", "WARNING", ...)
        json_logs: Emit JSON lines instead of the console format
        force: Replace handlers installed by an earlier call

    Raises:
        ValueError: If the level name is unknown
    """
    level = level.upper()
    if not isinstance(logging.getLevelName(level), int):
        raise ValueError(f"Unknown log level {level!r}")

    root = logging.getLogger()
    if not force and root.handlers:
        return

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "console": {
                    "format": "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
                    "datefmt": "%Y-%m-%d %H:%M:%S",
                },
                "json": {
                    "()": JsonFormatter,
                },
            },
            "handlers": {
                "stderr": {
                    "class": "logging.StreamHandler",
                    "stream": "ext://sys.stderr",
                    "formatter": "json" if json_logs else "console",
                    "level": level,
                }
            },
            "root": {
                "handlers": ["stderr"],
                "level": level,
            },
        }
    )


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return the logger for a module (the root logger when name is None)."""
    return logging.getLogger(name)


__all__ = ["configure_logging", "get_logger", "JsonFormatter"]
