"""Utility functions for protorm."""

from __future__ import annotations

from .logging import JsonFormatter, configure_logging, get_logger
from .naming import pascal_case, safe_identifier, screaming_snake_case, snake_case, split_words

__all__ = [
    "configure_logging",
    "get_logger",
    "JsonFormatter",
    "split_words",
    "snake_case",
    "pascal_case",
    "screaming_snake_case",
    "safe_identifier",
]
