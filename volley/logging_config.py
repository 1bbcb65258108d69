"""Logging for volley.

Every module logs under the ``volley`` namespace. The namespace gets one
stderr handler the first time any logger is requested. Its level comes from
VOLLEY_LOG_LEVEL and its layout from VOLLEY_LOG_FORMAT: ``text`` (default)
puts the worker thread name in every line, and ``json`` writes one object per
line.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Any

import orjson

ROOT_LOGGER = "volley"
LOG_LEVEL_ENV = "VOLLEY_LOG_LEVEL"
LOG_FORMAT_ENV = "VOLLEY_LOG_FORMAT"
TEXT_FORMAT = "%(asctime)s %(levelname)-7s [%(threadName)s] %(name)s: %(message)s"
TEXT_DATEFMT = "%H:%M:%S"


class JsonLineFormatter(logging.Formatter):
    """Render a record as a single JSON line: time, level, logger, thread, message."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return orjson.dumps(entry).decode("utf-8")


def _formatter_from_env() -> logging.Formatter:
    if os.environ.get(LOG_FORMAT_ENV, "").strip().lower() == "json":
        return JsonLineFormatter()
    return logging.Formatter(TEXT_FORMAT, datefmt=TEXT_DATEFMT)


def _level_from_env() -> int:
    name = os.environ.get(LOG_LEVEL_ENV, "").strip().upper() or "INFO"
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def _install_handler(root: logging.Logger) -> None:
    if root.handlers:
        return
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_formatter_from_env())
    root.addHandler(handler)
    root.setLevel(_level_from_env())


def get_logger(name: str) -> logging.Logger:
    """Logger ``volley.<name>`` (or ``volley`` itself); sets up the namespace handler once."""
    _install_handler(logging.getLogger(ROOT_LOGGER))
    return logging.getLogger(ROOT_LOGGER if name == ROOT_LOGGER else f"{ROOT_LOGGER}.{name}")
