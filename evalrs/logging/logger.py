# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Structured JSON logger for evalrs.

Every log entry is a single JSON line with a timestamp, level, source module
and message, plus whatever structured context the caller attaches via
`extra`.

One twist compared to a normal service logger: stdout belongs to the program
being evaluated. Anything we print there would be mixed into the user's
output, so our handlers write to stderr (and optionally to a file) instead.

The JSON structure looks like:
  {"ts": "2026-...", "level": "INFO", "module": "evalrs.cache.store", "msg": "cache hit", ...}
"""

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional


class JsonFormatter(logging.Formatter):
    """
    Formats log records as single-line JSON objects.

    Each log entry contains four mandatory fields:
      ts      ISO 8601 UTC timestamp
      level   log level name
      module  the logger name (usually the Python module path)
      msg     the formatted message string

    Fields passed through the `extra` kwarg get merged into the object.
    """

    _STANDARD_ATTRS = frozenset({
        "name",
        "msg",
        "args",
        "created",
        "relativeCreated",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "pathname",
        "filename",
        "module",
        "levelno",
        "levelname",
        "processName",
        "process",
        "threadName",
        "thread",
        "message",
        "msecs",
        "taskName",
    })

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, object] = {
            "ts": datetime.now(tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "module": record.name,
            "msg": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key not in self._STANDARD_ATTRS and not key.startswith("_"):
                entry[key] = value

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


_VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

ROOT_LOGGER_NAME = "evalrs"
DEFAULT_LOG_LEVEL = "WARNING"


def _resolve_log_level(level_name: str) -> int:
    """Turn a level name string into the corresponding logging constant."""
    upper = level_name.upper()
    if upper not in _VALID_LOG_LEVELS:
        raise ValueError(
            f"Invalid log level '{level_name}'. Must be one of: {', '.join(sorted(_VALID_LOG_LEVELS))}"
        )
    return getattr(logging, upper)


def configure_logging(
    log_level: str = DEFAULT_LOG_LEVEL,
    log_file: Optional[Path] = None,
) -> logging.Logger:
    """
    Set up handlers on the `evalrs` root logger.

    Every evalrs.* logger propagates here, so this is the one place that
    decides level and destination. Calling it again replaces the handlers,
    which is what lets the CLI raise the level after modules have already
    grabbed their loggers at import time.
    """
    level = _resolve_log_level(log_level)
    root = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    root.setLevel(level)
    formatter = JsonFormatter()

    stderr_handler = logging.StreamHandler(stream=sys.stderr)
    stderr_handler.setLevel(level)
    stderr_handler.setFormatter(formatter)
    root.addHandler(stderr_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(str(log_file), encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    # Don't propagate to the Python root logger, we handle all output ourselves.
    root.propagate = False
    return root


def get_logger(
    name: str,
    log_level: Optional[str] = None,
    log_file: Optional[Path] = None,
) -> logging.Logger:
    """
    Get a structured JSON logger.

    This is the only sanctioned way to get a logger in evalrs. Every module
    calls it once at the top with its __name__.

    Args:
        name: Logger name, typically __name__ of the calling module. Must live
              under the `evalrs` namespace so it reaches our handlers.
        log_level: If given, (re)configure the evalrs root at this level.
        log_file: Optional path to a log file. If provided, logs go to both
                  stderr and the file.

    Returns:
        A logging.Logger whose records end up as JSON on stderr.
    """
    root = logging.getLogger(ROOT_LOGGER_NAME)
    if log_level is not None or log_file is not None or not root.handlers:
        configure_logging(log_level or DEFAULT_LOG_LEVEL, log_file)
    return logging.getLogger(name)
