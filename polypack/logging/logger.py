# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Structured JSON logger for polypack.

Every log entry is one JSON line: timestamped, leveled, tagged with the source
module, plus whatever structured context the caller passes through `extra`.

How this works:
  - All loggers live under the "polypack" hierarchy. Handlers are attached
    once, to the "polypack" root, and child loggers propagate up to it.
  - `get_logger(__name__)` is called at module import time, so it must not
    pin a level or a stream. `configure_logging` is what the CLI calls once
    it has parsed --log-level / the config file.
  - The stdout handler looks up sys.stdout at emit time rather than at
    construction time, so output redirection (and pytest's capsys) sees it.

The JSON structure looks like:
  {"ts": "2026-...", "level": "INFO", "module": "polypack.apk.builder", "msg": "phase complete", ...}
"""

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

ROOT_LOGGER_NAME = "polypack"

_STANDARD_ATTRS = frozenset(
    {
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
    }
)

VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class JsonFormatter(logging.Formatter):
    """
    Formats log records as single-line JSON objects.

    Mandatory fields: ts (ISO 8601 UTC), level, module (logger name), msg.
    Fields passed via `extra` are merged in; internal LogRecord attributes
    are skipped. Exceptions are rendered into an "exc" field.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, object] = {
            "ts": datetime.now(tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "module": record.name,
            "msg": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS and not key.startswith("_"):
                entry[key] = value

        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class _StdoutHandler(logging.StreamHandler):
    """StreamHandler bound to whatever sys.stdout is when the record is emitted."""

    def __init__(self) -> None:
        super().__init__(stream=sys.stdout)

    def emit(self, record: logging.LogRecord) -> None:
        self.stream = sys.stdout
        super().emit(record)


def _resolve_log_level(level_name: str) -> int:
    """Turn a level name string into the corresponding logging constant."""
    upper = level_name.upper()
    if upper not in VALID_LOG_LEVELS:
        raise ValueError(
            f"Invalid log level '{level_name}'. Must be one of: {', '.join(sorted(VALID_LOG_LEVELS))}"
        )
    return getattr(logging, upper)


def _root_logger() -> logging.Logger:
    root = logging.getLogger(ROOT_LOGGER_NAME)
    if not root.handlers:
        handler = _StdoutHandler()
        handler.setFormatter(JsonFormatter())
        root.addHandler(handler)
        root.setLevel(logging.INFO)
        # We handle all output ourselves.
        root.propagate = False
    return root


def get_logger(name: str) -> logging.Logger:
    """
    Return a structured JSON logger for `name`.

    This is the only sanctioned way to get a logger in polypack. Names outside
    the "polypack" hierarchy are nested under it so every logger shares the
    root's handlers and level.

    Args:
        name: Logger name, typically __name__ of the calling module.

    Returns:
        A logging.Logger that emits JSON lines through the polypack root.
    """
    _root_logger()
    if name != ROOT_LOGGER_NAME and not name.startswith(ROOT_LOGGER_NAME + "."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)


def configure_logging(log_level: str = "INFO", log_file: Optional[Path] = None) -> logging.Logger:
    """
    Set the level of the polypack hierarchy and optionally tee output to a file.

    Calling this more than once replaces the previous file handler instead
    of stacking a second one.

    Args:
        log_level: One of DEBUG, INFO, WARNING, ERROR, CRITICAL.
        log_file: Optional path to a log file. If provided, logs go to both
                  stdout and the file.

    Returns:
        The configured "polypack" root logger.
    """
    root = _root_logger()
    level = _resolve_log_level(log_level)
    root.setLevel(level)

    for handler in list(root.handlers):
        if isinstance(handler, logging.FileHandler):
            root.removeHandler(handler)
            handler.close()

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(str(log_file), encoding="utf-8")
        file_handler.setFormatter(JsonFormatter())
        root.addHandler(file_handler)

    return root
