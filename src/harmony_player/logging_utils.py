"""Logging setup: JSON lines to a rotating file, plain text to the console."""

from __future__ import annotations

import json
import logging
import time
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FILE_NAME = "harmony-player.log"
CONSOLE_FORMAT = "%(levelname)-7s %(name)s: %(message)s"

# Attributes every LogRecord carries; anything else came in through `extra=`.
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime", "taskName"}


class JsonLogFormatter(logging.Formatter):
    """One JSON object per record, with `extra=` fields under `context`."""

    converter = time.gmtime
    default_time_format = "%Y-%m-%dT%H:%M:%S"
    default_msec_format = "%s.%03dZ"

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, object] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "where": f"{record.module}:{record.lineno}",
        }
        extras = {
            name: value
            for name, value in vars(record).items()
            if name not in _RECORD_ATTRS and not name.startswith("_")
        }
        if extras:
            entry["context"] = extras
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        # Unserializable extras (tracks, paths) fall back to their repr.
        return json.dumps(entry, default=repr, ensure_ascii=True)


def _coerce_level(level: str | int) -> int:
    if isinstance(level, int):
        return level
    numeric = logging.getLevelName(level.upper())
    return numeric if isinstance(numeric, int) else logging.INFO


def setup_logging(
    log_dir: Path,
    level: str | int = "INFO",
    max_bytes: int = 2_000_000,
    backup_count: int = 5,
    log_file: Path | None = None,
) -> Path:
    """Route the root logger to a rotating JSON file and the console.

    Handlers from an earlier call are closed first so repeated setup never
    duplicates output. Returns the path of the log file in use.
    """
    target = log_file if log_file is not None else log_dir / LOG_FILE_NAME
    target.parent.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
        existing.close()
    root.setLevel(_coerce_level(level))

    json_handler = RotatingFileHandler(
        target, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    json_handler.setFormatter(JsonLogFormatter())
    root.addHandler(json_handler)

    console = logging.StreamHandler()
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    root.addHandler(console)
    return target
