"""Application logging for the launchpad CLI.

Diagnostics only. Child process output never goes through these handlers;
it is written to the per-run files managed by :mod:`launchpad.logs.manager`.
"""

from __future__ import annotations

import logging as py_logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TextIO

LOG_LEVELS = {
    "DEBUG": py_logging.DEBUG,
    "INFO": py_logging.INFO,
    "WARN": py_logging.WARNING,
    "ERROR": py_logging.ERROR,
}
LOG_LEVEL_ENV = "LAUNCHPAD_LOG_LEVEL"
DEFAULT_LOG_PATH = Path("~/.config/launchpad/logs/launchpad.log")
MAX_LOG_BYTES = 2 * 1024 * 1024
LOG_BACKUP_COUNT = 3

_CONSOLE_FORMAT = "launchpad: %(levelname)s %(message)s"
_FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s:%(lineno)d %(message)s"


def normalize_level(value: str) -> str | None:
    """Map a user supplied level name onto a key of LOG_LEVELS."""
    normalized = value.strip().upper()
    if normalized == "WARNING":
        normalized = "WARN"
    return normalized if normalized in LOG_LEVELS else None


def default_log_path() -> Path:
    try:
        return DEFAULT_LOG_PATH.expanduser().resolve()
    except RuntimeError:
        # No resolvable home directory.
        return (Path.cwd() / ".launchpad" / "logs" / "launchpad.log").resolve()


def _file_handler(log_file: str | Path) -> py_logging.Handler | None:
    log_path = Path(log_file).expanduser().resolve()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            log_path,
            maxBytes=MAX_LOG_BYTES,
            backupCount=LOG_BACKUP_COUNT,
            encoding="utf-8",
        )
    except OSError as exc:
        print(f"launchpad: could not open log file {log_path}: {exc}", file=sys.stderr)
        return None
    handler.setLevel(py_logging.DEBUG)
    handler.setFormatter(py_logging.Formatter(_FILE_FORMAT))
    return handler


def configure_logging(
    level: str | None = None,
    stream: TextIO | None = None,
    *,
    log_file: str | Path | None = None,
) -> py_logging.Logger:
    """Reset the ``launchpad`` logger.

    ``level`` falls back to ``$LAUNCHPAD_LOG_LEVEL`` and then INFO. The
    file handler rotates at ``MAX_LOG_BYTES`` and keeps ``LOG_BACKUP_COUNT``
    old files.
    """
    name = normalize_level(level or os.getenv(LOG_LEVEL_ENV, "")) or "INFO"
    resolved = LOG_LEVELS[name]

    logger = py_logging.getLogger("launchpad")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console = py_logging.StreamHandler(stream or sys.stderr)
    console.setLevel(resolved)
    console.setFormatter(py_logging.Formatter(_CONSOLE_FORMAT))
    logger.addHandler(console)

    file_handler = _file_handler(log_file) if log_file else None
    if file_handler is not None:
        logger.addHandler(file_handler)

    logger.setLevel(resolved)
    logger.propagate = False
    return logger
