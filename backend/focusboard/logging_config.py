"""
Logging setup: stdout plus a size-rotated log file, formatted as "LEVEL | message".
"""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from .config import config

LOG_FORMAT = "%(levelname)s | %(message)s"
LOG_FILE_NAME = "focusboard.log"

# Rotated files are never deleted.
_KEEP_ALL_BACKUPS = 10_000

_NOISY_LOGGERS = ("werkzeug", "aiosqlite", "sqlalchemy.engine", "sqlalchemy.pool")


def configure_logging(level: Optional[str] = None, log_dir: Optional[Path] = None) -> logging.Logger:
    """
    Configure the root logger once and return the package logger.

    Args:
        level: Level name (defaults to config.LOG_LEVEL).
        log_dir: Directory for the rotating log file; None disables file logging.
    """
    root = logging.getLogger()
    root.setLevel((level or config.LOG_LEVEL).upper())

    for handler in list(root.handlers):
        if getattr(handler, "_focusboard", False):
            root.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter(LOG_FORMAT)

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(formatter)
    stdout_handler._focusboard = True  # type: ignore[attr-defined]
    root.addHandler(stdout_handler)

    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_dir / LOG_FILE_NAME,
            maxBytes=config.LOG_MAX_BYTES,
            backupCount=_KEEP_ALL_BACKUPS,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        file_handler._focusboard = True  # type: ignore[attr-defined]
        root.addHandler(file_handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logging.getLogger("focusboard")
