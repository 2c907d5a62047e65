"""Append-only run log in the working store."""

from __future__ import annotations

import logging
from pathlib import Path

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def attach_run_log(log_path: Path, level: int = logging.INFO) -> logging.Handler:
    """Attach a file handler for the run log to the package logger.

    Args:
        log_path: Log file, opened in append mode.
        level: Minimum level written to the file.

    Returns:
        The handler, so callers can detach it again.
    """
    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    handler.setLevel(level)

    root = logging.getLogger("backupfetch")
    root.addHandler(handler)
    if root.level == logging.NOTSET or root.level > level:
        root.setLevel(level)
    return handler


def attach_console_log(level: int = logging.DEBUG) -> logging.Handler:
    """Mirror package logging to stderr (used by --verbose)."""
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    handler.setLevel(level)
    root = logging.getLogger("backupfetch")
    root.addHandler(handler)
    root.setLevel(min(root.level or level, level))
    return handler


def detach(handler: logging.Handler) -> None:
    """Remove and close a handler added by this module."""
    logging.getLogger("backupfetch").removeHandler(handler)
    handler.close()
