"""
Logging set-up for the UCN simulation.

The level is read from the ``UCN_LOG_LEVEL`` environment variable (DEBUG,
INFO, WARNING, ERROR) unless passed explicitly. Call
:func:`configure_logging` once at start-up; modules obtain their loggers with
``logging.getLogger(__name__)``.
"""

from __future__ import annotations

import logging
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

PACKAGE_LOGGER = "ucn_simulation"

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


class TextFormatter(logging.Formatter):
    """``TIMESTAMP LEVEL [job N] [logger] message``, with file:line on DEBUG/ERROR."""

    def __init__(self, job: Optional[int] = None):
        super().__init__()
        self.job = job

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]
        name = record.name
        if name.startswith(PACKAGE_LOGGER + "."):
            name = name[len(PACKAGE_LOGGER) + 1:]
        job = f"[job {self.job}] " if self.job is not None else ""
        text = f"{timestamp} {record.levelname:8s} {job}[{name}] {record.getMessage()}"
        if record.levelno in (logging.DEBUG, logging.ERROR, logging.CRITICAL):
            text += f" ({record.filename}:{record.lineno})"
        if record.exc_info:
            text += "\n" + self.formatException(record.exc_info)
        return text


def get_log_level() -> int:
    return _LEVELS.get(os.environ.get("UCN_LOG_LEVEL", "INFO").upper(), logging.INFO)


def configure_logging(
    level: Optional[int] = None,
    job: Optional[int] = None,
    log_file: Optional[Path] = None,
) -> logging.Logger:
    """Attach a stderr handler (and optionally a file handler) to the package logger.

    Parameters
    ----------
    level : int, optional
        Logging level; defaults to ``UCN_LOG_LEVEL``.
    job : int, optional
        Job number shown in every line, for runs split over many processes.
    log_file : Path, optional
        Also write the log to this file.
    """
    if level is None:
        level = get_log_level()
    formatter = TextFormatter(job)

    root = logging.getLogger(PACKAGE_LOGGER)
    root.setLevel(level)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    stream = logging.StreamHandler(sys.stderr)
    stream.setFormatter(formatter)
    root.addHandler(stream)
    if log_file is not None:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)
    root.propagate = False
    root.debug("Logging configured: level=%s", logging.getLevelName(level))
    return root


def flush_logging() -> None:
    for handler in logging.getLogger(PACKAGE_LOGGER).handlers:
        handler.flush()
