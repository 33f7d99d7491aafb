"""Logging setup: console output for the CLI and the append-only run log."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from .utils import ensure_directory

PACKAGE_LOGGER = "mysqlbackup"
CONSOLE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
RUN_LOG_FORMAT = "%(asctime)s - %(message)s"
RUN_LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def configure_logging(level: int) -> None:
    if level >= 2:
        log_level = logging.DEBUG
    elif level == 1:
        log_level = logging.INFO
    else:
        log_level = logging.WARNING
    console = logging.StreamHandler()
    # the run log lowers the package logger to INFO; the console keeps its own level
    console.setLevel(log_level)
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    logging.basicConfig(level=log_level, handlers=[console])


@contextmanager
def run_log(path: Path) -> Iterator[logging.Handler]:
    """Append every INFO+ record of the package to *path* while the block runs.

    Lines look like ``2024-01-31 02:00:00 - Backup started ...``. The file is
    never truncated or rotated here.
    """

    path = Path(path)
    ensure_directory(path.parent)
    handler = logging.FileHandler(path, mode="a", encoding="utf-8")
    handler.setLevel(logging.INFO)
    handler.setFormatter(logging.Formatter(RUN_LOG_FORMAT, datefmt=RUN_LOG_DATEFMT))

    logger = logging.getLogger(PACKAGE_LOGGER)
    previous_level = logger.level
    if logger.getEffectiveLevel() > logging.INFO:
        logger.setLevel(logging.INFO)
    logger.addHandler(handler)
    try:
        yield handler
    finally:
        logger.removeHandler(handler)
        logger.setLevel(previous_level)
        handler.close()


__all__ = ["configure_logging", "run_log"]
