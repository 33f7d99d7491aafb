"""Helper utilities for the MySQL backup runner."""
from __future__ import annotations

import os
import re
import shutil
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional, Union


def slugify(value: str, fallback: str = "backup") -> str:
    """Return a filesystem-friendly version of *value*.

    Letters, digits, ``-`` and ``_`` are kept. Any other run of characters is
    replaced with a single underscore.
    """

    value = value.strip()
    sanitized = re.sub(r"[^0-9A-Za-z_-]+", "_", value)
    sanitized = re.sub(r"_+", "_", sanitized).strip("_")
    return sanitized or fallback


def ensure_directory(path: Union[str, Path]) -> Path:
    """Create *path* if it does not exist and return it."""

    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def timestamp_for_filename(dt: Optional[datetime] = None) -> str:
    dt = dt or datetime.now()
    return dt.strftime("%Y%m%d%H%M%S")


def find_missing_tools(tools: Iterable[str]) -> List[str]:
    """Return the entries of *tools* that cannot be resolved on ``PATH``."""

    return [tool for tool in tools if shutil.which(tool) is None]


def remove_quietly(*paths: Optional[Path]) -> None:
    for path in paths:
        if path is None:
            continue
        try:
            os.unlink(path)
        except FileNotFoundError:
            pass


def mask_sensitive(value: str, secrets: Iterable[str]) -> str:
    """Replace occurrences of secret values in *value* with '***'."""

    masked = value
    for secret in secrets:
        if secret:
            masked = masked.replace(secret, "***")
    return masked


__all__ = [
    "slugify",
    "ensure_directory",
    "timestamp_for_filename",
    "find_missing_tools",
    "remove_quietly",
    "mask_sensitive",
]
