"""Age-based removal of old backup artifacts and their checksum sidecars."""
from __future__ import annotations

import logging
import re
import time
from pathlib import Path
from typing import List, Optional

LOGGER = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400
CHECKSUM_SUFFIX = ".sha256"


def age_in_days(path: Path, now: float) -> int:
    """Whole days since the last modification of *path* (``find -mtime`` rounding)."""

    return int((now - path.stat().st_mtime) // SECONDS_PER_DAY)


def is_expired(path: Path, retention_days: int, now: float) -> bool:
    return age_in_days(path, now) > retention_days


def rotate_backups(
    backup_dir: Path,
    project: str,
    retention_days: int,
    extension: str = ".sql",
    now: Optional[float] = None,
) -> List[Path]:
    """Delete ``<project>_<YYYYMMDDHHMMSS><extension>.gz`` artifacts older than *retention_days*.

    An expired artifact takes its ``.sha256`` sidecar with it, whatever the
    sidecar's own age. Sidecars whose artifact is already gone are removed once
    they expire themselves. Only the top level of *backup_dir* is scanned.
    Deletion failures are logged and skipped, never raised.
    Names with anything between the project and the timestamp, such as
    ``demo_old_20230101000000.sql.gz`` for project ``demo``, are left alone.
    """

    backup_dir = Path(backup_dir)
    now = time.time() if now is None else now
    name_re = re.compile(
        rf"{re.escape(project)}_\d{{14}}{re.escape(extension)}\.gz"
        rf"(?:{re.escape(CHECKSUM_SUFFIX)})?"
    )
    candidates = sorted(
        path for path in backup_dir.glob(f"{project}_*") if name_re.fullmatch(path.name)
    )

    removed: List[Path] = []
    for artifact in candidates:
        if artifact.name.endswith(CHECKSUM_SUFFIX) or not artifact.is_file():
            continue
        if not is_expired(artifact, retention_days, now):
            continue
        sidecar = artifact.with_name(artifact.name + CHECKSUM_SUFFIX)
        for path in (artifact, sidecar):
            if _remove(path):
                removed.append(path)

    for sidecar in candidates:
        if not sidecar.name.endswith(CHECKSUM_SUFFIX) or not sidecar.is_file():
            continue
        artifact = sidecar.with_name(sidecar.name[: -len(CHECKSUM_SUFFIX)])
        if artifact.exists() or not is_expired(sidecar, retention_days, now):
            continue
        if _remove(sidecar):
            removed.append(sidecar)

    return removed


def _remove(path: Path) -> bool:
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    except OSError as exc:
        LOGGER.warning("Could not delete '%s': %s", path, exc)
        return False
    LOGGER.info("Removed expired backup file '%s'.", path)
    return True


__all__ = ["age_in_days", "is_expired", "rotate_backups"]
