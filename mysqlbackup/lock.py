"""Single-instance guard based on an advisory ``flock`` lock file."""
from __future__ import annotations

import fcntl
import logging
import os
from pathlib import Path
from typing import Optional

from .utils import ensure_directory

LOGGER = logging.getLogger(__name__)


class LockUnavailable(Exception):
    """Raised when another process already holds the lock."""


class RunLock:
    """Non-blocking exclusive lock tied to *path*.

    The lock is not reentrant: a second :class:`RunLock` on the same path fails
    to acquire even inside the process that holds the first one. Releasing
    removes the lock file. If the process dies the kernel drops the lock and
    the next run simply reuses the stale file.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._fd: Optional[int] = None

    @property
    def held(self) -> bool:
        return self._fd is not None

    def acquire(self) -> "RunLock":
        ensure_directory(self.path.parent)
        fd = os.open(self.path, os.O_WRONLY | os.O_CREAT, 0o644)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError as exc:
            os.close(fd)
            raise LockUnavailable(f"Lock '{self.path}' is held by another process.") from exc
        except OSError:
            os.close(fd)
            raise
        self._fd = fd
        LOGGER.debug("Acquired lock '%s'.", self.path)
        return self

    def release(self) -> None:
        if self._fd is None:
            return
        fd, self._fd = self._fd, None
        try:
            fcntl.flock(fd, fcntl.LOCK_UN)
        except OSError as exc:
            LOGGER.debug("Unlocking '%s' failed: %s", self.path, exc)
        finally:
            os.close(fd)
        try:
            self.path.unlink()
        except OSError as exc:
            LOGGER.debug("Could not remove lock file '%s': %s", self.path, exc)

    def __enter__(self) -> "RunLock":
        return self.acquire()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()


__all__ = ["LockUnavailable", "RunLock"]
