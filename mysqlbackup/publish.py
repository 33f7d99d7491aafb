"""Optional publishing of the backup directory to a git remote."""
from __future__ import annotations

import enum
import logging
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Sequence

LOGGER = logging.getLogger(__name__)


class PublishError(Exception):
    """Raised when a mandatory git command fails."""


class PublishResult(str, enum.Enum):
    SKIPPED_NOT_A_REPO = "skipped-not-a-repo"
    NO_CHANGES = "no-changes"
    PUSHED = "pushed"
    FAILED = "failed"


@dataclass
class GitPublisher:
    """Commit and push the contents of a backup directory.

    The directory must already be a git work tree with the remote configured.
    Nothing here raises: every failure is logged and reported through
    :class:`PublishResult` so the backup itself is never affected.
    """

    git: str = "git"
    remote: str = "origin"
    branch: str = "main"
    commit_message: str = "Automatic backup - {timestamp}"

    def publish(self, directory: Path, timestamp: str) -> PublishResult:
        directory = Path(directory)
        if not (directory / ".git").exists():
            LOGGER.info(
                "Git push requested but %s is not a git repo. Skipping git push.", directory
            )
            return PublishResult.SKIPPED_NOT_A_REPO

        LOGGER.info("Preparing git push from %s.", directory)
        if not self._try(directory, ["fetch", self.remote, self.branch]):
            LOGGER.warning("git fetch failed (continuing).")
        if not self._try(directory, ["pull", "--ff-only", self.remote, self.branch]):
            LOGGER.warning("git pull failed (continuing).")

        try:
            self._git(directory, ["add", "-A"])
            if self._try(directory, ["diff", "--cached", "--quiet"]):
                LOGGER.info("No changes to commit.")
                return PublishResult.NO_CHANGES
            message = self._commit_message(timestamp)
            self._git(directory, ["commit", "-m", message])
            self._git(directory, ["push", self.remote, self.branch])
        except PublishError as exc:
            LOGGER.warning("Git publish failed: %s", exc)
            return PublishResult.FAILED

        LOGGER.info("Changes pushed to git.")
        return PublishResult.PUSHED

    def _commit_message(self, timestamp: str) -> str:
        try:
            return self.commit_message.format_map({"timestamp": timestamp})
        except (AttributeError, IndexError, KeyError, ValueError) as exc:
            raise PublishError(
                f"Invalid commit message template '{self.commit_message}': {exc!r}"
            ) from exc

    # ------------------------------------------------------------------
    def _run(self, directory: Path, args: Sequence[str]) -> subprocess.CompletedProcess:
        command = [self.git, *args]
        LOGGER.debug("Running %s in %s", " ".join(command), directory)
        try:
            result = subprocess.run(
                command,
                cwd=directory,
                capture_output=True,
                text=True,
                env=self._env(),
            )
        except OSError as exc:
            raise PublishError(f"Cannot execute '{self.git}': {exc}") from exc
        if result.stdout:
            LOGGER.debug("STDOUT: %s", result.stdout.strip())
        if result.stderr and result.returncode != 0:
            LOGGER.debug("STDERR: %s", result.stderr.strip())
        return result

    def _git(self, directory: Path, args: Sequence[str]) -> None:
        result = self._run(directory, args)
        if result.returncode != 0:
            raise PublishError(
                f"'git {' '.join(args)}' exited with code {result.returncode}: {result.stderr.strip()}"
            )

    def _try(self, directory: Path, args: Sequence[str]) -> bool:
        try:
            return self._run(directory, args).returncode == 0
        except PublishError as exc:
            LOGGER.debug("%s", exc)
            return False

    @staticmethod
    def _env() -> Dict[str, str]:
        env = os.environ.copy()
        # never block a scheduled run on a credential prompt
        env.setdefault("GIT_TERMINAL_PROMPT", "0")
        return env


__all__ = ["GitPublisher", "PublishError", "PublishResult"]
