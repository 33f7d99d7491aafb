"""Core backup logic: dump, compress, checksum, rotate and publish."""
from __future__ import annotations

import enum
import logging
import os
import signal
import subprocess
import sys
import tempfile
import threading
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import IO, Callable, Dict, List, Optional, Sequence

from .config import BackupConfig
from .lock import LockUnavailable, RunLock
from .logs import run_log
from .publish import GitPublisher, PublishResult
from .rotation import CHECKSUM_SUFFIX, rotate_backups
from .secrets import SecretError, SecretManager
from .utils import (
    ensure_directory,
    find_missing_tools,
    mask_sensitive,
    remove_quietly,
    timestamp_for_filename,
)

LOGGER = logging.getLogger(__name__)

HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class ExitCode(enum.IntEnum):
    SUCCESS = 0
    MISSING_TOOL = 1
    DUMP_FAILED = 2
    COMPRESS_FAILED = 3


class BackupError(Exception):
    """Raised when a backup step fails and the run must stop."""

    exit_code = ExitCode.DUMP_FAILED


class MissingToolError(BackupError):
    exit_code = ExitCode.MISSING_TOOL


class DumpError(BackupError):
    exit_code = ExitCode.DUMP_FAILED


class CompressionError(BackupError):
    exit_code = ExitCode.COMPRESS_FAILED


class RunInterrupted(Exception):
    """Raised from the signal handler so the run unwinds through its cleanup."""

    def __init__(self, signum: int) -> None:
        super().__init__(f"Interrupted by signal {signum}")
        self.signum = signum

    @property
    def exit_code(self) -> int:
        return 128 + self.signum


@dataclass
class BackupRunner:
    """Run one backup for the configured project.

    :meth:`run` never raises for expected failures; it returns the process
    exit status instead (see :class:`ExitCode`). Checksum, rotation and publish
    problems are logged as warnings and do not change that status.
    """

    config: BackupConfig
    secret_manager: Optional[SecretManager] = None
    clock: Callable[[], datetime] = datetime.now
    logger: logging.Logger = LOGGER
    artifact: Optional[Path] = field(default=None, init=False)
    publish_result: Optional[PublishResult] = field(default=None, init=False)

    def run(self) -> int:
        with run_log(self.config.log_path):
            try:
                self._preflight()
            except MissingToolError as exc:
                print(str(exc), file=sys.stderr)
                self.logger.error("%s", exc)
                return int(exc.exit_code)

            backup_dir = ensure_directory(self.config.backup_path)
            previous_umask = os.umask(self.config.umask)
            try:
                return self._run_locked(backup_dir)
            finally:
                os.umask(previous_umask)

    # ------------------------------------------------------------------
    def _preflight(self) -> None:
        missing = find_missing_tools(self.config.required_tools())
        if missing:
            raise MissingToolError(f"ERROR: required command '{missing[0]}' not found. Aborting.")

    # ------------------------------------------------------------------
    def _run_locked(self, backup_dir: Path) -> int:
        lock = RunLock(self.config.lock_path)
        try:
            lock.acquire()
        except LockUnavailable:
            self.logger.info("Another backup process is running. Exiting.")
            return int(ExitCode.SUCCESS)

        code: int = ExitCode.SUCCESS
        previous_handlers = self._install_signal_handlers()
        try:
            self.artifact = self._run_steps(backup_dir)
        except BackupError as exc:
            code = exc.exit_code
        except RunInterrupted as exc:
            self.logger.warning("Backup interrupted by signal %d.", exc.signum)
            code = exc.exit_code
        except BaseException:
            code = 1
            self.logger.exception("Unexpected error during backup.")
            raise
        finally:
            self._restore_signal_handlers(previous_handlers)
            lock.release()
            self.logger.info("Backup script exiting with code %d.", code)
        return int(code)

    # ------------------------------------------------------------------
    def _run_steps(self, backup_dir: Path) -> Path:
        config = self.config
        self.logger.info(
            "Backup started for project '%s', database '%s'.",
            config.project_name,
            config.database_name,
        )
        timestamp = timestamp_for_filename(self.clock())
        extension = config.dump.extension
        fd, temp_name = tempfile.mkstemp(
            prefix=f"{config.project_name}_{timestamp}{extension}.", dir=backup_dir
        )
        temp_path = Path(temp_name)
        output_path = backup_dir / f"{config.project_name}_{timestamp}{extension}.gz"

        try:
            with os.fdopen(fd, "wb") as dump_file:
                self._dump(dump_file, temp_path)
            self._compress(temp_path, output_path)
        finally:
            remove_quietly(temp_path)

        self._write_checksum(output_path)
        self._rotate(backup_dir)
        if config.git.enabled:
            self._publish(backup_dir, timestamp)

        self.logger.info("Backup completed: %s", output_path)
        return output_path

    # ------------------------------------------------------------------
    def _dump(self, dump_file: IO[bytes], temp_path: Path) -> None:
        config = self.config
        env = os.environ.copy()
        secrets: List[str] = []
        for env_name, secret_name in config.dump.env_from_secrets.items():
            value = self._get_secret(secret_name)
            env[env_name] = value
            secrets.append(value)

        command = [config.tools.mysqldump]
        if config.dump.defaults_file:
            # mysqldump only honours this option in first position
            command.append(f"--defaults-extra-file={config.dump.defaults_file}")
        command.extend(config.dump.options)
        command.append(config.database_name)

        self.logger.info("Running mysqldump into temporary file '%s'.", temp_path)
        self.logger.debug("Command: %s", mask_sensitive(" ".join(command), secrets))
        if not self._run_tool(command, stdout=dump_file, env=env, secrets=secrets):
            self.logger.error("ERROR: mysqldump failed.")
            raise DumpError("mysqldump failed")
        self.logger.info("mysqldump completed successfully.")

    def _get_secret(self, name: str) -> str:
        if self.secret_manager is None:
            self.logger.error("ERROR: secret '%s' requested but no secret store is configured.", name)
            raise DumpError(f"no secret store for '{name}'")
        try:
            return self.secret_manager.get_secret(name)
        except SecretError as exc:
            self.logger.error("ERROR: %s", exc)
            raise DumpError(str(exc)) from exc

    # ------------------------------------------------------------------
    def _compress(self, temp_path: Path, output_path: Path) -> None:
        self.logger.info("Compressing dump to '%s'.", output_path)
        command = [self.config.tools.gzip, "-c", str(temp_path)]
        with open(output_path, "wb") as compressed:
            ok = self._run_tool(command, stdout=compressed)
        if not ok:
            self.logger.error("ERROR: compression failed.")
            remove_quietly(temp_path, output_path)
            raise CompressionError("gzip failed")
        self.logger.info("Compression successful.")

    # ------------------------------------------------------------------
    def _write_checksum(self, output_path: Path) -> None:
        sidecar = output_path.with_name(output_path.name + CHECKSUM_SUFFIX)
        command = [self.config.tools.sha256sum, output_path.name]
        try:
            with open(sidecar, "wb") as checksum_file:
                ok = self._run_tool(command, stdout=checksum_file, cwd=output_path.parent)
        except OSError as exc:
            # nothing was created, leave whatever is at that path alone
            self.logger.warning("Cannot write '%s': %s", sidecar, exc)
        else:
            if ok:
                self.logger.info("Checksum written to '%s'.", sidecar)
                return
            remove_quietly(sidecar)
        self.logger.warning("WARNING: checksum for '%s' could not be written.", output_path)

    # ------------------------------------------------------------------
    def _rotate(self, backup_dir: Path) -> None:
        config = self.config
        self.logger.info(
            "Removing backups older than %d days in %s.", config.retention_days, backup_dir
        )
        try:
            rotate_backups(
                backup_dir,
                config.project_name,
                config.retention_days,
                extension=config.dump.extension,
            )
        except OSError as exc:
            self.logger.warning("WARNING: rotation stopped early: %s", exc)

    # ------------------------------------------------------------------
    def _publish(self, backup_dir: Path, timestamp: str) -> None:
        git = self.config.git
        publisher = GitPublisher(
            git=self.config.tools.git,
            remote=git.remote,
            branch=git.branch,
            commit_message=git.commit_message,
        )
        self.publish_result = publisher.publish(backup_dir, timestamp)

    # ------------------------------------------------------------------
    def _run_tool(
        self,
        command: Sequence[str],
        *,
        stdout: IO[bytes],
        cwd: Optional[Path] = None,
        env: Optional[Dict[str, str]] = None,
        secrets: Sequence[str] = (),
    ) -> bool:
        try:
            result = subprocess.run(
                list(command),
                stdout=stdout,
                stderr=subprocess.PIPE,
                cwd=cwd,
                env=env,
            )
        except OSError as exc:
            self.logger.error("Cannot execute '%s': %s", command[0], exc)
            return False
        stderr = result.stderr.decode("utf-8", errors="replace").strip()
        if stderr:
            self.logger.warning("STDERR: %s", mask_sensitive(stderr, secrets))
        if result.returncode != 0:
            self.logger.debug("'%s' exited with code %d.", command[0], result.returncode)
            return False
        return True

    # ------------------------------------------------------------------
    def _install_signal_handlers(self) -> Dict[int, object]:
        if threading.current_thread() is not threading.main_thread():
            return {}
        previous: Dict[int, object] = {}
        for signum in HANDLED_SIGNALS:
            previous[signum] = signal.signal(signum, self._handle_signal)
        return previous

    @staticmethod
    def _restore_signal_handlers(previous: Dict[int, object]) -> None:
        for signum, handler in previous.items():
            # None means the handler was not installed from Python
            signal.signal(signum, handler if handler is not None else signal.SIG_DFL)

    @staticmethod
    def _handle_signal(signum, frame) -> None:
        raise RunInterrupted(signum)


__all__ = [
    "BackupError",
    "BackupRunner",
    "CompressionError",
    "DumpError",
    "ExitCode",
    "MissingToolError",
    "RunInterrupted",
]
