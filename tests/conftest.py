"""
Shared fixtures for the backup runner tests.

External programs are replaced by tiny shell scripts written into the test's
temporary directory. Real ``gzip``, ``sha256sum`` and ``git`` are used where
the host provides them.
"""

import os
import shutil
import time
from pathlib import Path

import pytest

from mysqlbackup.config import BackupConfig, DumpConfig, ToolsConfig

DAY = 86400

requires_coreutils = pytest.mark.skipif(
    shutil.which("gzip") is None or shutil.which("sha256sum") is None,
    reason="gzip and sha256sum are required",
)
requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git is required")


def make_tool(directory: Path, name: str, body: str) -> str:
    """Write an executable ``/bin/sh`` script and return its absolute path."""
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / name
    path.write_text("#!/bin/sh\n" + body + "\n")
    path.chmod(0o755)
    return str(path)


def touch_aged(path: Path, days: float, content: str = "x") -> Path:
    """Create *path* with a modification time *days* in the past."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    stamp = time.time() - days * DAY
    os.utime(path, (stamp, stamp))
    return path


@pytest.fixture
def bin_dir(tmp_path):
    return tmp_path / "bin"


@pytest.fixture
def fake_mysqldump(bin_dir):
    return make_tool(
        bin_dir,
        "mysqldump",
        'for last; do :; done\n'
        'echo "-- MySQL dump of $last"\n'
        'echo "CREATE TABLE t (id INT);"',
    )


@pytest.fixture
def config(tmp_path, fake_mysqldump):
    return BackupConfig(
        project_name="demo",
        database_name="demo",
        backup_directory=str(tmp_path / "backups"),
        log_file=str(tmp_path / "logs" / "backup.log"),
        retention_days=30,
        lock_file=str(tmp_path / "lock" / "backup_demo.lock"),
        dump=DumpConfig(options=["--single-transaction", "--quick"]),
        tools=ToolsConfig(mysqldump=fake_mysqldump),
    )


@pytest.fixture
def log_lines(config):
    def read():
        path = config.log_path
        if not path.exists():
            return []
        return path.read_text().splitlines()

    return read
