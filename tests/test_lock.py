"""
Tests for the single-instance run lock.
"""

import pytest

from mysqlbackup.lock import LockUnavailable, RunLock


def test_acquire_creates_and_release_removes_file(tmp_path):
    path = tmp_path / "locks" / "backup_demo.lock"
    lock = RunLock(path).acquire()
    assert lock.held
    assert path.exists()

    lock.release()
    assert not lock.held
    assert not path.exists()


def test_second_lock_on_same_path_is_refused(tmp_path):
    path = tmp_path / "backup_demo.lock"
    with RunLock(path):
        with pytest.raises(LockUnavailable):
            RunLock(path).acquire()


def test_lock_can_be_taken_again_after_release(tmp_path):
    path = tmp_path / "backup_demo.lock"
    with RunLock(path):
        pass
    with RunLock(path) as lock:
        assert lock.held


def test_stale_lock_file_does_not_block(tmp_path):
    path = tmp_path / "backup_demo.lock"
    path.write_text("")
    with RunLock(path) as lock:
        assert lock.held


def test_release_is_idempotent(tmp_path):
    lock = RunLock(tmp_path / "backup_demo.lock").acquire()
    lock.release()
    lock.release()
    assert not lock.held


def test_different_projects_do_not_conflict(tmp_path):
    with RunLock(tmp_path / "backup_one.lock"), RunLock(tmp_path / "backup_two.lock") as second:
        assert second.held
