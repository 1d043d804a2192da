"""Tests for the daemon PID file."""

import os
from unittest.mock import patch

import pytest

from claude_admin.logging_config import DaemonAlreadyRunning
from claude_admin.pidfile import PidFile, is_process_running, read_pid


class TestPidFile:
    """Tests for single-instance locking."""

    def test_acquire_and_release(self, tmp_path):
        path = tmp_path / "run" / "daemon.pid"

        with PidFile(path):
            assert read_pid(path) == os.getpid()

        assert not path.exists()

    def test_stale_file_replaced(self, tmp_path):
        path = tmp_path / "daemon.pid"
        path.write_text("999999\n")

        with patch("claude_admin.pidfile.is_process_running", return_value=False):
            pid_file = PidFile(path).acquire()

        assert read_pid(path) == os.getpid()
        pid_file.release()

    def test_garbage_file_replaced(self, tmp_path):
        path = tmp_path / "daemon.pid"
        path.write_text("not a pid")

        with PidFile(path):
            assert read_pid(path) == os.getpid()

    def test_running_daemon_refused(self, tmp_path):
        """A live process in the PID file blocks a second daemon."""
        path = tmp_path / "daemon.pid"
        path.write_text("4321\n")

        with patch("claude_admin.pidfile.is_process_running", return_value=True):
            with pytest.raises(DaemonAlreadyRunning) as excinfo:
                PidFile(path).acquire()

        assert excinfo.value.pid == 4321
        assert read_pid(path) == 4321

    def test_release_without_acquire(self, tmp_path):
        path = tmp_path / "daemon.pid"
        path.write_text("4321\n")
        PidFile(path).release()
        assert path.exists()


class TestProcessCheck:
    def test_current_process(self):
        assert is_process_running(os.getpid())

    def test_invalid_pid(self):
        assert not is_process_running(0)
        assert not is_process_running(-5)
