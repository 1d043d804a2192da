"""Single-instance guard for the daemon."""

import os
from pathlib import Path

from .logging_config import DaemonAlreadyRunning, get_logger

logger = get_logger(__name__)


def is_process_running(pid: int) -> bool:
    """Check for a live process without signalling it."""
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True  # Exists, owned by someone else
    return True


def read_pid(path: Path) -> int | None:
    try:
        return int(path.read_text().strip())
    except (OSError, ValueError):
        return None


class PidFile:
    """Writes the current pid on acquire and removes it on release."""

    def __init__(self, path: Path):
        self.path = path
        self.acquired = False

    def acquire(self) -> "PidFile":
        if self.path.exists():
            existing = read_pid(self.path)
            if existing is not None and existing != os.getpid() and is_process_running(existing):
                raise DaemonAlreadyRunning(existing)
            logger.warning(f"Removing stale PID file {self.path} (pid {existing})")
            self.path.unlink(missing_ok=True)

        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w") as f:
            f.write(f"{os.getpid()}\n")
            f.flush()
            os.fsync(f.fileno())
        self.acquired = True
        logger.info(f"PID file created at {self.path} (pid {os.getpid()})")
        return self

    def release(self) -> None:
        if not self.acquired:
            return
        try:
            self.path.unlink(missing_ok=True)
            logger.info(f"PID file removed from {self.path}")
        except OSError as e:
            logger.error(f"Failed to remove PID file {self.path}: {e}")
        self.acquired = False

    def __enter__(self) -> "PidFile":
        return self.acquire()

    def __exit__(self, *exc) -> None:
        self.release()
