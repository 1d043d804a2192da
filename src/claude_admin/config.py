"""Configuration constants and paths."""

import logging
from pathlib import Path

from pydantic import BaseModel, Field

from .logging_config import ConfigError

# Base directory for all claude-admin data
DATA_DIR = Path.home() / ".claude-admin"
DB_FILE = DATA_DIR / "sessions.db"
LOG_FILE = DATA_DIR / "daemon.log"
PID_FILE = DATA_DIR / "daemon.pid"
QUERY_SOCKET = DATA_DIR / "daemon.sock"
HOOK_SOCKET = DATA_DIR / "hooks.sock"

# Reconciliation timing
POLL_INTERVAL_SECONDS = 5.0
STALENESS_WINDOW_SECONDS = 10.0
IDLE_THRESHOLD_SECONDS = 5.0  # Quiet period before a prompt counts as needs-input

# Pane capture
CLASSIFIER_WINDOW_LINES = 20
CAPTURE_LINES = 50
OUTPUT_SNIPPET_CHARS = 200

# Consecutive tick-level store failures before the daemon gives up
MAX_STORE_FAILURES = 5

DEFAULT_EVENT_LIMIT = 50

# Largest single IPC line; PostToolUse payloads carry whole tool responses
MAX_MESSAGE_BYTES = 16 * 1024 * 1024

LOG_LEVELS = {
    "trace": logging.DEBUG,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def parse_log_level(value: str) -> int:
    """Map a case-insensitive level name to a logging level."""
    try:
        return LOG_LEVELS[value.lower()]
    except KeyError:
        raise ConfigError(f"invalid log level: {value}") from None


def expand_tilde(path: str | Path) -> Path:
    return Path(path).expanduser()


class DaemonConfig(BaseModel):
    """Effective settings for one daemon run."""

    log_level: int = logging.INFO
    log_file: Path = LOG_FILE
    db_path: Path = DB_FILE
    pid_file: Path = PID_FILE
    socket_path: Path = QUERY_SOCKET
    hook_socket_path: Path = HOOK_SOCKET
    poll_interval: float = Field(default=POLL_INTERVAL_SECONDS, gt=0)
    staleness_window: float = Field(default=STALENESS_WINDOW_SECONDS, ge=0)
    idle_threshold: float = Field(default=IDLE_THRESHOLD_SECONDS, ge=0)
    event_retention_days: float | None = None
    max_store_failures: int = Field(default=MAX_STORE_FAILURES, ge=1)
    console: bool = False

    @property
    def data_dir(self) -> Path:
        return self.db_path.parent

    @classmethod
    def from_args(cls, args) -> "DaemonConfig":
        """Build a config from an argparse namespace, falling back to defaults."""
        values: dict = {"log_level": parse_log_level(getattr(args, "log_level", "info"))}
        for name in ("log_file", "db_path", "pid_file", "socket_path", "hook_socket_path"):
            raw = getattr(args, name, None)
            if raw:
                values[name] = expand_tilde(raw)
        for name in ("poll_interval", "staleness_window", "event_retention_days"):
            raw = getattr(args, name, None)
            if raw is not None:
                values[name] = raw
        values["console"] = bool(getattr(args, "foreground", False))
        return cls(**values)

    def ensure_dirs(self) -> None:
        """Create the directories holding every configured path."""
        paths = (
            self.log_file,
            self.db_path,
            self.pid_file,
            self.socket_path,
            self.hook_socket_path,
        )
        for path in paths:
            path.parent.mkdir(parents=True, exist_ok=True)
