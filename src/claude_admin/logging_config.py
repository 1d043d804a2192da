"""Logging configuration and error types for Claude Admin.

Module loggers live under the ``claude_admin`` namespace. Handlers are
attached once to the package logger by :func:`configure_logging`, which
the daemon calls at startup; library code only calls :func:`get_logger`.
"""

import logging
import sys
from pathlib import Path

PACKAGE_LOGGER = "claude_admin"

LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance.

    Args:
        name: Logger name (typically __name__ of the calling module)

    Returns:
        Logger that propagates to the package logger
    """
    return logging.getLogger(name)


def configure_logging(
    level: int = logging.INFO,
    log_file: Path | None = None,
    console: bool = False,
) -> logging.Logger:
    """Attach file and optional stderr handlers to the package logger.

    Calling this again replaces the handlers installed by a previous call.
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(level)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if console:
        stream_handler = logging.StreamHandler(sys.stderr)
        stream_handler.setLevel(level)
        stream_handler.setFormatter(formatter)
        logger.addHandler(stream_handler)

    return logger


class AdminError(Exception):
    """Base exception for Claude Admin errors."""

    pass


class ConfigError(AdminError):
    """Invalid configuration value."""

    pass


class TmuxError(AdminError):
    """Error related to tmux operations."""

    def __init__(self, message: str, locator: str | None = None):
        super().__init__(message)
        self.locator = locator


class PaneNotFoundError(TmuxError):
    """The targeted pane does not exist."""

    pass


class StoreError(AdminError):
    """Error reading or writing the session database."""

    pass


class SessionNotFound(AdminError):
    """A requested session identity or locator does not resolve."""

    pass


class ProtocolError(AdminError):
    """Malformed message on an IPC channel."""

    pass


class DaemonAlreadyRunning(AdminError):
    """Another daemon process holds the pid file."""

    def __init__(self, pid: int):
        super().__init__(f"daemon already running with PID {pid}")
        self.pid = pid
