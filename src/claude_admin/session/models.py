"""Session data models."""

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SessionState(str, Enum):
    """Possible states for a Claude Code session."""

    IDLE = "idle"  # No recognizable signal
    WORKING = "working"  # Tool calls or streaming output
    NEEDS_INPUT = "needs_input"  # Prompt waiting on the user
    DONE = "done"  # Process reported completion or exit


class DetectionMethod(str, Enum):
    """Which update path last set a session's state."""

    PUSH = "push"  # Hook notification from the process itself
    POLL = "poll"  # Pane capture classified by the reconciler


_LOCATOR_RE = re.compile(r"^(?P<session>.+):(?P<window>\d+)(?:\.(?P<pane>\d+))?$")


class PaneLocator(BaseModel):
    """Where a monitored process runs: tmux session name plus window/pane index."""

    model_config = ConfigDict(frozen=True)

    session_name: str
    window_index: int = 0
    pane_index: int = 0

    @classmethod
    def parse(cls, value: str) -> "PaneLocator":
        """Parse ``session:window.pane``; the pane index defaults to 0."""
        match = _LOCATOR_RE.match(value.strip())
        if not match:
            raise ValueError(f"invalid pane locator: {value!r}")
        return cls(
            session_name=match["session"],
            window_index=int(match["window"]),
            pane_index=int(match["pane"] or 0),
        )

    def __str__(self) -> str:
        return f"{self.session_name}:{self.window_index}.{self.pane_index}"


class PaneInfo(BaseModel):
    """One live pane as reported by a pane source."""

    locator: PaneLocator
    process_name: str = ""
    pid: int | None = None
    working_dir: str = ""
    pane_id: str = ""


class Session(BaseModel):
    """A tracked Claude Code instance running in a tmux pane."""

    id: str
    locator: PaneLocator
    pane_id: str = ""
    working_dir: str
    process_name: str = ""
    state: SessionState = SessionState.IDLE
    detection_method: DetectionMethod = DetectionMethod.POLL
    last_output: str = ""
    output_digest: str = ""
    last_activity: datetime = Field(default_factory=utc_now)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def display_name(self) -> str:
        """Short display name for the session."""
        return self.working_dir.rstrip("/").rsplit("/", 1)[-1] or str(self.locator)


class EventKind(str, Enum):
    """Kinds of ledger entries."""

    SESSION_DISCOVERED = "session_discovered"
    SESSION_REMOVED = "session_removed"
    STATE_CHANGED = "state_changed"
    HOOK_RECEIVED = "hook_received"


class Event(BaseModel):
    """An immutable ledger record. ``session_id`` is None for orphaned hooks."""

    id: int
    session_id: str | None = None
    kind: EventKind
    payload: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime


class StateTransition(BaseModel):
    """Outcome of a state write attempted through the store."""

    session_id: str
    previous: SessionState
    current: SessionState
    source: DetectionMethod
    applied: bool

    @property
    def changed(self) -> bool:
        return self.applied and self.previous != self.current
