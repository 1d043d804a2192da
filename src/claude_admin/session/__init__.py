"""Session tracking: models, store, discovery and reconciliation."""

from .models import (
    DetectionMethod,
    Event,
    EventKind,
    PaneInfo,
    PaneLocator,
    Session,
    SessionState,
    StateTransition,
)
from .store import SessionStore

__all__ = [
    "DetectionMethod",
    "Event",
    "EventKind",
    "PaneInfo",
    "PaneLocator",
    "Session",
    "SessionState",
    "SessionStore",
    "StateTransition",
]
