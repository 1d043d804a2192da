"""Push path: Claude Code hook notifications mapped to state transitions.

Hooks never create sessions; only discovery does, because only discovery
can see that a pane exists. A hook that cannot be matched to a session is
still written to the ledger, without a session reference.
"""

from datetime import datetime
from typing import Callable

from ..logging_config import get_logger
from ..ipc.protocol import HookNotification, HookReceipt
from ..session.models import Session, SessionState, utc_now
from ..session.store import SessionStore

logger = get_logger(__name__)

# Hook kind -> inferred state; None only refreshes activity.
HOOK_STATES: dict[str, SessionState | None] = {
    "SessionStart": None,
    "UserPromptSubmit": SessionState.WORKING,
    "PreToolUse": SessionState.WORKING,
    "PostToolUse": SessionState.WORKING,
    "SubagentStop": SessionState.WORKING,
    "Notification": SessionState.NEEDS_INPUT,
    "Stop": SessionState.DONE,
    "SessionEnd": SessionState.DONE,
}


def infer_state(kind: str) -> SessionState | None:
    return HOOK_STATES.get(kind)


class EventIngress:
    """Resolves hook notifications to sessions and records them as pushes."""

    def __init__(self, store: SessionStore, clock: Callable[[], datetime] = utc_now):
        self.store = store
        self.clock = clock

    def resolve(self, notification: HookNotification) -> Session | None:
        """Match by session identity first, then by working directory."""
        if notification.session_id:
            session = self.store.get_session(notification.session_id)
            if session is not None:
                return session
        if notification.cwd:
            return self.store.find_by_working_dir(notification.cwd)
        return None

    def handle(self, notification: HookNotification) -> HookReceipt:
        session = self.resolve(notification)
        state = infer_state(notification.kind)
        payload = {
            "cwd": notification.cwd,
            "sent_at": notification.timestamp.isoformat(),
            "data": {**(notification.model_extra or {}), **notification.data},
        }
        if notification.session_id:
            payload["claimed_session_id"] = notification.session_id

        event, transition = self.store.record_hook(
            session.id if session else None,
            notification.kind,
            state,
            payload,
            self.clock(),
        )

        if event.session_id is None:
            logger.warning(
                f"Orphaned {notification.kind} hook from {notification.cwd or '(no cwd)'}"
            )
            return HookReceipt(resolved=False)

        logger.debug(f"{notification.kind} hook for session {event.session_id}")
        return HookReceipt(
            resolved=True,
            session_id=event.session_id,
            state=transition.current if transition else session.state,
            changed=bool(transition and transition.changed),
        )
