"""Precedence between the push (hook) and poll (pane capture) update paths.

Pushes are ground truth signalled by the process itself and always apply.
A poll-derived state may only replace a push-derived one once the push
has aged past the staleness window; otherwise the poll would be acting
on output the push already superseded.
"""

from datetime import datetime, timedelta

from .models import DetectionMethod, Session


def within_window(session: Session, at: datetime, staleness_window: float) -> bool:
    """Whether the session's last state write is younger than the window."""
    return at - session.updated_at < timedelta(seconds=staleness_window)


def is_protected_push(session: Session, at: datetime, staleness_window: float) -> bool:
    return session.detection_method == DetectionMethod.PUSH and within_window(
        session, at, staleness_window
    )


def may_apply(
    session: Session,
    source: DetectionMethod,
    at: datetime,
    staleness_window: float,
) -> bool:
    """Decide whether an update from ``source`` may overwrite ``session``'s state."""
    if source == DetectionMethod.PUSH:
        return True
    return not is_protected_push(session, at, staleness_window)


def needs_reclassification(session: Session, at: datetime, staleness_window: float) -> bool:
    """Stale-state pass filter: old enough and not shielded by a recent push.

    Every push refreshes ``updated_at``, so a session outside the window
    cannot be carrying a recent push.
    """
    return not within_window(session, at, staleness_window)
