"""Shared fixtures for the claude-admin test suite."""

from datetime import datetime, timedelta, timezone

import pytest

from claude_admin.session.models import PaneInfo, PaneLocator
from claude_admin.session.store import SessionStore
from claude_admin.tmux.source import StaticPaneSource

START = datetime(2026, 1, 5, 9, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced clock passed wherever a ``clock`` callable is accepted."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now


def make_pane(
    locator: str = "main:0",
    working_dir: str = "/repo",
    process_name: str = "claude",
    pane_id: str = "%1",
) -> PaneInfo:
    return PaneInfo(
        locator=PaneLocator.parse(locator),
        process_name=process_name,
        pid=4242,
        working_dir=working_dir,
        pane_id=pane_id,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(tmp_path):
    """A fresh on-disk store, closed after the test."""
    s = SessionStore(tmp_path / "sessions.db")
    yield s
    s.close()


@pytest.fixture
def source():
    return StaticPaneSource()
