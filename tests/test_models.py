"""Tests for session data models."""

import pytest

from claude_admin.session.models import (
    DetectionMethod,
    PaneLocator,
    Session,
    SessionState,
    StateTransition,
)


class TestPaneLocator:
    """Tests for pane locator parsing."""

    def test_parse_full(self):
        locator = PaneLocator.parse("main:1.2")
        assert locator == PaneLocator(session_name="main", window_index=1, pane_index=2)

    def test_pane_defaults_to_zero(self):
        """``main:0`` means pane 0 of window 0."""
        assert PaneLocator.parse("main:0") == PaneLocator.parse("main:0.0")

    def test_session_name_with_colon(self):
        assert PaneLocator.parse("work:api:3").session_name == "work:api"

    def test_str(self):
        assert str(PaneLocator.parse("main:0")) == "main:0.0"

    @pytest.mark.parametrize("value", ["", "main", "main:", ":1", "main:x", "main:1.y"])
    def test_invalid(self, value):
        with pytest.raises(ValueError):
            PaneLocator.parse(value)

    def test_hashable(self):
        assert len({PaneLocator.parse("a:0"), PaneLocator.parse("a:0.0")}) == 1


class TestSession:
    def test_display_name(self):
        session = Session(id="s", locator=PaneLocator.parse("main:0"), working_dir="/home/u/repo/")
        assert session.display_name == "repo"

    def test_display_name_falls_back_to_locator(self):
        session = Session(id="s", locator=PaneLocator.parse("main:0"), working_dir="")
        assert session.display_name == "main:0.0"

    def test_enum_values(self):
        assert SessionState.NEEDS_INPUT.value == "needs_input"
        assert DetectionMethod.PUSH.value == "push"


class TestStateTransition:
    def test_changed_requires_applied(self):
        deferred = StateTransition(
            session_id="s",
            previous=SessionState.WORKING,
            current=SessionState.IDLE,
            source=DetectionMethod.POLL,
            applied=False,
        )
        assert not deferred.changed

    def test_same_state_not_changed(self):
        same = StateTransition(
            session_id="s",
            previous=SessionState.WORKING,
            current=SessionState.WORKING,
            source=DetectionMethod.PUSH,
            applied=True,
        )
        assert not same.changed
