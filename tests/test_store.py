"""Tests for SessionStore."""

import sqlite3
from datetime import timedelta

import pytest
from conftest import START, make_pane

from claude_admin.logging_config import StoreError
from claude_admin.session.models import (
    DetectionMethod,
    EventKind,
    PaneLocator,
    SessionState,
)
from claude_admin.session.store import SessionStore, normalize_dir


def later(seconds: float):
    return START + timedelta(seconds=seconds)


@pytest.fixture
def session(store):
    return store.create_session(make_pane(), SessionState.IDLE, START, output="> ")


class TestSchema:
    """Tests for database setup."""

    def test_wal_mode(self, store):
        """Store should run in write-ahead-log mode."""
        assert store.journal_mode() == "wal"

    def test_indexes_exist(self, store):
        conn = sqlite3.connect(str(store.path))
        try:
            names = {
                row[0]
                for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'index'")
            }
        finally:
            conn.close()
        assert {
            "idx_sessions_state",
            "idx_sessions_working_dir",
            "idx_events_session_id",
            "idx_events_timestamp",
        } <= names

    def test_data_survives_reopen(self, tmp_path):
        """Committed sessions are visible to a new store on the same file."""
        path = tmp_path / "sessions.db"
        first = SessionStore(path)
        created = first.create_session(make_pane(), SessionState.WORKING, START)
        first.close()

        second = SessionStore(path)
        try:
            loaded = second.get_session(created.id)
        finally:
            second.close()
        assert loaded == created

    def test_adds_digest_column_to_old_database(self, tmp_path):
        """A sessions table without output_digest gains the column on open."""
        path = tmp_path / "sessions.db"
        conn = sqlite3.connect(str(path))
        conn.execute(
            "CREATE TABLE sessions (id TEXT PRIMARY KEY, pane_locator TEXT NOT NULL UNIQUE, "
            "pane_id TEXT NOT NULL DEFAULT '', session_name TEXT NOT NULL, "
            "window_index INTEGER NOT NULL, pane_index INTEGER NOT NULL, "
            "working_dir TEXT NOT NULL, process_name TEXT NOT NULL DEFAULT '', "
            "state TEXT NOT NULL DEFAULT 'idle', detection_method TEXT NOT NULL, "
            "last_output TEXT NOT NULL DEFAULT '', last_activity REAL NOT NULL, "
            "created_at REAL NOT NULL, updated_at REAL NOT NULL)"
        )
        conn.commit()
        conn.close()

        store = SessionStore(path)
        try:
            created = store.create_session(
                make_pane(), SessionState.IDLE, START, digest="abc"
            )
            assert store.get_session(created.id).output_digest == "abc"
        finally:
            store.close()

    def test_unopenable_path(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")
        with pytest.raises(StoreError):
            SessionStore(blocker / "sessions.db")


class TestNormalizeDir:
    def test_trailing_slash(self):
        assert normalize_dir("/repo/") == "/repo"
        assert normalize_dir("/repo//") == "/repo"

    def test_root_and_empty(self):
        assert normalize_dir("/") == "/"
        assert normalize_dir("") == ""


class TestCreateSession:
    """Tests for poll-discovered session creation."""

    def test_create_session(self, store, session):
        """Should persist the session and write one discovery event."""
        assert session.detection_method == DetectionMethod.POLL
        assert session.state == SessionState.IDLE
        assert session.last_output == "> "
        assert session.created_at == START
        assert store.get_session(session.id) == session

        events = store.recent_events(session.id)
        assert [e.kind for e in events] == [EventKind.SESSION_DISCOVERED]
        assert events[0].payload["pane_locator"] == "main:0.0"
        assert events[0].payload["working_dir"] == "/repo"

    def test_working_dir_normalized(self, store):
        created = store.create_session(
            make_pane(locator="dev:1", working_dir="/repo/"), SessionState.IDLE, START
        )
        assert created.working_dir == "/repo"

    def test_duplicate_locator(self, store, session):
        """A second session for the same pane is refused without side effects."""
        again = store.create_session(make_pane(), SessionState.WORKING, later(1))

        assert again is None
        assert len(store.list_sessions()) == 1
        assert len(store.recent_events()) == 1

    def test_failed_event_write_rolls_back(self, store, monkeypatch):
        """Session row and discovery event commit together or not at all."""

        def fail(*args, **kwargs):
            raise sqlite3.OperationalError("disk I/O error")

        monkeypatch.setattr(store, "_insert_event", fail)

        with pytest.raises(StoreError):
            store.create_session(make_pane(), SessionState.IDLE, START)

        monkeypatch.undo()
        assert store.list_sessions() == []
        assert store.recent_events() == []


class TestLookups:
    """Tests for session lookups."""

    def test_get_missing(self, store):
        assert store.get_session("nope") is None

    def test_by_locator(self, store, session):
        """The pane index defaults to 0 when omitted."""
        assert store.get_session_by_locator("main:0").id == session.id
        assert store.get_session_by_locator(PaneLocator.parse("main:0.0")).id == session.id
        assert store.get_session_by_locator("main:1") is None

    def test_by_locator_invalid(self, store):
        with pytest.raises(ValueError):
            store.get_session_by_locator("not-a-locator")

    def test_by_working_dir_prefers_recent(self, store):
        """Several sessions in one directory resolve to the most recently updated."""
        older = store.create_session(make_pane("a:0"), SessionState.IDLE, START)
        newer = store.create_session(make_pane("b:0"), SessionState.IDLE, later(1))
        assert store.find_by_working_dir("/repo").id == newer.id

        store.apply_state(older.id, SessionState.WORKING, DetectionMethod.PUSH, later(5))
        assert store.find_by_working_dir("/repo/").id == older.id

    def test_by_working_dir_exact_only(self, store, session):
        assert store.find_by_working_dir("/repo/sub") is None
        assert store.find_by_working_dir("/rep") is None

    def test_list_filtered_by_state(self, store):
        store.create_session(make_pane("a:0"), SessionState.IDLE, START)
        working = store.create_session(make_pane("b:0"), SessionState.WORKING, later(1))

        assert [s.id for s in store.list_sessions(SessionState.WORKING)] == [working.id]
        assert len(store.list_sessions()) == 2


class TestApplyState:
    """Tests for the shared state mutation path."""

    def test_push_applies(self, store, session):
        """Push updates state, method and activity and logs the change."""
        transition = store.apply_state(
            session.id, SessionState.WORKING, DetectionMethod.PUSH, later(2)
        )

        assert transition.changed
        updated = store.get_session(session.id)
        assert updated.state == SessionState.WORKING
        assert updated.detection_method == DetectionMethod.PUSH
        assert updated.updated_at == later(2)
        assert updated.last_activity == later(2)

        event = store.recent_events(session.id)[0]
        assert event.kind == EventKind.STATE_CHANGED
        assert event.payload == {"from": "idle", "to": "working", "source": "push"}

    def test_push_same_state_refreshes_only(self, store, session):
        """A push repeating the current state writes no state change."""
        store.apply_state(session.id, SessionState.WORKING, DetectionMethod.PUSH, later(1))
        transition = store.apply_state(
            session.id, SessionState.WORKING, DetectionMethod.PUSH, later(3)
        )

        assert transition.applied
        assert not transition.changed
        assert store.get_session(session.id).updated_at == later(3)
        kinds = [e.kind for e in store.recent_events(session.id)]
        assert kinds.count(EventKind.STATE_CHANGED) == 1

    def test_poll_deferred_to_recent_push(self, store, session):
        """Poll cannot overwrite a push inside the staleness window."""
        store.apply_state(session.id, SessionState.WORKING, DetectionMethod.PUSH, later(1))

        transition = store.apply_state(
            session.id,
            SessionState.IDLE,
            DetectionMethod.POLL,
            later(5),
            staleness_window=10,
            output="plain",
        )

        assert not transition.applied
        assert transition.current == SessionState.WORKING
        updated = store.get_session(session.id)
        assert updated.state == SessionState.WORKING
        assert updated.detection_method == DetectionMethod.PUSH
        assert updated.last_output == "plain"

    def test_poll_after_window(self, store, session):
        store.apply_state(session.id, SessionState.WORKING, DetectionMethod.PUSH, later(1))

        transition = store.apply_state(
            session.id, SessionState.IDLE, DetectionMethod.POLL, later(12), staleness_window=10
        )

        assert transition.changed
        updated = store.get_session(session.id)
        assert updated.state == SessionState.IDLE
        assert updated.detection_method == DetectionMethod.POLL

    def test_poll_same_state_writes_nothing(self, store, session):
        transition = store.apply_state(
            session.id, SessionState.IDLE, DetectionMethod.POLL, later(30)
        )

        assert not transition.changed
        assert store.get_session(session.id).updated_at == START
        assert len(store.recent_events(session.id)) == 1

    def test_activity_never_moves_backwards(self, store, session):
        store.apply_state(
            session.id,
            SessionState.IDLE,
            DetectionMethod.POLL,
            later(30),
            activity_at=START - timedelta(seconds=60),
        )
        assert store.get_session(session.id).last_activity == START

    def test_poll_records_digest(self, store, session):
        store.apply_state(
            session.id,
            SessionState.IDLE,
            DetectionMethod.POLL,
            later(30),
            output="> ",
            digest="d1",
        )
        updated = store.get_session(session.id)
        assert updated.output_digest == "d1"
        assert updated.updated_at == START

    def test_missing_session(self, store):
        assert store.apply_state("nope", SessionState.DONE, DetectionMethod.PUSH, START) is None


class TestRecordHook:
    """Tests for hook ledger writes."""

    def test_orphan_hook(self, store, session):
        """An unresolved hook writes one ledger entry and touches no session."""
        event, transition = store.record_hook(
            None, "PostToolUse", SessionState.WORKING, {"cwd": "/elsewhere"}, later(1)
        )

        assert transition is None
        assert event.session_id is None
        assert event.kind == EventKind.HOOK_RECEIVED
        assert event.payload["orphaned"] is True
        assert event.payload["hook_type"] == "PostToolUse"
        assert store.get_session(session.id) == session
        assert len(store.list_sessions()) == 1

    def test_unknown_session_id_is_orphan(self, store):
        event, transition = store.record_hook(
            "ghost", "Stop", SessionState.DONE, {}, START
        )
        assert event.session_id is None
        assert transition is None

    def test_hook_applies_push(self, store, session):
        event, transition = store.record_hook(
            session.id, "Stop", SessionState.DONE, {"cwd": "/repo"}, later(2)
        )

        assert event.session_id == session.id
        assert transition.changed
        kinds = [e.kind for e in store.recent_events(session.id)]
        assert kinds == [
            EventKind.STATE_CHANGED,
            EventKind.HOOK_RECEIVED,
            EventKind.SESSION_DISCOVERED,
        ]

    def test_hook_without_state_refreshes_activity(self, store, session):
        _, transition = store.record_hook(session.id, "SessionStart", None, {}, later(4))

        assert transition is None
        updated = store.get_session(session.id)
        assert updated.state == SessionState.IDLE
        assert updated.last_activity == later(4)
        assert updated.updated_at == START

    def test_payload_cannot_override_hook_type(self, store, session):
        event, _ = store.record_hook(
            session.id, "Stop", None, {"hook_type": "forged"}, later(1)
        )
        assert event.payload["hook_type"] == "Stop"


class TestDeleteSession:
    """Tests for session removal."""

    def test_delete_writes_removed_event(self, store, session):
        assert store.delete_session(session.id, later(1))

        assert store.get_session(session.id) is None
        event = store.recent_events(session.id)[0]
        assert event.kind == EventKind.SESSION_REMOVED
        assert event.payload["last_state"] == "idle"
        assert event.payload["pane_locator"] == "main:0.0"

    def test_delete_missing(self, store):
        assert store.delete_session("nope", START) is False
        assert store.recent_events() == []

    def test_locator_reusable_after_delete(self, store, session):
        store.delete_session(session.id, later(1))
        again = store.create_session(make_pane(), SessionState.IDLE, later(2))
        assert again is not None
        assert again.id != session.id


class TestEvents:
    """Tests for ledger reads and pruning."""

    def test_newest_first_with_limit(self, store, session):
        for i, state in enumerate([SessionState.WORKING, SessionState.NEEDS_INPUT], start=1):
            store.apply_state(session.id, state, DetectionMethod.PUSH, later(i))

        events = store.recent_events(limit=2)
        assert [e.payload.get("to") for e in events] == ["needs_input", "working"]
        assert events[0].timestamp >= events[1].timestamp

    def test_filtered_by_session(self, store, session):
        other = store.create_session(make_pane("b:0"), SessionState.IDLE, later(1))
        assert {e.session_id for e in store.recent_events(other.id)} == {other.id}

    def test_zero_limit(self, store, session):
        assert store.recent_events(limit=0) == []

    def test_prune(self, store, session):
        store.apply_state(session.id, SessionState.WORKING, DetectionMethod.PUSH, later(100))

        assert store.prune_events(later(50)) == 1
        assert [e.kind for e in store.recent_events()] == [EventKind.STATE_CHANGED]
