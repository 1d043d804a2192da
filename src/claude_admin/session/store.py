"""Durable session table and append-only event ledger.

The store is the single source of truth for session state. Every public
method runs under one lock and, for writes, one sqlite transaction that
also carries the ledger rows describing the change, so a crash never
leaves a session updated without its event (or the reverse).
"""

import json
import sqlite3
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator

from ..config import DEFAULT_EVENT_LIMIT, STALENESS_WINDOW_SECONDS
from ..logging_config import StoreError, get_logger
from . import arbiter
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

logger = get_logger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS sessions (
    id TEXT PRIMARY KEY,
    pane_locator TEXT NOT NULL UNIQUE,
    pane_id TEXT NOT NULL DEFAULT '',
    session_name TEXT NOT NULL,
    window_index INTEGER NOT NULL,
    pane_index INTEGER NOT NULL,
    working_dir TEXT NOT NULL,
    process_name TEXT NOT NULL DEFAULT '',
    state TEXT NOT NULL DEFAULT 'idle',
    detection_method TEXT NOT NULL,
    last_output TEXT NOT NULL DEFAULT '',
    output_digest TEXT NOT NULL DEFAULT '',
    last_activity REAL NOT NULL,
    created_at REAL NOT NULL,
    updated_at REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id TEXT,
    kind TEXT NOT NULL,
    payload TEXT NOT NULL DEFAULT '{}',
    timestamp REAL NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_sessions_state ON sessions(state);
CREATE INDEX IF NOT EXISTS idx_sessions_working_dir ON sessions(working_dir);
CREATE INDEX IF NOT EXISTS idx_events_session_id ON events(session_id);
CREATE INDEX IF NOT EXISTS idx_events_timestamp ON events(timestamp);
"""

SESSION_COLUMNS = (
    "id, pane_locator, pane_id, session_name, window_index, pane_index, "
    "working_dir, process_name, state, detection_method, last_output, "
    "output_digest, last_activity, created_at, updated_at"
)


def _ts(value: datetime) -> float:
    return value.timestamp()


def _dt(value: float) -> datetime:
    return datetime.fromtimestamp(value, tz=timezone.utc)


def normalize_dir(path: str) -> str:
    """Strip trailing slashes so ``/repo/`` and ``/repo`` compare equal."""
    path = path.strip()
    if not path:
        return ""
    return path.rstrip("/") or "/"


class SessionStore:
    """SQLite-backed sessions and events, safe to share across threads."""

    def __init__(self, db_path: str | Path):
        self.path = Path(db_path)
        self._lock = threading.RLock()
        self._conn = self._connect()
        self._init_schema()

    def _connect(self) -> sqlite3.Connection:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(
                str(self.path),
                timeout=30,
                isolation_level=None,
                check_same_thread=False,
            )
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=FULL")
            version = conn.execute("SELECT sqlite_version()").fetchone()[0]
        except (OSError, sqlite3.Error) as e:
            logger.error(f"Failed to open database {self.path}: {e}")
            raise StoreError(f"Cannot open database {self.path}: {e}") from e
        logger.info(f"Database initialized at {self.path} (sqlite {version})")
        return conn

    def _init_schema(self) -> None:
        with self._lock:
            try:
                self._conn.executescript(SCHEMA)
                columns = {
                    row["name"]
                    for row in self._conn.execute("PRAGMA table_info(sessions)")
                }
                if "output_digest" not in columns:
                    # Databases created before the column existed
                    self._conn.execute(
                        "ALTER TABLE sessions ADD COLUMN output_digest TEXT NOT NULL DEFAULT ''"
                    )
            except sqlite3.Error as e:
                raise StoreError(f"Failed to initialize schema: {e}") from e
        logger.debug("Database schema initialized")

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Run the body in one immediate transaction, rolling back on any error."""
        with self._lock:
            try:
                self._conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as e:
                raise StoreError(f"Failed to begin transaction: {e}") from e
            try:
                yield self._conn
                self._conn.execute("COMMIT")
            except sqlite3.Error as e:
                self._rollback()
                logger.error(f"Store transaction failed: {e}")
                raise StoreError(f"Store write failed: {e}") from e
            except BaseException:
                self._rollback()
                raise

    def _rollback(self) -> None:
        if self._conn.in_transaction:
            try:
                self._conn.execute("ROLLBACK")
            except sqlite3.Error as e:
                logger.error(f"Rollback failed: {e}")

    def _fetch(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        with self._lock:
            try:
                return self._conn.execute(sql, params).fetchall()
            except sqlite3.Error as e:
                logger.error(f"Store query failed: {e}")
                raise StoreError(f"Store read failed: {e}") from e

    # -- row conversion -----------------------------------------------------

    def _row_to_session(self, row: sqlite3.Row) -> Session:
        try:
            state = SessionState(row["state"])
            method = DetectionMethod(row["detection_method"])
        except ValueError as e:
            raise StoreError(f"invalid session row {row['id']}: {e}") from e
        return Session(
            id=row["id"],
            locator=PaneLocator(
                session_name=row["session_name"],
                window_index=row["window_index"],
                pane_index=row["pane_index"],
            ),
            pane_id=row["pane_id"],
            working_dir=row["working_dir"],
            process_name=row["process_name"],
            state=state,
            detection_method=method,
            last_output=row["last_output"],
            output_digest=row["output_digest"],
            last_activity=_dt(row["last_activity"]),
            created_at=_dt(row["created_at"]),
            updated_at=_dt(row["updated_at"]),
        )

    def _row_to_event(self, row: sqlite3.Row) -> Event:
        try:
            kind = EventKind(row["kind"])
            payload = json.loads(row["payload"]) if row["payload"] else {}
        except (ValueError, json.JSONDecodeError) as e:
            raise StoreError(f"invalid event row {row['id']}: {e}") from e
        return Event(
            id=row["id"],
            session_id=row["session_id"],
            kind=kind,
            payload=payload,
            timestamp=_dt(row["timestamp"]),
        )

    def _select_session(self, conn: sqlite3.Connection, session_id: str) -> Session | None:
        row = conn.execute(
            f"SELECT {SESSION_COLUMNS} FROM sessions WHERE id = ?", (session_id,)
        ).fetchone()
        return self._row_to_session(row) if row else None

    def _insert_event(
        self,
        conn: sqlite3.Connection,
        session_id: str | None,
        kind: EventKind,
        payload: dict[str, Any],
        at: datetime,
    ) -> Event:
        cursor = conn.execute(
            "INSERT INTO events (session_id, kind, payload, timestamp) VALUES (?, ?, ?, ?)",
            (session_id, kind.value, json.dumps(payload, default=str), _ts(at)),
        )
        return Event(
            id=cursor.lastrowid,
            session_id=session_id,
            kind=kind,
            payload=payload,
            timestamp=at,
        )

    # -- sessions -----------------------------------------------------------

    def create_session(
        self,
        pane: PaneInfo,
        state: SessionState,
        at: datetime,
        output: str = "",
        digest: str = "",
    ) -> Session | None:
        """Insert a poll-discovered session and its ``session_discovered`` event.

        Returns None when a session already exists for the pane locator.
        """
        session = Session(
            id=str(uuid.uuid4()),
            locator=pane.locator,
            pane_id=pane.pane_id,
            working_dir=normalize_dir(pane.working_dir),
            process_name=pane.process_name,
            state=state,
            detection_method=DetectionMethod.POLL,
            last_output=output,
            output_digest=digest,
            last_activity=at,
            created_at=at,
            updated_at=at,
        )
        duplicate = False
        with self._transaction() as conn:
            try:
                conn.execute(
                    f"INSERT INTO sessions ({SESSION_COLUMNS}) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        session.id,
                        str(session.locator),
                        session.pane_id,
                        session.locator.session_name,
                        session.locator.window_index,
                        session.locator.pane_index,
                        session.working_dir,
                        session.process_name,
                        session.state.value,
                        session.detection_method.value,
                        session.last_output,
                        session.output_digest,
                        _ts(at),
                        _ts(at),
                        _ts(at),
                    ),
                )
            except sqlite3.IntegrityError:
                duplicate = True
            else:
                self._insert_event(
                    conn,
                    session.id,
                    EventKind.SESSION_DISCOVERED,
                    {
                        "pane_locator": str(session.locator),
                        "working_dir": session.working_dir,
                        "process_name": session.process_name,
                        "state": session.state.value,
                    },
                    at,
                )
        if duplicate:
            logger.debug(f"Session for pane {pane.locator} already exists, skipping")
            return None
        return session

    def get_session(self, session_id: str) -> Session | None:
        rows = self._fetch(
            f"SELECT {SESSION_COLUMNS} FROM sessions WHERE id = ?", (session_id,)
        )
        return self._row_to_session(rows[0]) if rows else None

    def get_session_by_locator(self, locator: PaneLocator | str) -> Session | None:
        if isinstance(locator, str):
            locator = PaneLocator.parse(locator)
        rows = self._fetch(
            f"SELECT {SESSION_COLUMNS} FROM sessions WHERE pane_locator = ?",
            (str(locator),),
        )
        return self._row_to_session(rows[0]) if rows else None

    def find_by_working_dir(self, working_dir: str) -> Session | None:
        """Most recently updated session whose working directory matches."""
        rows = self._fetch(
            f"SELECT {SESSION_COLUMNS} FROM sessions WHERE working_dir = ? "
            "ORDER BY updated_at DESC LIMIT 1",
            (normalize_dir(working_dir),),
        )
        return self._row_to_session(rows[0]) if rows else None

    def list_sessions(self, state: SessionState | None = None) -> list[Session]:
        """All sessions, newest first, optionally filtered by state."""
        if state is None:
            rows = self._fetch(
                f"SELECT {SESSION_COLUMNS} FROM sessions ORDER BY created_at DESC"
            )
        else:
            rows = self._fetch(
                f"SELECT {SESSION_COLUMNS} FROM sessions WHERE state = ? "
                "ORDER BY created_at DESC",
                (state.value,),
            )
        return [self._row_to_session(row) for row in rows]

    def _apply_locked(
        self,
        conn: sqlite3.Connection,
        session: Session,
        state: SessionState,
        source: DetectionMethod,
        at: datetime,
        staleness_window: float,
        output: str | None = None,
        activity_at: datetime | None = None,
        digest: str | None = None,
    ) -> StateTransition:
        allowed = arbiter.may_apply(session, source, at, staleness_window)
        assignments: dict[str, Any] = {}

        if output is not None:
            assignments["last_output"] = output
        if digest is not None:
            assignments["output_digest"] = digest
        if activity_at is not None and activity_at > session.last_activity:
            assignments["last_activity"] = _ts(activity_at)

        changed = allowed and state != session.state
        if source == DetectionMethod.PUSH:
            assignments.update(
                state=state.value,
                detection_method=source.value,
                last_activity=_ts(at),
                updated_at=_ts(at),
            )
        elif changed:
            assignments.update(
                state=state.value,
                detection_method=source.value,
                updated_at=_ts(at),
            )

        if assignments:
            columns = ", ".join(f"{name} = ?" for name in assignments)
            conn.execute(
                f"UPDATE sessions SET {columns} WHERE id = ?",
                (*assignments.values(), session.id),
            )
        if changed:
            self._insert_event(
                conn,
                session.id,
                EventKind.STATE_CHANGED,
                {"from": session.state.value, "to": state.value, "source": source.value},
                at,
            )
            logger.info(
                f"Session {session.id} ({session.locator}) "
                f"{session.state.value} -> {state.value} via {source.value}"
            )
        elif not allowed:
            logger.debug(
                f"Poll update for {session.id} deferred to recent push "
                f"({session.state.value})"
            )

        return StateTransition(
            session_id=session.id,
            previous=session.state,
            current=state if allowed else session.state,
            source=source,
            applied=allowed,
        )

    def apply_state(
        self,
        session_id: str,
        state: SessionState,
        source: DetectionMethod,
        at: datetime,
        staleness_window: float = STALENESS_WINDOW_SECONDS,
        output: str | None = None,
        activity_at: datetime | None = None,
        digest: str | None = None,
    ) -> StateTransition | None:
        """The single state mutation entry point for both update paths.

        Pushes always apply and refresh activity. Polls are refused while a
        push younger than ``staleness_window`` holds the session, and only
        write when the state actually differs. ``output``, ``digest`` and
        ``activity_at`` record what the poll observed regardless of the
        arbitration result.

        Returns None when the session no longer exists.
        """
        with self._transaction() as conn:
            session = self._select_session(conn, session_id)
            if session is None:
                return None
            return self._apply_locked(
                conn, session, state, source, at, staleness_window,
                output, activity_at, digest,
            )

    def record_hook(
        self,
        session_id: str | None,
        hook_type: str,
        state: SessionState | None,
        payload: dict[str, Any],
        at: datetime,
    ) -> tuple[Event, StateTransition | None]:
        """Log a received hook and apply its inferred state as a push.

        An unknown or missing ``session_id`` writes a single orphaned
        ``hook_received`` entry and touches no session.
        """
        with self._transaction() as conn:
            session = self._select_session(conn, session_id) if session_id else None
            body = {**payload, "hook_type": hook_type}
            if session is None:
                body["orphaned"] = True
                event = self._insert_event(conn, None, EventKind.HOOK_RECEIVED, body, at)
                return event, None

            event = self._insert_event(conn, session.id, EventKind.HOOK_RECEIVED, body, at)
            if state is None:
                conn.execute(
                    "UPDATE sessions SET last_activity = ? WHERE id = ?",
                    (_ts(at), session.id),
                )
                return event, None
            transition = self._apply_locked(
                conn, session, state, DetectionMethod.PUSH, at, STALENESS_WINDOW_SECONDS
            )
            return event, transition

    def delete_session(self, session_id: str, at: datetime) -> bool:
        """Delete a session and write its ``session_removed`` event."""
        with self._transaction() as conn:
            session = self._select_session(conn, session_id)
            if session is None:
                return False
            conn.execute("DELETE FROM sessions WHERE id = ?", (session_id,))
            self._insert_event(
                conn,
                session_id,
                EventKind.SESSION_REMOVED,
                {
                    "pane_locator": str(session.locator),
                    "working_dir": session.working_dir,
                    "last_state": session.state.value,
                },
                at,
            )
        logger.info(f"Removed session {session_id} ({session.locator})")
        return True

    # -- events -------------------------------------------------------------

    def recent_events(
        self, session_id: str | None = None, limit: int = DEFAULT_EVENT_LIMIT
    ) -> list[Event]:
        """Newest-first ledger entries, globally or for one session."""
        limit = max(0, int(limit))
        if session_id is None:
            rows = self._fetch(
                "SELECT id, session_id, kind, payload, timestamp FROM events "
                "ORDER BY timestamp DESC, id DESC LIMIT ?",
                (limit,),
            )
        else:
            rows = self._fetch(
                "SELECT id, session_id, kind, payload, timestamp FROM events "
                "WHERE session_id = ? ORDER BY timestamp DESC, id DESC LIMIT ?",
                (session_id, limit),
            )
        return [self._row_to_event(row) for row in rows]

    def prune_events(self, before: datetime) -> int:
        """Bulk-delete ledger entries older than ``before``."""
        with self._transaction() as conn:
            cursor = conn.execute("DELETE FROM events WHERE timestamp < ?", (_ts(before),))
            removed = cursor.rowcount
        if removed:
            logger.info(f"Pruned {removed} ledger entries older than {before.isoformat()}")
        return removed

    # -- maintenance --------------------------------------------------------

    def journal_mode(self) -> str:
        rows = self._fetch("PRAGMA journal_mode")
        return rows[0][0]

    def close(self) -> None:
        with self._lock:
            try:
                self._conn.close()
            except sqlite3.Error as e:
                logger.error(f"Failed to close database {self.path}: {e}")
