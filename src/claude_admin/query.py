"""Read-only query surface over the session store."""

from pydantic import BaseModel

from .config import DEFAULT_EVENT_LIMIT
from .ipc.protocol import (
    EventsResponse,
    GetRecentEvents,
    GetSession,
    GetSessionByLocator,
    ListSessions,
    NotFound,
    Ping,
    Pong,
    SessionResponse,
    SessionsResponse,
)
from .logging_config import ProtocolError, SessionNotFound
from .session.models import Event, PaneLocator, Session
from .session.store import SessionStore


class QueryService:
    """Serves sessions and ledger entries to the CLI and other consumers."""

    def __init__(self, store: SessionStore):
        self.store = store

    def list_sessions(self) -> list[Session]:
        return self.store.list_sessions()

    def get_session(self, session_id: str) -> Session:
        session = self.store.get_session(session_id)
        if session is None:
            raise SessionNotFound(f"session not found: {session_id}")
        return session

    def get_session_by_locator(self, locator: PaneLocator | str) -> Session:
        try:
            session = self.store.get_session_by_locator(locator)
        except ValueError as e:
            raise SessionNotFound(str(e)) from e
        if session is None:
            raise SessionNotFound(f"no session in pane {locator}")
        return session

    def recent_events(
        self, session_id: str | None = None, limit: int = DEFAULT_EVENT_LIMIT
    ) -> list[Event]:
        """Newest-first events; an unknown ``session_id`` is a not-found."""
        if session_id is not None and self.store.get_session(session_id) is None:
            # The ledger outlives deleted sessions, so fall back to its history.
            events = self.store.recent_events(session_id, limit)
            if not events:
                raise SessionNotFound(f"session not found: {session_id}")
            return events
        return self.store.recent_events(session_id, limit)

    def execute(self, request: BaseModel) -> BaseModel:
        """Answer one parsed request; not-found becomes a response, not an error.

        Store failures propagate so the transport can fail just this request.
        """
        try:
            if isinstance(request, Ping):
                return Pong()
            if isinstance(request, ListSessions):
                return SessionsResponse(sessions=self.list_sessions())
            if isinstance(request, GetSession):
                return SessionResponse(session=self.get_session(request.id))
            if isinstance(request, GetSessionByLocator):
                return SessionResponse(session=self.get_session_by_locator(request.locator))
            if isinstance(request, GetRecentEvents):
                return EventsResponse(
                    events=self.recent_events(request.session_id, request.limit)
                )
        except SessionNotFound as e:
            return NotFound(message=str(e))
        raise ProtocolError(f"unsupported request: {type(request).__name__}")
