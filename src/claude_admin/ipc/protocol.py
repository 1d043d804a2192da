"""Newline-delimited JSON messages for the hook and query sockets.

Every message is a JSON object with a ``type`` tag. Hook notifications
are the exception: they are sent as raw Claude Code hook payloads, so
they are recognised by shape rather than by tag.
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from ..config import DEFAULT_EVENT_LIMIT
from ..logging_config import ProtocolError
from ..session.models import Event, Session, SessionState, utc_now


class HookNotification(BaseModel):
    """A push notification from a monitored process."""

    model_config = ConfigDict(extra="allow")  # Raw hook payloads carry extra fields

    kind: str = Field(validation_alias=AliasChoices("kind", "hook_event_name"))
    session_id: str | None = Field(
        default=None, validation_alias=AliasChoices("session_id", "sessionId")
    )
    cwd: str = ""
    timestamp: datetime = Field(default_factory=utc_now)
    data: dict[str, Any] = Field(default_factory=dict)


class HookReceipt(BaseModel):
    """Acknowledgment returned to the hook sender."""

    type: Literal["ack"] = "ack"
    accepted: bool = True
    resolved: bool
    session_id: str | None = None
    state: SessionState | None = None
    changed: bool = False


# -- query requests ----------------------------------------------------------


class Ping(BaseModel):
    type: Literal["ping"] = "ping"


class ListSessions(BaseModel):
    type: Literal["list_sessions"] = "list_sessions"


class GetSession(BaseModel):
    type: Literal["get_session"] = "get_session"
    id: str


class GetSessionByLocator(BaseModel):
    type: Literal["get_session_by_locator"] = "get_session_by_locator"
    locator: str


class GetRecentEvents(BaseModel):
    type: Literal["get_recent_events"] = "get_recent_events"
    session_id: str | None = None
    limit: int = Field(default=DEFAULT_EVENT_LIMIT, ge=0)


REQUEST_TYPES: dict[str, type[BaseModel]] = {
    "ping": Ping,
    "list_sessions": ListSessions,
    "get_session": GetSession,
    "get_session_by_locator": GetSessionByLocator,
    "get_recent_events": GetRecentEvents,
}

# -- responses ---------------------------------------------------------------


class Pong(BaseModel):
    type: Literal["pong"] = "pong"


class SessionsResponse(BaseModel):
    type: Literal["sessions"] = "sessions"
    sessions: list[Session]


class SessionResponse(BaseModel):
    type: Literal["session"] = "session"
    session: Session


class EventsResponse(BaseModel):
    type: Literal["events"] = "events"
    events: list[Event]


class NotFound(BaseModel):
    type: Literal["not_found"] = "not_found"
    message: str


class ErrorResponse(BaseModel):
    type: Literal["error"] = "error"
    message: str


RESPONSE_TYPES: dict[str, type[BaseModel]] = {
    "pong": Pong,
    "sessions": SessionsResponse,
    "session": SessionResponse,
    "events": EventsResponse,
    "not_found": NotFound,
    "error": ErrorResponse,
}


def _parse(types: dict[str, type[BaseModel]], data: dict[str, Any], what: str) -> BaseModel:
    kind = data.get("type")
    model = types.get(kind) if isinstance(kind, str) else None
    if model is None:
        raise ProtocolError(f"unknown {what} type: {kind!r}")
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise ProtocolError(f"invalid {what}: {e.errors()[0]['msg']}") from e


def parse_query_request(data: dict[str, Any]) -> BaseModel:
    return _parse(REQUEST_TYPES, data, "query request")


def parse_query_response(data: dict[str, Any]) -> BaseModel:
    return _parse(RESPONSE_TYPES, data, "query response")


def parse_hook(data: dict[str, Any]) -> HookNotification:
    try:
        return HookNotification.model_validate(data)
    except ValidationError as e:
        raise ProtocolError(f"invalid hook notification: {e.errors()[0]['msg']}") from e
