"""Blocking client for the daemon's unix sockets."""

import json
import socket
from pathlib import Path
from typing import Any

from pydantic import BaseModel

from ..config import DEFAULT_EVENT_LIMIT, HOOK_SOCKET, QUERY_SOCKET
from ..logging_config import ProtocolError, SessionNotFound
from ..session.models import Event, Session
from .protocol import (
    ErrorResponse,
    EventsResponse,
    HookReceipt,
    NotFound,
    SessionResponse,
    SessionsResponse,
    parse_query_response,
)


class DaemonUnavailable(ConnectionError):
    """The daemon socket is missing or refused the connection."""


def send_message(socket_path: Path, message: dict[str, Any], timeout: float = 5.0) -> dict[str, Any]:
    """Send one JSON line and read one JSON line back."""
    try:
        with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as sock:
            sock.settimeout(timeout)
            sock.connect(str(socket_path))
            sock.sendall(json.dumps(message).encode("utf-8") + b"\n")
            buffer = b""
            while not buffer.endswith(b"\n"):
                chunk = sock.recv(65536)
                if not chunk:
                    break
                buffer += chunk
    except (FileNotFoundError, ConnectionRefusedError) as e:
        raise DaemonUnavailable(f"daemon not reachable at {socket_path}: {e}") from e
    except socket.timeout as e:
        raise DaemonUnavailable(f"daemon at {socket_path} timed out") from e

    if not buffer:
        raise ProtocolError("empty response from daemon")
    try:
        return json.loads(buffer.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ProtocolError(f"invalid response from daemon: {e}") from e


class QueryClient:
    """Typed wrapper around the query socket."""

    def __init__(self, socket_path: Path = QUERY_SOCKET):
        self.socket_path = socket_path

    def _call(self, request: dict[str, Any], expected: type[BaseModel]) -> Any:
        response = parse_query_response(send_message(self.socket_path, request))
        if isinstance(response, NotFound):
            raise SessionNotFound(response.message)
        if isinstance(response, ErrorResponse):
            raise ProtocolError(response.message)
        if not isinstance(response, expected):
            raise ProtocolError(f"unexpected response {response.type}")
        return response

    def ping(self) -> bool:
        return send_message(self.socket_path, {"type": "ping"}).get("type") == "pong"

    def list_sessions(self) -> list[Session]:
        return self._call({"type": "list_sessions"}, SessionsResponse).sessions

    def get_session(self, session_id: str) -> Session:
        return self._call({"type": "get_session", "id": session_id}, SessionResponse).session

    def get_session_by_locator(self, locator: str) -> Session:
        request = {"type": "get_session_by_locator", "locator": locator}
        return self._call(request, SessionResponse).session

    def recent_events(
        self, session_id: str | None = None, limit: int = DEFAULT_EVENT_LIMIT
    ) -> list[Event]:
        request = {"type": "get_recent_events", "session_id": session_id, "limit": limit}
        return self._call(request, EventsResponse).events


def send_hook(payload: dict[str, Any], socket_path: Path = HOOK_SOCKET) -> HookReceipt:
    """Forward one hook payload and return the daemon's acknowledgment."""
    response = send_message(socket_path, payload)
    if response.get("type") == "error":
        raise ProtocolError(response.get("message", "hook rejected"))
    return HookReceipt.model_validate(response)
