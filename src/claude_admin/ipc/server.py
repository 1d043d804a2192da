"""Unix socket listener speaking newline-delimited JSON.

One request per line, one response per line. Each connection is handled
independently; a failing request gets an ``error`` response and the
connection stays open.
"""

import asyncio
import json
from pathlib import Path
from typing import Any, Awaitable, Callable

from ..config import MAX_MESSAGE_BYTES
from ..logging_config import AdminError, ProtocolError, StoreError, get_logger

logger = get_logger(__name__)

Handler = Callable[[dict[str, Any]], Awaitable[dict[str, Any]]]


def error_message(message: str) -> dict[str, Any]:
    return {"type": "error", "message": message}


class SocketServer:
    """Accepts concurrent clients on a unix socket and dispatches to a handler."""

    def __init__(
        self,
        socket_path: Path,
        handler: Handler,
        name: str = "socket",
        limit: int = MAX_MESSAGE_BYTES,
    ):
        self.socket_path = socket_path
        self.handler = handler
        self.name = name
        self.limit = limit
        self.server: asyncio.AbstractServer | None = None
        self._writers: set[asyncio.StreamWriter] = set()

    async def start(self) -> None:
        """Bind the socket, replacing a stale socket file if present."""
        if self.socket_path.exists():
            logger.warning(f"Removing stale socket {self.socket_path}")
            self.socket_path.unlink()
        self.socket_path.parent.mkdir(parents=True, exist_ok=True)

        self.server = await asyncio.start_unix_server(
            self._handle_client, path=str(self.socket_path), limit=self.limit
        )
        self.socket_path.chmod(0o600)
        logger.info(f"{self.name} listening on {self.socket_path}")

    async def stop(self) -> None:
        """Stop accepting, close open connections and remove the socket file."""
        if self.server is not None:
            self.server.close()
            for writer in list(self._writers):
                writer.close()
            try:
                await asyncio.wait_for(self.server.wait_closed(), timeout=5)
            except asyncio.TimeoutError:
                logger.warning(f"{self.name} did not close all connections in time")
            self.server = None

        if self.socket_path.exists():
            self.socket_path.unlink()
        logger.info(f"{self.name} stopped")

    async def _handle_client(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        self._writers.add(writer)
        try:
            while True:
                try:
                    data = await reader.readline()
                except (ValueError, asyncio.LimitOverrunError):
                    # Line framing is lost once a line overruns the limit.
                    logger.warning(f"{self.name}: message exceeds {self.limit} bytes")
                    response = error_message(f"message exceeds {self.limit} bytes")
                    writer.write(json.dumps(response).encode("utf-8") + b"\n")
                    await writer.drain()
                    break
                if not data:
                    break
                if not data.strip():
                    continue
                response = await self._dispatch(data)
                writer.write(json.dumps(response).encode("utf-8") + b"\n")
                await writer.drain()
        except (ConnectionResetError, BrokenPipeError) as e:
            logger.debug(f"{self.name} client went away: {e}")
        except Exception as e:
            logger.error(f"Error handling {self.name} client: {e}", exc_info=True)
        finally:
            self._writers.discard(writer)
            writer.close()
            try:
                await writer.wait_closed()
            except (ConnectionResetError, BrokenPipeError):
                pass

    async def _dispatch(self, data: bytes) -> dict[str, Any]:
        try:
            message = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            return error_message(f"parse error: {e}")
        if not isinstance(message, dict):
            return error_message("message must be a JSON object")

        try:
            return await self.handler(message)
        except ProtocolError as e:
            logger.warning(f"{self.name}: {e}")
            return error_message(str(e))
        except StoreError as e:
            logger.error(f"{self.name} request failed on store: {e}")
            return error_message(str(e))
        except AdminError as e:
            logger.error(f"{self.name} request failed: {e}")
            return error_message(str(e))
