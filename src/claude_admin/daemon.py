"""Daemon process: reconciler plus hook and query listeners on one event loop."""

import asyncio
import signal
from datetime import timedelta
from typing import Any

from .config import DaemonConfig
from .hooks.ingress import EventIngress
from .ipc.protocol import ErrorResponse, parse_hook, parse_query_request
from .ipc.server import SocketServer
from .logging_config import AdminError, configure_logging, get_logger
from .pidfile import PidFile
from .query import QueryService
from .session.reconciler import Reconciler
from .session.store import SessionStore
from .tmux.controller import TmuxController
from .tmux.source import PaneSource

logger = get_logger(__name__)


class Daemon:
    """Owns the store and the three long-lived tasks sharing it."""

    def __init__(
        self,
        config: DaemonConfig,
        source: PaneSource | None = None,
        store: SessionStore | None = None,
    ):
        self.config = config
        self.source = source or TmuxController()
        self.store = store or SessionStore(config.db_path)
        self.ingress = EventIngress(self.store)
        self.query = QueryService(self.store)
        retention = (
            timedelta(days=config.event_retention_days)
            if config.event_retention_days
            else None
        )
        self.reconciler = Reconciler(
            self.store,
            self.source,
            interval=config.poll_interval,
            staleness_window=config.staleness_window,
            idle_threshold=config.idle_threshold,
            event_retention=retention,
            max_store_failures=config.max_store_failures,
        )
        self.hook_server = SocketServer(config.hook_socket_path, self.handle_hook, "hook listener")
        self.query_server = SocketServer(config.socket_path, self.handle_query, "query listener")
        self.shutdown = asyncio.Event()

    async def handle_hook(self, message: dict[str, Any]) -> dict[str, Any]:
        if message.get("type") == "ping":
            return {"type": "pong"}
        notification = parse_hook(message)
        receipt = await asyncio.to_thread(self.ingress.handle, notification)
        return receipt.model_dump(mode="json")

    async def handle_query(self, message: dict[str, Any]) -> dict[str, Any]:
        request = parse_query_request(message)
        try:
            response = await asyncio.to_thread(self.query.execute, request)
        except AdminError as e:
            logger.error(f"Query {message.get('type')} failed: {e}")
            response = ErrorResponse(message=str(e))
        return response.model_dump(mode="json")

    def request_shutdown(self, reason: str = "requested") -> None:
        if not self.shutdown.is_set():
            logger.info(f"Shutdown {reason}")
            self.shutdown.set()

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(
                    signum, self.request_shutdown, f"on {signal.Signals(signum).name}"
                )
            except (NotImplementedError, RuntimeError):
                logger.debug(f"Cannot install handler for {signum}")

    async def run(self, install_signals: bool = True) -> int:
        """Serve until shutdown; returns the process exit code."""
        if install_signals:
            self._install_signal_handlers()

        await self.hook_server.start()
        await self.query_server.start()
        reconciler_task = asyncio.create_task(self.reconciler.run(self.shutdown))
        logger.info("Daemon initialized")

        try:
            await self.shutdown.wait()
        finally:
            # Listeners first so no new writes start, then let the tick finish.
            await self.hook_server.stop()
            await self.query_server.stop()
            self.shutdown.set()
            await reconciler_task
            self.store.close()
            logger.info("Daemon stopped")

        return 1 if self.reconciler.fatal else 0


def run_daemon(config: DaemonConfig) -> int:
    """Configure logging, take the pid file and run the daemon to completion."""
    config.ensure_dirs()
    configure_logging(config.log_level, config.log_file, console=config.console)
    with PidFile(config.pid_file):
        logger.info("Daemon starting")
        return asyncio.run(Daemon(config).run())
