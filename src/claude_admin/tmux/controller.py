"""Tmux pane source using libtmux."""

import libtmux

from ..logging_config import PaneNotFoundError, TmuxError, get_logger
from ..session.models import PaneInfo, PaneLocator
from .source import PaneLiveness, PaneSource

logger = get_logger(__name__)


def _int(value, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


class TmuxController(PaneSource):
    """Reads panes of the local tmux server."""

    def __init__(self, socket_name: str | None = None):
        self.socket_name = socket_name
        self._server: libtmux.Server | None = None

    @property
    def server(self) -> libtmux.Server:
        """Get or create the tmux server connection."""
        if self._server is None:
            try:
                self._server = libtmux.Server(socket_name=self.socket_name)
            except Exception as e:
                logger.error(f"Failed to connect to tmux server: {e}")
                raise TmuxError(f"Cannot connect to tmux server: {e}") from e
        return self._server

    def _pane_info(self, pane) -> PaneInfo:
        return PaneInfo(
            locator=PaneLocator(
                session_name=pane.session_name or "",
                window_index=_int(pane.window_index),
                pane_index=_int(pane.pane_index),
            ),
            process_name=pane.pane_current_command or "",
            pid=_int(pane.pane_pid) if pane.pane_pid else None,
            working_dir=pane.pane_current_path or "",
            pane_id=pane.pane_id or "",
        )

    def list_panes(self) -> list[PaneInfo]:
        """List every pane across all tmux sessions."""
        try:
            if not self.server.is_alive():
                raise TmuxError("tmux not running")
            panes = list(self.server.panes)
        except TmuxError:
            raise
        except Exception as e:
            logger.error(f"Error listing tmux panes: {e}")
            raise TmuxError(f"Failed to list panes: {e}") from e
        return [self._pane_info(pane) for pane in panes]

    def _find_pane(self, locator: PaneLocator):
        matches = self.server.panes.filter(
            session_name=locator.session_name,
            window_index=str(locator.window_index),
            pane_index=str(locator.pane_index),
        )
        return matches[0] if matches else None

    def capture(self, locator: PaneLocator, lines: int = 50) -> str:
        """Capture the last ``lines`` lines of a pane."""
        if lines <= 0:
            return ""
        try:
            pane = self._find_pane(locator)
            if pane is None:
                raise PaneNotFoundError(f"pane not found: {locator}", str(locator))
            output = pane.capture_pane(start=-lines)
        except TmuxError:
            raise
        except Exception as e:
            logger.error(f"Error capturing pane {locator}: {e}")
            raise TmuxError(f"Failed to capture pane {locator}: {e}", str(locator)) from e
        if isinstance(output, str):
            return output
        return "\n".join(output) if output else ""

    def is_live(self, locator: PaneLocator) -> PaneLiveness:
        """Check whether a pane still exists; UNKNOWN when tmux can't be queried."""
        try:
            if not self.server.is_alive():
                logger.warning(f"tmux server unreachable while probing {locator}")
                return PaneLiveness.UNKNOWN
            pane = self._find_pane(locator)
        except Exception as e:
            logger.warning(f"Error probing pane {locator}: {e}")
            return PaneLiveness.UNKNOWN
        return PaneLiveness.LIVE if pane is not None else PaneLiveness.ABSENT
