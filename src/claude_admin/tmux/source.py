"""Pane source capability used by discovery and reconciliation."""

from abc import ABC, abstractmethod
from enum import Enum

from ..logging_config import PaneNotFoundError, TmuxError
from ..session.models import PaneInfo, PaneLocator


class PaneLiveness(str, Enum):
    """Result of a liveness check; UNKNOWN means the check itself failed."""

    LIVE = "live"
    ABSENT = "absent"
    UNKNOWN = "unknown"


class PaneSource(ABC):
    """Enumerates panes, captures their output and checks their liveness.

    ``list_panes`` and ``capture`` raise :class:`TmuxError` when the host
    cannot be queried; ``is_live`` never raises and reports UNKNOWN instead.
    """

    @abstractmethod
    def list_panes(self) -> list[PaneInfo]: ...

    @abstractmethod
    def capture(self, locator: PaneLocator, lines: int = 50) -> str: ...

    @abstractmethod
    def is_live(self, locator: PaneLocator) -> PaneLiveness: ...


class StaticPaneSource(PaneSource):
    """Fixed-fixture pane source for tests and dry runs."""

    def __init__(self, panes: list[PaneInfo] | None = None):
        self.panes: dict[PaneLocator, PaneInfo] = {}
        self.outputs: dict[PaneLocator, str] = {}
        self.failing = False  # Simulate an unreachable host
        self.unreadable: set[PaneLocator] = set()
        for pane in panes or []:
            self.add_pane(pane)

    def add_pane(self, pane: PaneInfo, output: str = "") -> None:
        self.panes[pane.locator] = pane
        self.outputs[pane.locator] = output

    def remove_pane(self, locator: PaneLocator | str) -> None:
        locator = _coerce(locator)
        self.panes.pop(locator, None)
        self.outputs.pop(locator, None)

    def set_output(self, locator: PaneLocator | str, output: str) -> None:
        self.outputs[_coerce(locator)] = output

    def list_panes(self) -> list[PaneInfo]:
        if self.failing:
            raise TmuxError("tmux not running")
        return list(self.panes.values())

    def capture(self, locator: PaneLocator, lines: int = 50) -> str:
        if self.failing:
            raise TmuxError("tmux not running", str(locator))
        if locator in self.unreadable:
            raise TmuxError(f"failed to capture pane {locator}", str(locator))
        if locator not in self.panes:
            raise PaneNotFoundError(f"pane not found: {locator}", str(locator))
        text = self.outputs.get(locator, "")
        return "\n".join(text.splitlines()[-lines:]) if lines > 0 else ""

    def is_live(self, locator: PaneLocator) -> PaneLiveness:
        if self.failing:
            return PaneLiveness.UNKNOWN
        return PaneLiveness.LIVE if locator in self.panes else PaneLiveness.ABSENT


def _coerce(locator: PaneLocator | str) -> PaneLocator:
    return PaneLocator.parse(locator) if isinstance(locator, str) else locator
