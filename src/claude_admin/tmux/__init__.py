"""Pane sources."""

from .controller import TmuxController
from .source import PaneLiveness, PaneSource, StaticPaneSource

__all__ = ["PaneLiveness", "PaneSource", "StaticPaneSource", "TmuxController"]
