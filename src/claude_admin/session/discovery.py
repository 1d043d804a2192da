"""Discovery of Claude Code panes that have no session record yet."""

from datetime import datetime
from typing import Callable

from ..config import CAPTURE_LINES, OUTPUT_SNIPPET_CHARS
from ..logging_config import TmuxError, get_logger
from ..patterns import classify, is_claude_process, output_digest, output_snippet
from ..tmux.source import PaneSource
from .models import Session, utc_now
from .store import SessionStore

logger = get_logger(__name__)


class DiscoveryEngine:
    """Diffs live panes against known sessions and records the new ones."""

    def __init__(
        self,
        store: SessionStore,
        source: PaneSource,
        clock: Callable[[], datetime] = utc_now,
        capture_lines: int = CAPTURE_LINES,
    ):
        self.store = store
        self.source = source
        self.clock = clock
        self.capture_lines = capture_lines

    def discover(self, should_stop: Callable[[], bool] = lambda: False) -> list[Session]:
        """Create sessions for unmatched Claude Code panes.

        Raises:
            TmuxError: If the pane list itself cannot be read
        """
        panes = self.source.list_panes()
        known = {session.locator for session in self.store.list_sessions()}

        created: list[Session] = []
        for pane in panes:
            if should_stop():
                break
            if not is_claude_process(pane.process_name):
                continue
            if pane.locator in known:
                continue

            try:
                output = self.source.capture(pane.locator, self.capture_lines)
            except TmuxError as e:
                logger.warning(f"Skipping pane {pane.locator} this tick: {e}")
                continue

            # No activity history yet, so a prompt cannot pass the quiet gate.
            state = classify(output, 0.0)
            session = self.store.create_session(
                pane,
                state,
                self.clock(),
                output_snippet(output, OUTPUT_SNIPPET_CHARS),
                output_digest(output),
            )
            if session is None:
                continue
            known.add(pane.locator)
            created.append(session)
            logger.info(
                f"Discovered session {session.id} in {pane.locator} "
                f"at {session.working_dir} ({state.value})"
            )
        return created
