"""Periodic reconciliation: the poll backup path.

Each tick runs three passes in order, each finishing before the next:
discovery of new panes, removal of sessions whose pane is gone, and
reclassification of sessions whose state has gone stale. Pane source
failures only skip the affected pane or pass; the loop keeps ticking.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable

from ..config import (
    CAPTURE_LINES,
    IDLE_THRESHOLD_SECONDS,
    MAX_STORE_FAILURES,
    OUTPUT_SNIPPET_CHARS,
    POLL_INTERVAL_SECONDS,
    STALENESS_WINDOW_SECONDS,
)
from ..logging_config import StoreError, TmuxError, get_logger
from ..patterns import classify, output_digest, output_snippet
from ..tmux.source import PaneLiveness, PaneSource
from . import arbiter
from .discovery import DiscoveryEngine
from .models import DetectionMethod, Session, StateTransition, utc_now
from .store import SessionStore

logger = get_logger(__name__)


@dataclass
class TickReport:
    """What one reconciliation tick did."""

    discovered: list[Session] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    transitions: list[StateTransition] = field(default_factory=list)
    source_available: bool = True
    pruned: int = 0


class Reconciler:
    """Runs discovery, cleanup and stale-state passes on a fixed interval."""

    def __init__(
        self,
        store: SessionStore,
        source: PaneSource,
        clock: Callable[[], datetime] = utc_now,
        interval: float = POLL_INTERVAL_SECONDS,
        staleness_window: float = STALENESS_WINDOW_SECONDS,
        idle_threshold: float = IDLE_THRESHOLD_SECONDS,
        capture_lines: int = CAPTURE_LINES,
        event_retention: timedelta | None = None,
        max_store_failures: int = MAX_STORE_FAILURES,
    ):
        self.store = store
        self.source = source
        self.clock = clock
        self.interval = interval
        self.staleness_window = staleness_window
        self.idle_threshold = idle_threshold
        self.capture_lines = capture_lines
        self.event_retention = event_retention
        self.max_store_failures = max_store_failures
        self.discovery = DiscoveryEngine(store, source, clock, capture_lines)
        self.store_failures = 0
        self.fatal = False

    def run_tick(self, should_stop: Callable[[], bool] = lambda: False) -> TickReport:
        """Run one full tick synchronously.

        Raises:
            StoreError: If the store fails; the tick is abandoned at that point
        """
        report = TickReport()

        try:
            report.discovered = self.discovery.discover(should_stop)
        except TmuxError as e:
            report.source_available = False
            logger.warning(f"Discovery skipped, pane source unavailable: {e}")

        if should_stop():
            return report
        report.removed = self.cleanup(should_stop)

        if should_stop():
            return report
        report.transitions = self.reclassify_stale(should_stop)

        if self.event_retention is not None and not should_stop():
            report.pruned = self.store.prune_events(self.clock() - self.event_retention)
        return report

    def cleanup(self, should_stop: Callable[[], bool] = lambda: False) -> list[str]:
        """Remove sessions whose pane is confirmed gone.

        If the pane list cannot be read nothing is removed: an unreachable
        host is not evidence that any pane has closed.
        """
        try:
            live = {pane.locator for pane in self.source.list_panes()}
        except TmuxError as e:
            logger.warning(f"Cleanup skipped, cannot enumerate panes: {e}")
            return []

        removed: list[str] = []
        for session in self.store.list_sessions():
            if should_stop():
                break
            if session.locator in live:
                continue
            liveness = self.source.is_live(session.locator)
            if liveness == PaneLiveness.UNKNOWN:
                logger.warning(f"Could not confirm pane {session.locator}, keeping session")
                continue
            if liveness == PaneLiveness.LIVE:
                continue
            if self.store.delete_session(session.id, self.clock()):
                removed.append(session.id)
        return removed

    def reclassify_stale(
        self, should_stop: Callable[[], bool] = lambda: False
    ) -> list[StateTransition]:
        """Re-capture and reclassify sessions not updated within the staleness window."""
        transitions: list[StateTransition] = []
        for session in self.store.list_sessions():
            if should_stop():
                break
            now = self.clock()
            if not arbiter.needs_reclassification(session, now, self.staleness_window):
                continue

            try:
                output = self.source.capture(session.locator, self.capture_lines)
            except TmuxError as e:
                logger.warning(f"Skipping pane {session.locator} this tick: {e}")
                continue

            snippet = output_snippet(output, OUTPUT_SNIPPET_CHARS)
            # Activity is judged over the whole classified window, not the snippet
            digest = output_digest(output)
            output_changed = digest != session.output_digest
            activity_at = now if output_changed else session.last_activity
            state = classify(output, now - activity_at, self.idle_threshold)

            if (
                state == session.state
                and not output_changed
                and snippet == session.last_output
            ):
                continue

            transition = self.store.apply_state(
                session.id,
                state,
                DetectionMethod.POLL,
                now,
                staleness_window=self.staleness_window,
                output=snippet,
                activity_at=activity_at if output_changed else None,
                digest=digest,
            )
            if transition is not None and transition.changed:
                transitions.append(transition)
        return transitions

    async def run(self, shutdown: asyncio.Event) -> None:
        """Tick until ``shutdown`` is set, or until the store keeps failing."""
        logger.info(f"Reconciler started (interval {self.interval}s)")
        while not shutdown.is_set():
            try:
                report = await asyncio.to_thread(self.run_tick, shutdown.is_set)
            except StoreError as e:
                self.store_failures += 1
                logger.error(
                    f"Reconciliation tick failed ({self.store_failures}/"
                    f"{self.max_store_failures}): {e}"
                )
                if self.store_failures >= self.max_store_failures:
                    logger.critical("Session store unavailable, stopping daemon")
                    self.fatal = True
                    shutdown.set()
                    break
            except Exception as e:
                logger.error(f"Unexpected error in reconciliation tick: {e}", exc_info=True)
            else:
                self.store_failures = 0
                if report.discovered or report.removed or report.transitions:
                    logger.debug(
                        f"Tick: {len(report.discovered)} discovered, "
                        f"{len(report.removed)} removed, "
                        f"{len(report.transitions)} reclassified"
                    )

            try:
                await asyncio.wait_for(shutdown.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass
        logger.info("Reconciler stopped")
