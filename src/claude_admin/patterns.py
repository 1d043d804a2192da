"""Regex patterns and state classification for Claude Code panes.

This module is the single source of truth for detection patterns: which
pane processes count as Claude Code, and which captured output maps to
which :class:`SessionState`.

Classification runs over a bounded window of the most recent lines, so
its cost does not grow with scrollback. Rules are evaluated top to
bottom and the first match wins; position in the text never matters.
"""

import hashlib
import re
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, List, Pattern, Sequence

from .config import CLASSIFIER_WINDOW_LINES, IDLE_THRESHOLD_SECONDS
from .session.models import SessionState

# Claude Code reports its version as the pane command (e.g. "2.1.20")
PROCESS_PATTERNS: List[Pattern[str]] = [
    re.compile(r"^\d+\.\d+\.\d+"),
    re.compile(r"claude", re.IGNORECASE),
]

# Our own CLI would otherwise match the substring above
EXCLUDED_PROCESS_PATTERNS: List[Pattern[str]] = [
    re.compile(r"^claude-admin\b", re.IGNORECASE),
]

# Explicit termination phrases, checked only in the last few lines
DONE_PATTERNS: List[Pattern[str]] = [
    re.compile(r"Session ended"),
    re.compile(r"Goodbye"),
    re.compile(r"exited with code"),
    re.compile(r"connection closed", re.IGNORECASE),
]

# Approval prompts waiting on the user
INPUT_PATTERNS: List[Pattern[str]] = [
    re.compile(r"(Approve|Continue|Proceed)\?"),
    re.compile(r"\(y/n\)", re.IGNORECASE),
    re.compile(r"\[Y/n\]"),
    re.compile(r"\[y/N\]"),
    re.compile(r"Press Enter"),
    re.compile(r"Enter to continue"),
    re.compile(r"^\s*Do you want to"),
    re.compile(r"^\s*Would you like"),
]

# Trailing characters of the last line that mean a prompt is showing
PROMPT_ENDINGS = (">", "?", "❯")

# Tool calls, file operations and UI framing
WORKING_PATTERNS: List[Pattern[str]] = [
    re.compile(r"Tool:"),
    re.compile(r"\b(Reading|Writing|Editing|Searching|Running)\b"),
    re.compile(r"\b(Analyzing|Thinking|Processing)\b"),
    re.compile(r"esc to interrupt", re.IGNORECASE),
    re.compile(r"^\s*\[(Read|Write|Edit|Bash|Grep|Glob)\]"),
    re.compile(r"[╭├]─"),
    re.compile(r"⏺"),
]

DONE_TAIL_LINES = 3


@dataclass(frozen=True)
class OutputWindow:
    """The bounded tail of a pane capture that rules look at."""

    lines: Sequence[str]

    @classmethod
    def from_text(
        cls, text: str | None, max_lines: int = CLASSIFIER_WINDOW_LINES
    ) -> "OutputWindow":
        if not text:
            return cls(lines=())
        lines = text.splitlines()
        # tmux pads the visible screen with blank rows
        while lines and not lines[-1].strip():
            lines.pop()
        return cls(lines=tuple(lines[-max_lines:]))

    @property
    def empty(self) -> bool:
        return not any(line.strip() for line in self.lines)

    @property
    def last_line(self) -> str:
        for line in reversed(self.lines):
            if line.strip():
                return line.strip()
        return ""

    def tail(self, count: int = DONE_TAIL_LINES) -> List[str]:
        non_empty = [line for line in self.lines if line.strip()]
        return non_empty[-count:]


def _any_match(patterns: List[Pattern[str]], lines: Sequence[str]) -> bool:
    return any(pattern.search(line) for line in lines for pattern in patterns)


def is_done(window: OutputWindow) -> bool:
    return _any_match(DONE_PATTERNS, window.tail())


def is_needs_input(window: OutputWindow) -> bool:
    if _any_match(INPUT_PATTERNS, window.tail()):
        return True
    return window.last_line.endswith(PROMPT_ENDINGS)


def is_working(window: OutputWindow) -> bool:
    return _any_match(WORKING_PATTERNS, window.lines)


@dataclass(frozen=True)
class Rule:
    """One row of the classification table."""

    state: SessionState
    predicate: Callable[[OutputWindow], bool]
    requires_quiet: bool = False


# Evaluated in order; the first matching rule decides the state.
RULES: List[Rule] = [
    Rule(SessionState.DONE, is_done),
    # A prompt glyph also flashes by while the UI redraws, so only trust it
    # after the pane has been quiet for a while.
    Rule(SessionState.NEEDS_INPUT, is_needs_input, requires_quiet=True),
    Rule(SessionState.WORKING, is_working),
]


def classify(
    output: str | None,
    time_since_activity: float | timedelta = 0.0,
    idle_threshold: float = IDLE_THRESHOLD_SECONDS,
    window_lines: int = CLASSIFIER_WINDOW_LINES,
) -> SessionState:
    """Classify captured pane output into a session state.

    Args:
        output: Captured pane text; None or empty means nothing readable
        time_since_activity: Quiet period since the last observed activity
        idle_threshold: Seconds of quiet required before a prompt counts
        window_lines: Number of trailing lines considered

    Returns:
        The state of the first matching rule, or IDLE when none match
    """
    if isinstance(time_since_activity, timedelta):
        time_since_activity = time_since_activity.total_seconds()

    window = OutputWindow.from_text(output, window_lines)
    if window.empty:
        return SessionState.IDLE

    quiet = time_since_activity >= idle_threshold
    for rule in RULES:
        if rule.requires_quiet and not quiet:
            continue
        if rule.predicate(window):
            return rule.state
    return SessionState.IDLE


def is_claude_process(process_name: str) -> bool:
    """Whether a pane's current command looks like Claude Code."""
    name = process_name.strip()
    if not name:
        return False
    if any(pattern.search(name) for pattern in EXCLUDED_PROCESS_PATTERNS):
        return False
    return any(pattern.search(name) for pattern in PROCESS_PATTERNS)


def output_snippet(output: str | None, max_chars: int, max_lines: int = DONE_TAIL_LINES) -> str:
    """Last few non-empty lines of a capture, bounded to ``max_chars``."""
    tail = OutputWindow.from_text(output).tail(max_lines)
    snippet = "\n".join(line.rstrip() for line in tail)
    return snippet[-max_chars:]


def output_digest(output: str | None, window_lines: int = CLASSIFIER_WINDOW_LINES) -> str:
    """Fingerprint of the window ``classify`` reads; a change means activity."""
    window = OutputWindow.from_text(output, window_lines)
    text = "\n".join(line.rstrip() for line in window.lines)
    return hashlib.sha1(text.encode("utf-8")).hexdigest()
