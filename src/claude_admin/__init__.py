"""Claude Admin: tracks Claude Code sessions running in tmux panes."""

__version__ = "0.1.0"
