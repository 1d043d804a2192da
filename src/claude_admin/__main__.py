"""Command line entry point for Claude Admin."""

import argparse
import json
import sys
from pathlib import Path

from .config import DEFAULT_EVENT_LIMIT, HOOK_SOCKET, QUERY_SOCKET, DaemonConfig
from .ipc.client import DaemonUnavailable, QueryClient, send_hook
from .logging_config import AdminError
from .patterns import is_claude_process
from .session.models import Event, Session


def _short(value: str | None, width: int = 8) -> str:
    return (value or "-")[:width]


def format_sessions(sessions: list[Session]) -> str:
    lines = [f"{'ID':<9} {'PANE':<16} {'STATE':<12} {'VIA':<5} WORKING DIR"]
    for s in sessions:
        lines.append(
            f"{_short(s.id):<9} {str(s.locator):<16} {s.state.value:<12} "
            f"{s.detection_method.value:<5} {s.working_dir}"
        )
    if not sessions:
        lines.append("(no sessions)")
    return "\n".join(lines)


def format_events(events: list[Event]) -> str:
    lines = []
    for e in events:
        stamp = e.timestamp.astimezone().strftime("%Y-%m-%d %H:%M:%S")
        detail = ""
        if e.kind.value == "state_changed":
            detail = f"{e.payload.get('from')} -> {e.payload.get('to')} ({e.payload.get('source')})"
        elif e.kind.value == "hook_received":
            detail = e.payload.get("hook_type", "")
            if e.payload.get("orphaned"):
                detail += f" (orphaned, cwd={e.payload.get('cwd')})"
        lines.append(f"{stamp}  {_short(e.session_id):<9} {e.kind.value:<19} {detail}")
    return "\n".join(lines) if lines else "(no events)"


def cmd_daemon(args: argparse.Namespace) -> int:
    from .daemon import run_daemon

    config = DaemonConfig.from_args(args)
    return run_daemon(config)


def cmd_status(args: argparse.Namespace) -> int:
    client = QueryClient(Path(args.socket_path))
    print(format_sessions(client.list_sessions()))
    return 0


def cmd_session(args: argparse.Namespace) -> int:
    client = QueryClient(Path(args.socket_path))
    if ":" in args.target:
        session = client.get_session_by_locator(args.target)
    else:
        session = client.get_session(args.target)
    print(session.model_dump_json(indent=2))
    return 0


def cmd_events(args: argparse.Namespace) -> int:
    client = QueryClient(Path(args.socket_path))
    print(format_events(client.recent_events(args.session, args.limit)))
    return 0


def cmd_hook(args: argparse.Namespace) -> int:
    try:
        payload = json.load(sys.stdin)
    except json.JSONDecodeError as e:
        print(f"claude-admin: invalid hook payload: {e}", file=sys.stderr)
        return 1
    if not isinstance(payload, dict):
        print("claude-admin: hook payload must be a JSON object", file=sys.stderr)
        return 1
    if args.kind and "kind" not in payload and "hook_event_name" not in payload:
        payload["kind"] = args.kind
    try:
        receipt = send_hook(payload, Path(args.socket_path))
    except DaemonUnavailable as e:
        # Never fail the hooked process because the daemon is down.
        print(f"claude-admin: {e}", file=sys.stderr)
        return 0
    print(receipt.model_dump_json())
    return 0


def cmd_scan(args: argparse.Namespace) -> int:
    from .tmux.controller import TmuxController

    panes = TmuxController().list_panes()
    print(f"{'PANE':<16} {'PID':>7} {'PROCESS':<15} {'CLAUDE':<6} WORKING DIR")
    print("-" * 80)
    for pane in panes:
        match = "yes" if is_claude_process(pane.process_name) else ""
        print(
            f"{str(pane.locator):<16} {pane.pid or '':>7} {pane.process_name:<15} "
            f"{match:<6} {pane.working_dir}"
        )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="claude-admin", description="Track Claude Code sessions running in tmux"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    daemon = sub.add_parser("daemon", help="Run the tracking daemon")
    daemon.add_argument("--log-level", default="info", help="trace|debug|info|warn|error")
    daemon.add_argument("--log-file")
    daemon.add_argument("--socket-path", help="Query socket path")
    daemon.add_argument("--hook-socket-path", help="Hook socket path")
    daemon.add_argument("--pid-file")
    daemon.add_argument("--db-path")
    daemon.add_argument("--poll-interval", type=float)
    daemon.add_argument("--staleness-window", type=float)
    daemon.add_argument("--event-retention-days", type=float)
    daemon.add_argument(
        "--foreground", action="store_true", help="Also log to stderr"
    )
    daemon.set_defaults(func=cmd_daemon)

    status = sub.add_parser("status", help="List tracked sessions")
    status.set_defaults(func=cmd_status)

    session = sub.add_parser("session", help="Show one session by id or pane locator")
    session.add_argument("target", help="Session id, or locator like main:0.1")
    session.set_defaults(func=cmd_session)

    events = sub.add_parser("events", help="Show recent ledger events")
    events.add_argument("--session", help="Only events for this session id")
    events.add_argument("--limit", type=int, default=DEFAULT_EVENT_LIMIT)
    events.set_defaults(func=cmd_events)

    for query_cmd in (status, session, events):
        query_cmd.add_argument("--socket-path", default=str(QUERY_SOCKET))

    hook = sub.add_parser("hook", help="Forward a hook payload from stdin")
    hook.add_argument("--kind", help="Hook kind when the payload lacks one")
    hook.add_argument("--socket-path", default=str(HOOK_SOCKET))
    hook.set_defaults(func=cmd_hook)

    scan = sub.add_parser("scan", help="Show all tmux panes and which look like Claude")
    scan.set_defaults(func=cmd_scan)

    return parser


def run(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        return args.func(args)
    except DaemonUnavailable as e:
        print(f"claude-admin: {e}", file=sys.stderr)
        return 2
    except AdminError as e:
        print(f"claude-admin: {e}", file=sys.stderr)
        return 1


def main() -> None:
    """Entry point for the claude-admin command."""
    sys.exit(run())


if __name__ == "__main__":
    main()
