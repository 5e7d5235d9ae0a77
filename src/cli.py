#!/usr/bin/env python3
"""
CLI for the time tracker daemon and its clients.

Usage:
    python -m src.cli daemon
    python -m src.cli watch ~/projects/website --label website
    python -m src.cli today
"""

import argparse
import logging
import os
import sys
from datetime import datetime, time as dt_time
from pathlib import Path
from typing import List

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import httpx

from src.tracker import (
    HTTPError,
    Interval,
    IntervalReport,
    TrackerAPIService,
    TrackerClient,
    TrackerConfig,
    TrackerError,
    TrackerService,
    prepare_socket,
)


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("cli")

DAY = 24 * 60 * 60


def _config(args) -> TrackerConfig:
    overrides = {}
    if getattr(args, "data_dir", None):
        overrides["data_dir"] = Path(args.data_dir).expanduser()
    return TrackerConfig.from_env(**overrides)


def _format_duration(seconds: int) -> str:
    hours, rest = divmod(max(0, seconds), 3600)
    return f"{hours}h {rest // 60:02d}m"


def _format_time(t: int) -> str:
    return datetime.fromtimestamp(t).strftime("%Y-%m-%d %H:%M:%S")


def _print_intervals(intervals: List[Interval]) -> None:
    for interval in intervals:
        print(
            f"  {_format_time(interval.start)} - {_format_time(interval.end)}"
            f"  ({_format_duration(interval.duration)})"
        )


def _print_report(report: IntervalReport) -> None:
    total = sum(i.duration for i in report.intervals)
    print(f"Total: {_format_duration(total)}")
    _print_intervals(report.intervals)
    if report.end_gap:
        print(f"  (includes {_format_duration(report.end_gap)} since the last activity)")

    for label in sorted(report.by_label):
        intervals = report.by_label[label]
        print(f"\n{label}: {_format_duration(sum(i.duration for i in intervals))}")
        _print_intervals(intervals)


def _run_client(args, action) -> None:
    """Run `action(client)` against the daemon, exiting non-zero on failure."""
    config = _config(args)
    try:
        with TrackerClient(config.socket_path) as client:
            action(client)
    except HTTPError as e:
        logger.error(f"Request failed: {e.message}")
        sys.exit(1)
    except httpx.TransportError as e:
        logger.error(f"Could not reach the daemon at {config.socket_path}: {e}")
        sys.exit(1)


def cmd_daemon(args):
    """Run the tracker daemon in the foreground."""
    config = _config(args)
    os.makedirs(config.data_dir, exist_ok=True)

    try:
        prepare_socket(config.socket_path)
    except TrackerError as e:
        logger.error(str(e))
        sys.exit(1)

    fatal = []
    api = None

    def on_fatal(error):
        fatal.append(error)
        if api is not None:
            api.stop()

    service = TrackerService(config, on_fatal=on_fatal)
    try:
        service.start()
    except TrackerError as e:
        logger.error(f"Failed to start tracker: {e}")
        sys.exit(1)

    api = TrackerAPIService(config.socket_path, service)
    try:
        if not fatal:
            api.serve()
    finally:
        service.stop()

    if fatal:
        logger.error(f"Tracker stopped: {fatal[0]}")
        sys.exit(1)


def cmd_watch(args):
    """Start watching a directory."""
    root = Path(args.dir).expanduser().resolve()
    if not root.is_dir():
        logger.error(f"Not a directory: {root}")
        sys.exit(1)

    _run_client(args, lambda client: client.start_watch(str(root), args.label))
    print(f"Watching {root}")


def cmd_tick(args):
    """Record a tick for a label."""
    _run_client(args, lambda client: client.record_tick(args.label))


def cmd_watches(args):
    """List the live watches."""
    def action(client):
        watches = client.get_watches()
        if not watches:
            print("No watches")
            return
        for w in watches:
            last = _format_time(w.last_write) if w.last_write else "never"
            print(f"{w.dir}  [{w.label}]  last write: {last}")

    _run_client(args, action)


def cmd_intervals(args):
    """Show activity intervals in a time window."""
    _run_client(args, lambda client: _print_report(client.get_intervals(args.start, args.end)))


def cmd_today(args):
    """Show today's activity."""
    start = int(datetime.combine(datetime.now().date(), dt_time.min).timestamp())
    _run_client(args, lambda client: _print_report(client.get_intervals(start, start + DAY)))


def cmd_status(args):
    """Show whether the daemon is running."""
    _run_client(args, lambda client: print(f"Running, uptime {_format_duration(int(client.status()))}"))


def cmd_clear(args):
    """Delete every tick and watch."""
    if not args.yes:
        logger.error("Refusing to clear without --yes")
        sys.exit(1)
    _run_client(args, lambda client: client.clear())
    print("Cleared all ticks and watches")


def main():
    parser = argparse.ArgumentParser(
        description="Track time spent on projects by watching their directories",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Start the daemon
  python -m src.cli daemon

  # Watch a project directory (label defaults to the directory name)
  python -m src.cli watch ~/projects/website

  # Record activity that leaves no trace on disk
  python -m src.cli tick meetings

  # Show today's intervals
  python -m src.cli today
        """,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--data-dir", default=None, help="Data directory (or TIME_TRACKER_DIR env)")

    subparsers = parser.add_subparsers(dest="command", required=True)

    daemon_parser = subparsers.add_parser("daemon", help="Run the tracker daemon")
    daemon_parser.set_defaults(func=cmd_daemon)

    watch_parser = subparsers.add_parser("watch", help="Watch a directory for activity")
    watch_parser.add_argument("dir", help="Directory to watch")
    watch_parser.add_argument("--label", default=None, help="Label for ticks (default: directory name)")
    watch_parser.set_defaults(func=cmd_watch)

    tick_parser = subparsers.add_parser("tick", help="Record a tick for a label")
    tick_parser.add_argument("label", help="Activity label")
    tick_parser.set_defaults(func=cmd_tick)

    watches_parser = subparsers.add_parser("watches", help="List live watches")
    watches_parser.set_defaults(func=cmd_watches)

    intervals_parser = subparsers.add_parser("intervals", help="Show activity intervals")
    intervals_parser.add_argument("--start", type=int, default=None, help="Window start (unix time)")
    intervals_parser.add_argument("--end", type=int, default=None, help="Window end (unix time)")
    intervals_parser.set_defaults(func=cmd_intervals)

    today_parser = subparsers.add_parser("today", help="Show today's activity")
    today_parser.set_defaults(func=cmd_today)

    status_parser = subparsers.add_parser("status", help="Check whether the daemon is running")
    status_parser.set_defaults(func=cmd_status)

    clear_parser = subparsers.add_parser("clear", help="Delete all ticks and watches")
    clear_parser.add_argument("--yes", action="store_true", help="Confirm deletion")
    clear_parser.set_defaults(func=cmd_clear)

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    args.func(args)


if __name__ == "__main__":
    main()
