"""Standalone valwatch - connect to VALORANT and print live events.

Usage:
    python -m valwatch.standalone                 # session info + live events
    python -m valwatch.standalone --events-only   # no local API, just the log
    python -m valwatch.standalone --mcp           # run the MCP server on stdio

Logs are written to ~/.valwatch/debug.log for bug reports.
"""

import argparse
import json
import logging
import signal
import sys
import threading
import traceback
from datetime import datetime
from pathlib import Path
from typing import Optional

from valwatch import __version__
from valwatch.auth import SessionManager
from valwatch.bus import EventBus
from valwatch.errors import ValorantError
from valwatch.lockfile import read_lockfile
from valwatch.settings import SETTINGS_DIR, get_settings
from valwatch.tailer import LogTailer, TailerState

logger = logging.getLogger(__name__)

LOG_DIR = SETTINGS_DIR
LOG_FILE = LOG_DIR / "debug.log"


def setup_logging(verbose: bool = False) -> None:
    """Debug log to file, INFO (or DEBUG with --verbose) to the console."""
    LOG_DIR.mkdir(parents=True, exist_ok=True)

    # Set up file handler with detailed format
    file_handler = logging.FileHandler(LOG_FILE, mode='a', encoding='utf-8')
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(
        '%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    ))

    # Configure root logger directly (basicConfig is a no-op if already configured)
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    for h in root_logger.handlers[:]:
        root_logger.removeHandler(h)
    root_logger.addHandler(file_handler)

    # Console goes to stderr so stdout stays clean for events / MCP stdio
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    console_handler.setFormatter(logging.Formatter('%(message)s'))
    root_logger.addHandler(console_handler)


def print_session(lockfile_path: Optional[str]) -> None:
    """Authenticate against the local API and print routing info."""
    settings = get_settings()
    credentials = read_lockfile(Path(lockfile_path) if lockfile_path else None)
    manager = SessionManager.connect(
        credentials=credentials,
        timeout=settings.get("http_timeout"),
    )
    session = manager.snapshot()
    print(json.dumps({
        "puuid": session.player_id,
        "shard": session.shard,
        "region": session.region,
    }))


def stream_events(log_path: Optional[str], as_json: bool) -> int:
    """Tail the game log and print events until interrupted."""
    settings = get_settings()
    bus = EventBus(capacity=settings.get("buffer_size"))
    tailer = LogTailer(
        bus,
        log_path=log_path,
        poll_interval=settings.get("poll_interval"),
    )

    stop = threading.Event()
    signal.signal(signal.SIGINT, lambda *_: stop.set())

    with bus.subscribe() as sub:
        if not tailer.start():
            print(f"Could not open log file: {tailer.log_path}", file=sys.stderr)
            return 1

        logger.info(f"Watching {tailer.log_path} (Ctrl+C to quit)")
        try:
            while not stop.is_set() and tailer.state == TailerState.TAILING:
                event = sub.get(timeout=0.5)
                if event is None:
                    continue
                if as_json:
                    print(json.dumps(event.to_dict()), flush=True)
                else:
                    stamp = datetime.now().strftime("%H:%M:%S")
                    fields = {k: v for k, v in event.to_dict().items() if k != "type"}
                    extra = " ".join(f"{k}={v}" for k, v in fields.items())
                    print(f"[{stamp}] {event.type} {extra}".rstrip(), flush=True)
        finally:
            tailer.stop()
            bus.close()

    if sub.dropped:
        logger.info(f"{sub.dropped} event(s) dropped by a full buffer")
    return 0


def main() -> None:
    """Entry point for the valwatch command."""
    parser = argparse.ArgumentParser(
        description="valwatch - observe a running VALORANT client",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  valwatch
  valwatch --events-only --json
  valwatch --log-path /tmp/ShooterGame.log --events-only
  valwatch --mcp

Environment variables:
  VALORANT_LOG_PATH   Override the ShooterGame.log location
  RIOT_LOCKFILE_PATH  Override the Riot Client lockfile location

Debug logs are written to ~/.valwatch/debug.log
        """
    )

    parser.add_argument("--log-path", help="Path to ShooterGame.log")
    parser.add_argument("--lockfile", help="Path to the Riot Client lockfile")
    parser.add_argument(
        "--events-only",
        action="store_true",
        help="Skip the local API handshake and only stream log events"
    )
    parser.add_argument("--json", action="store_true", help="Print events as JSON lines")
    parser.add_argument("--mcp", action="store_true", help="Run the MCP server on stdio")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug output on the console")
    parser.add_argument(
        "--show-log",
        action="store_true",
        help="Show the debug log file path and exit"
    )
    parser.add_argument("--version", action="version", version=f"valwatch {__version__}")

    args = parser.parse_args()

    if args.show_log:
        print(f"Debug log: {LOG_FILE}")
        if LOG_FILE.exists():
            print(f"Size: {LOG_FILE.stat().st_size:,} bytes")
        return

    setup_logging(args.verbose)

    logger.debug("=" * 60)
    logger.debug(f"VALWATCH {__version__} STARTING at {datetime.now().isoformat()}")
    logger.debug(f"Python: {sys.version}")
    logger.debug("=" * 60)

    if args.mcp:
        from valwatch.server import mcp, start_watching

        start_watching()
        mcp.run()
        return

    try:
        if not args.events_only:
            print_session(args.lockfile or get_settings().get("lockfile_path"))
        log_path = args.log_path or get_settings().get("log_path")
        sys.exit(stream_events(log_path, args.json))
    except ValorantError as e:
        logger.error(str(e))
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        logger.debug(traceback.format_exc())
        print(f"\nFatal error: {e}")
        print(f"See debug log for details: {LOG_FILE}")
        sys.exit(1)


if __name__ == "__main__":
    main()
