"""Command-line interface for the Transcript Replay Broadcaster.

WHY: Operators need to run the API server, check which transcripts are
available, push a single replay to a webhook without the server, and run
a live bridge from a terminal.

HOW: argparse subcommands:
  serve: run the FastAPI app with uvicorn
  list: print transcripts and their record counts
  replay: replay one transcript to a webhook and exit
  bridge: relay a live transcript to a webhook until interrupted
Async work runs via asyncio.run(). Logging is configured once here.

RULES:
- Status output goes to stderr (not stdout); `list` prints to stdout
- Exit code 0 on success, 1 on delivery or input failure, 2 on usage errors
- LOG_LEVEL from the environment sets the root log level
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import TYPE_CHECKING, List, Optional

from replay_broadcaster.config import (
    API_HOST,
    API_PORT,
    BRIDGE_URL,
    LOG_LEVEL,
    TRANSCRIPT_DIR,
    WEBHOOK_URL,
    load_bridge_token,
)

if TYPE_CHECKING:
    from replay_broadcaster.bridge.adapter import BridgeConfig


def _status(msg: str) -> None:
    """Print a status message to stderr."""
    print(msg, file=sys.stderr, flush=True)


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else getattr(logging, LOG_LEVEL, logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="replay-broadcaster",
        description="Replay recorded transcripts in real time and relay live transcripts.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP/WebSocket API server.")
    serve.add_argument("--host", default=API_HOST, help="Bind address (default: %(default)s).")
    serve.add_argument("--port", type=int, default=API_PORT, help="Port (default: %(default)s).")

    lst = sub.add_parser("list", help="List available transcripts.")
    lst.add_argument("--dir", default=TRANSCRIPT_DIR, help="Transcript directory (default: %(default)s).")

    replay = sub.add_parser("replay", help="Replay a transcript to a webhook.")
    replay.add_argument("file", help="Path to the CSV transcript.")
    replay.add_argument("--webhook", default=WEBHOOK_URL, help="Webhook URL (default: WEBHOOK_URL).")
    replay.add_argument("--speed", type=float, default=1.0, help="Playback speed multiplier.")

    bridge = sub.add_parser("bridge", help="Relay a live transcript to a webhook.")
    bridge.add_argument("--transcript-id", required=True, help="Live transcript identifier.")
    bridge.add_argument("--webhook", default=WEBHOOK_URL, help="Webhook URL (default: WEBHOOK_URL).")
    bridge.add_argument("--url", default=BRIDGE_URL, help="Live source URL (default: %(default)s).")

    return parser


def _cmd_serve(args: argparse.Namespace) -> int:
    from replay_broadcaster.server.app import run_api

    run_api(host=args.host, port=args.port)
    return 0


def _cmd_list(args: argparse.Namespace) -> int:
    from replay_broadcaster.core.loader import load_all_transcripts

    files = load_all_transcripts(args.dir)
    if not files:
        _status("No transcripts found in {}".format(args.dir))
        return 0
    for f in files:
        print("{}\t{} records".format(f.filename, len(f.records)))
    return 0


async def _replay_file(path: str, webhook: str, speed: float) -> int:
    from replay_broadcaster.core.loader import load_transcript
    from replay_broadcaster.server.scheduler import replay_session
    from replay_broadcaster.server.sessions import SessionStore, SinkKind
    from replay_broadcaster.sinks.webhook import WebhookDeliveryError, WebhookSink

    records = load_transcript(path)
    store = SessionStore()
    session = store.create_session(records, SinkKind.WEBHOOK, filename=path)
    _status("Replaying {} records from {} to {} (session {})".format(
        len(records), path, webhook, session.id))

    async with WebhookSink(webhook) as sink:
        try:
            result = await replay_session(session.id, store, sink, speed=speed)
        except WebhookDeliveryError as exc:
            _status("Broadcast failed: {}".format(exc))
            return 1

    _status("Broadcast complete: {}/{} records delivered".format(result.delivered, result.total))
    return 0


def _cmd_replay(args: argparse.Namespace) -> int:
    from replay_broadcaster.core.loader import TranscriptFormatError

    if not args.webhook:
        _status("Error: --webhook is required (or set WEBHOOK_URL).")
        return 2
    if args.speed <= 0:
        _status("Error: --speed must be positive.")
        return 2
    try:
        return asyncio.run(_replay_file(args.file, args.webhook, args.speed))
    except (OSError, TranscriptFormatError) as exc:
        _status("Error: {}".format(exc))
        return 1


async def _run_bridge(config: BridgeConfig) -> int:
    from replay_broadcaster.bridge.adapter import BridgeAdapter
    from replay_broadcaster.bridge.forwarder import WebhookForwarder
    from replay_broadcaster.bridge.manager import run_bridge

    return await run_bridge(BridgeAdapter(config), WebhookForwarder(config.webhook_url))


def _cmd_bridge(args: argparse.Namespace) -> int:
    from replay_broadcaster.bridge.adapter import BridgeConfig

    if not args.webhook:
        _status("Error: --webhook is required (or set WEBHOOK_URL).")
        return 2
    try:
        token = load_bridge_token()
    except ValueError as exc:
        _status("Error: {}".format(exc))
        return 2

    config = BridgeConfig(
        api_token=token,
        transcript_id=args.transcript_id,
        webhook_url=args.webhook,
        url=args.url,
    )
    _status("Bridging live transcript {} to {} (Ctrl+C to stop)".format(
        args.transcript_id, args.webhook))
    try:
        forwarded = asyncio.run(_run_bridge(config))
    except KeyboardInterrupt:
        _status("Bridge stopped.")
        return 0
    _status("Live source closed; {} event(s) forwarded.".format(forwarded))
    return 0


_COMMANDS = {
    "serve": _cmd_serve,
    "list": _cmd_list,
    "replay": _cmd_replay,
    "bridge": _cmd_bridge,
}


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)
    return _COMMANDS[args.command](args)
