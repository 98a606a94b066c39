"""
Main CLI entry point for chatlog.

Replays recorded agent transcripts and follows live tasks on a bridge.
"""

import argparse
import logging
import os
import sys

from chatlog import __version__

from .._client import ChatLog
from .registry import registry
from .util import graceful_main


def _real_main(argv: list[str]) -> int:
    """Parse arguments and dispatch to the selected command."""
    if not registry.get_primary_commands():
        registry.auto_discover_commands()

    parser = argparse.ArgumentParser(
        prog="chatlog",
        description="chatlog - agent transcript normalization and merge engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--base-url", help="Bridge URL (or set CHATLOG_BRIDGE_URL environment variable)"
    )
    parser.add_argument("--token", help="Bridge token (or set CHATLOG_TOKEN environment variable)")
    parser.add_argument(
        "--dev",
        action="store_true",
        help="Use a local bridge (http://127.0.0.1:8765, or port from CHATLOG_PORT env var)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")
    for command in registry.get_primary_commands():
        subparser = subparsers.add_parser(
            command.name, aliases=command.aliases, help=command.description
        )
        command.add_arguments(subparser)

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG, format="%(asctime)s %(name)s %(levelname)s %(message)s"
        )

    base_url = args.base_url
    if args.dev:
        dev_port = os.getenv("CHATLOG_PORT", "8765")
        base_url = f"http://127.0.0.1:{dev_port}"

    try:
        command = registry.get_command(args.command)
    except KeyError:
        print(f"❌ Unknown command: {args.command}")
        return 1

    client = ChatLog(base_url=base_url, token=args.token) if command.needs_client(args) else None
    try:
        return command.execute(args, client)
    except Exception as e:
        print(f"❌ Command execution failed: {e}")
        return 1
    finally:
        if client is not None:
            client.close()


def main() -> None:
    """Console script entry point with graceful interrupt handling."""
    code = graceful_main(_real_main, sys.argv[1:])
    raise SystemExit(code)


if __name__ == "__main__":
    main()
