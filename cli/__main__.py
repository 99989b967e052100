"""Entry point for running the CLI as a module."""

import argparse
import asyncio
import sys

from .finagent_cli import main

PERSONAS = ("general", "analyst", "trader", "advisor", "riskManager", "economist")


def parse_args() -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Interactive CLI for the finagent chat API",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--host",
        type=str,
        default="localhost",
        help="Server host (default: localhost)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8080,
        help="Server port (default: 8080)",
    )
    parser.add_argument(
        "--persona",
        choices=PERSONAS,
        default="general",
        help="Assistant persona (default: general)",
    )
    parser.add_argument(
        "--user-id",
        type=str,
        default=None,
        help="User id for the event subscription (default: generated)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--no-stream",
        action="store_true",
        help="Wait for the full answer instead of streaming it",
    )

    return parser.parse_args()


def cli_entry() -> None:
    """CLI entry point."""
    args = parse_args()

    try:
        asyncio.run(
            main(
                host=args.host,
                port=args.port,
                persona=args.persona,
                user_id=args.user_id,
                debug=args.debug,
                stream=not args.no_stream,
            )
        )
    except KeyboardInterrupt:
        sys.exit(0)


if __name__ == "__main__":
    cli_entry()
