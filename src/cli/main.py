"""Main CLI entry point for chapterdl."""

import argparse
import sys

from src.utils.logger import setup_logging

from .commands.acquire import setup_acquire_commands


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chapterdl", description="Download manga chapters from online sources into CBZ archives"
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--storage-path", help="Override the storage directory for staging and chapters")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Setup acquisition commands
    setup_acquire_commands(subparsers)

    return parser


def main(argv=None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    setup_logging(args.debug)

    # Execute command
    if hasattr(args, "func"):
        return args.func(args)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
