"""
Main CLI entry point for tandem.

Provides commands for chatting and for managing saved sessions.
"""

import argparse
from pathlib import Path
import sys

from tandem import __version__

from ..config import Settings, configure_logging
from ..exceptions import ConfigurationError
from ..store import JSONFileStorage, SessionStore
from .registry import registry
from .util import graceful_main


def _real_main(argv: list[str]) -> int:
    """Real main CLI logic that handles command parsing and execution."""
    if not registry.get_primary_commands():
        registry.auto_discover_commands()

    parser = argparse.ArgumentParser(
        prog="tandem",
        description="tandem - chat with an LLM while a browser agent works",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--base-url", help="Server base URL (or set TANDEM_BASE_URL)")
    parser.add_argument("--store", help="Session file path (or set TANDEM_STORE_PATH)")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
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

    try:
        settings = Settings.from_env()
    except ConfigurationError as e:
        print(f"❌ {e}")
        return 1
    if args.base_url:
        settings.base_url = args.base_url.rstrip("/")
    if args.store:
        settings.store_path = Path(args.store).expanduser()
    configure_logging("DEBUG" if args.debug else settings.log_level)
    args.settings = settings

    try:
        command = registry.get_command(args.command)
    except KeyError:
        print(f"❌ Unknown command: {args.command}")
        return 1

    store = SessionStore(JSONFileStorage(settings.store_path))
    return command.execute(args, store)


def main() -> None:
    """Main CLI entry point with graceful interrupt handling."""
    code = graceful_main(_real_main, sys.argv[1:])
    raise SystemExit(code)


if __name__ == "__main__":
    main()
