"""
Command-line interface for the progression server.

Provides CLI commands for server management:
- init-db: Initialize the database schema
- run: Start the API server
- history show: Print one block of a character's history
- history verify: Check the structural invariants of a character's history
- config: Print the effective configuration

Usage:
    progression-server init-db
    progression-server run [--host HOST] [--port PORT]
    progression-server history show CHARACTER_ID [--block-number N]
    progression-server history verify CHARACTER_ID
    progression-server config

Environment Variables:
    PROG_HOST: Host to bind API server (default: 0.0.0.0)
    PROG_PORT: Port for API server (default: 8000)
    PROG_DB_PATH: SQLite database file (default: data/progression.db)
"""

import argparse
import json
import sys

from progression_server.logging_config import configure_logging


def cmd_init_db(args: argparse.Namespace) -> int:
    """
    Initialize the database schema.

    Returns:
        0 on success, 1 on error
    """
    from progression_server.db.errors import DatabaseError
    from progression_server.db.schema import init_database

    try:
        init_database()
        print("Database initialized successfully.")
        return 0
    except (DatabaseError, OSError, ValueError) as e:
        print(f"Error initializing database: {e}", file=sys.stderr)
        return 1


def cmd_run(args: argparse.Namespace) -> int:
    """
    Start the API server in the foreground.

    Returns:
        0 on clean shutdown, 1 on startup error
    """
    from progression_server.api.server import start_server

    try:
        start_server(host=getattr(args, "host", None), port=getattr(args, "port", None))
        return 0
    except KeyboardInterrupt:
        print("\nServer stopped.")
        return 0
    except OSError as e:
        print(f"Error starting server: {e}", file=sys.stderr)
        return 1


def _store():
    from progression_server.db.history_repo import HistoryBlockStore, StoreSettings

    return HistoryBlockStore(StoreSettings.from_config())


def cmd_history_show(args: argparse.Namespace) -> int:
    """Print one history page as JSON. Returns 1 when there is nothing to show."""
    from progression_server.ledger import LedgerReader
    from progression_server.ledger.errors import LedgerNotFoundError

    try:
        page = LedgerReader(_store()).get_page(args.character_id, args.block_number)
    except LedgerNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    print(json.dumps(page.to_wire(), indent=2, ensure_ascii=False))
    return 0


def cmd_history_verify(args: argparse.Namespace) -> int:
    """Verify a character's history. Returns 0 for ok/empty, 2 for corrupt."""
    from progression_server.ledger import verify_history

    result = verify_history(_store(), args.character_id)
    if result.status == "empty":
        print(f"No history for character {args.character_id}.")
        return 0
    if result.status == "corrupt":
        print(f"CORRUPT: {result.error_detail}", file=sys.stderr)
        return 2
    print(
        f"OK: {result.block_count} blocks, {result.record_count} records, "
        f"last record #{result.last_record_number}"
    )
    return 0


def cmd_config(args: argparse.Namespace) -> int:
    """Print the effective configuration."""
    from progression_server.config import print_config_summary

    print_config_summary()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="progression-server",
        description="Progression Server - character progression history ledger",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # init-db command
    init_parser = subparsers.add_parser(
        "init-db",
        help="Initialize the database schema",
        description="Create the history block and character tables if they do not exist.",
    )
    init_parser.set_defaults(func=cmd_init_db)

    # run command
    run_parser = subparsers.add_parser(
        "run",
        help="Run the API server",
        description="Initialize the database if needed and start the API server.",
    )
    run_parser.add_argument("--host", default=None, help="Host to bind (default: config)")
    run_parser.add_argument("--port", type=int, default=None, help="Port (default: config)")
    run_parser.set_defaults(func=cmd_run)

    # history commands
    history_parser = subparsers.add_parser("history", help="Inspect character history")
    history_sub = history_parser.add_subparsers(dest="history_command")

    show_parser = history_sub.add_parser("show", help="Print one block of history as JSON")
    show_parser.add_argument("character_id")
    show_parser.add_argument(
        "--block-number", type=int, default=None, help="Block to print (default: latest)"
    )
    show_parser.set_defaults(func=cmd_history_show)

    verify_parser = history_sub.add_parser("verify", help="Check history chain and numbering")
    verify_parser.add_argument("character_id")
    verify_parser.set_defaults(func=cmd_history_verify)

    # config command
    config_parser = subparsers.add_parser("config", help="Print the effective configuration")
    config_parser.set_defaults(func=cmd_config)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    configure_logging()
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
