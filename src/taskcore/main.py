"""Command-line interface for the task dispatch server."""

import argparse
import asyncio
import logging
import sys
from datetime import timedelta

from .logging_utils import configure_logging
from .scheduling.config import DEFAULT_DATABASE_PATH, DEFAULT_MCP_HOST, DEFAULT_MCP_PORT
from .scheduling.mcp_server import create_dispatcher, run_server, set_dispatcher

logger = logging.getLogger(__name__)


def create_argument_parser() -> argparse.ArgumentParser:
    """
    Create and configure the argument parser for the CLI.

    Returns:
        Configured ArgumentParser instance
    """
    parser = argparse.ArgumentParser(
        description="Task Dispatch Server - priority scheduling of tasks over MCP",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  taskcore                                  # Serve over stdio
  taskcore --transport http                 # Serve over HTTP/SSE
  taskcore --db-path /tmp/tasks.db -v       # Custom database, verbose logging
  taskcore --show-stats                     # Print task counts and exit
  taskcore --show-stuck 15                  # Print tasks processing > 15 min and exit

Controls:
  Ctrl+C    - Stop and exit gracefully
        """,
    )

    parser.add_argument(
        "--transport",
        choices=("stdio", "sse", "http"),
        default="stdio",
        help="MCP transport; 'http' is an alias for 'sse' (default: stdio)",
    )

    parser.add_argument(
        "--db-path",
        type=str,
        default=DEFAULT_DATABASE_PATH,
        metavar="PATH",
        help=f"SQLite database file (default: {DEFAULT_DATABASE_PATH})",
    )

    parser.add_argument(
        "--host",
        type=str,
        default=DEFAULT_MCP_HOST,
        help=f"Host to bind for HTTP/SSE (default: {DEFAULT_MCP_HOST})",
    )

    parser.add_argument(
        "--port",
        type=int,
        default=DEFAULT_MCP_PORT,
        help=f"Port to bind for HTTP/SSE (default: {DEFAULT_MCP_PORT})",
    )

    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging and debug information",
    )

    parser.add_argument(
        "--trace",
        action="store_true",
        help="Enable trace logging (most verbose, includes all debug info)",
    )

    parser.add_argument(
        "--show-stats",
        action="store_true",
        help="Print task counts by status and exit",
    )

    parser.add_argument(
        "--show-stuck",
        type=float,
        nargs="?",
        const=-1.0,
        default=None,
        metavar="MINUTES",
        help="Print tasks processing for longer than MINUTES (default timeout if omitted) and exit",
    )

    return parser


async def show_reports(
    db_path: str, show_stats: bool, stuck_minutes: float | None
) -> None:
    """
    Print the requested reports from the task store.

    Args:
        db_path: SQLite database file
        show_stats: Print task counts by status
        stuck_minutes: Print stuck tasks; negative means the default timeout
    """
    dispatcher = await create_dispatcher(db_path)
    try:
        if show_stats:
            stats = await dispatcher.get_statistics()
            print("📊 Task statistics:")
            for key, value in stats.items():
                print(f"   {key:<12} {value}")

        if stuck_minutes is not None:
            max_age = None if stuck_minutes < 0 else timedelta(minutes=stuck_minutes)
            stuck = await dispatcher.find_stuck_tasks(max_age)
            if not stuck:
                print("✅ No stuck tasks.")
            for task in stuck:
                print(
                    f"⚠️  {task.id} {task.name} (priority={task.priority}, "
                    f"last update {task.updated_at.isoformat(timespec='seconds')})"
                )
    finally:
        await dispatcher.shutdown()


def handle_arguments(args: argparse.Namespace) -> tuple[bool, bool]:
    """
    Handle parsed command-line arguments.

    Args:
        args: Parsed arguments from argparse

    Returns:
        Tuple of (success, should_continue):
        - success: True if all operations succeeded, False if any failed
        - should_continue: True if the server should be started
    """
    configure_logging(verbose=args.verbose, trace=args.trace)

    if args.show_stats or args.show_stuck is not None:
        try:
            asyncio.run(show_reports(args.db_path, args.show_stats, args.show_stuck))
        except Exception as e:
            print(f"❌ Error reading task store: {e}")
            return False, False
        return True, False

    return True, True


def serve(args: argparse.Namespace) -> None:
    """Initialize the dispatcher and run the MCP server until interrupted."""
    transport = "sse" if args.transport == "http" else args.transport

    dispatcher = asyncio.run(create_dispatcher(args.db_path))
    set_dispatcher(dispatcher)
    try:
        run_server(transport=transport, host=args.host, port=args.port)
    finally:
        asyncio.run(dispatcher.shutdown())
        set_dispatcher(None)


def cli_entry_with_args() -> None:
    """CLI entry point with argument parsing."""
    parser = create_argument_parser()

    try:
        args = parser.parse_args()

        success, should_continue = handle_arguments(args)

        if not success:
            sys.exit(1)

        if not should_continue:
            sys.exit(0)

        serve(args)

    except KeyboardInterrupt:
        pass  # Graceful shutdown
    except SystemExit:
        # Re-raise SystemExit (from argparse help, etc.)
        raise
    except Exception as e:
        logger.error(f"Server failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    cli_entry_with_args()
