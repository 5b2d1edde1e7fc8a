"""
Command-line interface for the AntSol Indexer.

Provides CLI commands for operating the indexer:
- init-db: Initialize the database schema
- run: Start the query API and the scan loop (separate processes)
- index: Run the scan loop in the foreground
- serve: Run only the query API
- status: Print the scan cursor and error counters
- ingest: Ingest one log line without going through HTTP

Usage:
    antsol-indexer init-db
    antsol-indexer run [--host HOST] [--port PORT] [--api-only | --no-indexer]
    antsol-indexer index [--start-slot SLOT]
    antsol-indexer serve [--host HOST] [--port PORT]
    antsol-indexer status
    antsol-indexer ingest LOG [--signature SIG] [--slot SLOT] [--block-time UNIX]

Environment Variables:
    SOLANA_RPC_URL: Ledger RPC endpoint (default: https://api.devnet.solana.com)
    ANTSOL_PROGRAM_ID: Registry program id (required for indexing)
    INDEXER_START_SLOT: Backfill start when no cursor is stored
    INDEXER_POLL_INTERVAL_SECS: Seconds between tip polls (default: 2)
    ANTSOL_HOST / ANTSOL_PORT: API bind address (default: 0.0.0.0:8080)
"""

import argparse
import logging
import signal
import sys
from dataclasses import replace

logger = logging.getLogger(__name__)


def cmd_init_db(args: argparse.Namespace) -> int:
    """
    Initialize the database schema.

    Returns:
        0 on success, 1 on error
    """
    from antsol_indexer.db.errors import DatabaseError
    from antsol_indexer.db.schema import init_database

    try:
        init_database()
        print("Database initialized successfully.")
        return 0
    except DatabaseError as e:
        print(f"Error initializing database: {e}", file=sys.stderr)
        return 1


def cmd_status(args: argparse.Namespace) -> int:
    """Print the stored scan cursor and error counters."""
    from antsol_indexer.config import print_config_summary
    from antsol_indexer.db.errors import DatabaseError
    from antsol_indexer.db.state_repo import get_indexer_state

    print_config_summary()
    try:
        state = get_indexer_state()
    except DatabaseError as e:
        print(f"Error reading indexer state: {e}", file=sys.stderr)
        return 1
    if state is None:
        print("Indexer state not initialised. Run 'antsol-indexer init-db' first.")
        return 1

    print(f"Last processed slot: {state['last_processed_slot']}")
    print(f"Last block time:     {state['last_processed_block_time'] or '-'}")
    print(f"Status:              {state['status']}")
    print(f"Error count:         {state['error_count']}")
    print(f"Last error:          {state['last_error'] or '-'}")
    print(f"Failed slots:        {state['failed_slots']}")
    return 0


def cmd_ingest(args: argparse.Namespace) -> int:
    """Ingest a single log line through the shared ingestion path."""
    from antsol_indexer.api.routes.ingest import ingest_log_line
    from antsol_indexer.db.errors import DatabaseError
    from antsol_indexer.db.schema import init_database
    from antsol_indexer.indexer.ingestion import IngestError

    try:
        init_database()
        result = ingest_log_line(
            args.log,
            signature=args.signature,
            slot=args.slot,
            block_time=args.block_time,
        )
    except (DatabaseError, IngestError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(result.message)
    if result.event is not None:
        event = result.event
        print(f"  {event.event_type}: {event.package_name} {event.version or ''}".rstrip())
    if result.content_address:
        print(f"  content address: {result.content_address}")
    return 0


# ============================================================================
# PROCESS FUNCTIONS
# ============================================================================
# These functions must be defined at module level (not inside cmd_run) because
# multiprocessing on macOS/Windows uses 'spawn' which pickles the target function.
# ============================================================================


def _run_api_server(host: str | None, port: int | None) -> None:
    """Run the FastAPI server in a subprocess."""
    from antsol_indexer.api.server import start_server
    from antsol_indexer.logging_setup import configure_logging

    configure_logging()
    start_server(host=host, port=port)


def _run_indexer(start_slot: int | None) -> int:
    """
    Run the scan loop until SIGINT/SIGTERM.

    Returns:
        0 on clean shutdown, 1 if the indexer cannot start.
    """
    from antsol_indexer.config import config
    from antsol_indexer.indexer.controller import ScanController
    from antsol_indexer.indexer.ledger_client import SolanaRpcClient
    from antsol_indexer.logging_setup import configure_logging

    configure_logging()

    if not config.program_configured:
        logger.error("ANTSOL_PROGRAM_ID is not set; the indexer cannot start")
        return 1

    settings = config.indexer
    if start_slot is not None:
        settings = replace(settings, start_slot=start_slot)

    ledger = SolanaRpcClient(
        config.ledger.rpc_url,
        commitment=config.ledger.commitment,
        timeout=config.ledger.timeout_seconds,
    )
    controller = ScanController(ledger, config.ledger.program_id, settings)

    def _request_stop(signum, frame):
        logger.info("Received signal %d; stopping after current slot", signum)
        controller.stop()

    signal.signal(signal.SIGINT, _request_stop)
    signal.signal(signal.SIGTERM, _request_stop)

    logger.info("Indexer using RPC %s", ledger.rpc_url)
    controller.run_forever()
    return 0


def _run_indexer_process(start_slot: int | None) -> None:
    sys.exit(_run_indexer(start_slot))


def cmd_index(args: argparse.Namespace) -> int:
    """Run the scan loop in the foreground."""
    from antsol_indexer.db.errors import DatabaseError
    from antsol_indexer.db.schema import init_database

    try:
        init_database()
    except DatabaseError as e:
        print(f"Error initializing database: {e}", file=sys.stderr)
        return 1
    return _run_indexer(getattr(args, "start_slot", None))


def cmd_serve(args: argparse.Namespace) -> int:
    """Run only the query API in the foreground."""
    from antsol_indexer.db.schema import init_database

    init_database()
    try:
        _run_api_server(getattr(args, "host", None), getattr(args, "port", None))
        return 0
    except KeyboardInterrupt:
        print("\nServer stopped.")
        return 0


def cmd_run(args: argparse.Namespace) -> int:
    """
    Run the query API and the scan loop.

    The two run as separate processes that share only the SQLite file.

    Args:
        args: Parsed command-line arguments. Expected attributes:
            - host (str | None): API bind host override
            - port (int | None): API port override
            - api_only (bool): Start only the API
            - no_indexer (bool): Same effect as ``api_only``

    Returns:
        0 on clean shutdown (Ctrl+C), 1 on startup error.
    """
    import multiprocessing

    from antsol_indexer.config import config
    from antsol_indexer.db.errors import DatabaseError
    from antsol_indexer.db.schema import init_database

    try:
        init_database()
    except DatabaseError as e:
        print(f"Error initializing database: {e}", file=sys.stderr)
        return 1

    host = getattr(args, "host", None)
    port = getattr(args, "port", None)
    api_only = (
        getattr(args, "api_only", False)
        or getattr(args, "no_indexer", False)
        or not config.indexer.enabled
    )

    if not api_only and not config.program_configured:
        print(
            "Error: ANTSOL_PROGRAM_ID is not set.\n"
            "Set it (or [ledger] program_id in config/indexer.ini), "
            "or pass --api-only.",
            file=sys.stderr,
        )
        return 1

    try:
        if api_only:
            _run_api_server(host, port)
            return 0

        api_process = multiprocessing.Process(
            target=_run_api_server,
            args=(host, port),
            name="antsol-api",
        )
        indexer_process = multiprocessing.Process(
            target=_run_indexer_process,
            args=(None,),
            name="antsol-indexer",
        )
        api_process.start()
        indexer_process.start()
        api_process.join()
        indexer_process.join()
        return 0

    except KeyboardInterrupt:
        print("\nServer stopped.")
        return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        prog="antsol-indexer",
        description="AntSol Indexer - ledger scanner and query API for the AntSol registry",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # init-db command
    init_parser = subparsers.add_parser(
        "init-db",
        help="Initialize the database schema",
        description="Create tables, indexes and the indexer state row if missing.",
    )
    init_parser.set_defaults(func=cmd_init_db)

    # run command
    run_parser = subparsers.add_parser(
        "run",
        help="Run the API and the indexer",
        description="Start the query API and the scan loop as separate processes.",
    )
    run_parser.add_argument("--host", type=str, help="API bind host (default: 0.0.0.0)")
    run_parser.add_argument("--port", "-p", type=int, help="API port (default: 8080)")
    run_mode = run_parser.add_mutually_exclusive_group()
    run_mode.add_argument("--api-only", action="store_true", help="Run only the API server")
    run_mode.add_argument("--no-indexer", action="store_true", help="Do not start the scan loop")
    run_parser.set_defaults(func=cmd_run)

    # index command
    index_parser = subparsers.add_parser(
        "index",
        help="Run the scan loop in the foreground",
        description="Follow the ledger tip and ingest registry events until interrupted.",
    )
    index_parser.add_argument(
        "--start-slot",
        type=int,
        help="Backfill from this slot when no cursor is stored (default: INDEXER_START_SLOT)",
    )
    index_parser.set_defaults(func=cmd_index)

    # serve command
    serve_parser = subparsers.add_parser("serve", help="Run only the query API")
    serve_parser.add_argument("--host", type=str, help="API bind host")
    serve_parser.add_argument("--port", "-p", type=int, help="API port")
    serve_parser.set_defaults(func=cmd_serve)

    # status command
    status_parser = subparsers.add_parser("status", help="Show the indexer cursor and errors")
    status_parser.set_defaults(func=cmd_status)

    # ingest command
    ingest_parser = subparsers.add_parser(
        "ingest",
        help="Ingest one program log line",
        description="Parse a log line and ingest it exactly as the scan loop would.",
    )
    ingest_parser.add_argument("log", help="The raw program log line")
    ingest_parser.add_argument("--signature", help="Transaction signature (default: manual_sig)")
    ingest_parser.add_argument("--slot", type=int, help="Ledger slot (default: 0)")
    ingest_parser.add_argument("--block-time", type=int, help="Block time in unix seconds")
    ingest_parser.set_defaults(func=cmd_ingest)

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
