"""
tradedesk entry point.

This file handles startup concerns (arg-parsing, env setup, logging) and launches the appropriate
interface (API, or API plus the interactive CLI).
"""

import argparse
import logging
import os
import sys
from pathlib import Path

from tradedesk.api.app import run_api
from tradedesk.config import settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _init_logging(level: str) -> None:
    numeric = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric,
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        stream=sys.stdout,
    )
    # Provider SDKs log every request at INFO
    for noisy in ("httpx", "openai", "google_genai"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------
def main(argv: list[str] | None = None) -> None:
    """
    Main entry point for the tradedesk application.

    Sets up the command-line interface, initializes logging, and starts the API server, optionally
    with the interactive round-table CLI in the foreground.
    """
    if argv is None:
        argv = sys.argv[1:]

    data_dir = Path(settings.DATA_DIR)
    data_dir.mkdir(parents=True, exist_ok=True)
    if not data_dir.is_dir() or not os.access(data_dir, os.W_OK):
        logger.error("Data directory is not writable: %s", data_dir)
        sys.exit(1)

    parser = argparse.ArgumentParser(description="Run the tradedesk agent engine")
    parser.add_argument(
        "--mode",
        choices=["api", "cli"],
        type=str.lower,
        default="api",
        help="Launch the REST API, or the API plus an interactive CLI (default: api)",
    )
    parser.add_argument(
        "--symbol",
        default="US30",
        help="Instrument discussed in CLI mode (default: %(default)s)",
    )
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error", "critical"],
        type=str.lower,
        default=settings.LOG_LEVEL,
        help="Logging level (default from env: %(default)s)",
    )
    args = parser.parse_args(argv)

    settings.LOG_LEVEL = args.log_level
    if settings.JOURNAL_LOG_PATH is None:
        settings.JOURNAL_LOG_PATH = str(data_dir / "journal.jsonl")
    # The reloading server imports the app in a fresh process that only sees the environment.
    os.environ["LOG_LEVEL"] = settings.LOG_LEVEL
    os.environ["JOURNAL_LOG_PATH"] = settings.JOURNAL_LOG_PATH

    _init_logging(settings.LOG_LEVEL)

    logger.info("Starting tradedesk [%s mode]", args.mode)

    if args.mode == "api":
        run_api(host="0.0.0.0", port=settings.API_PORT, reload=settings.DEBUG)
        return

    import threading  # pylint: disable=import-outside-toplevel

    # Start API server in a separate thread
    api_thread = threading.Thread(
        target=run_api,
        kwargs={
            "host": "0.0.0.0",
            "port": settings.API_PORT,
            "reload": False,  # Reload doesn't work well with threading
            "log_level": "warning",
        },
        daemon=True,
    )
    api_thread.start()

    from tradedesk.client.cli import run_cli  # pylint: disable=import-outside-toplevel

    run_cli(symbol=args.symbol.upper())


if __name__ == "__main__":
    main()
