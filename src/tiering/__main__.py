"""
Tiering worker entrypoint.

Usage:
    python -m src.tiering archive [--cutoff-days N]
    python -m src.tiering cleanup
    python -m src.tiering run-all [--cutoff-days N]
    python -m src.tiering loop [--interval SECONDS]
"""

import argparse
import sys
from datetime import timedelta
from typing import List, Optional

from src.utils.config import Config
from src.utils.logging import get_logger, setup_logging
from src.utils.shutdown import GracefulShutdown

from .worker import TieringWorker

COMMANDS = ("archive", "cleanup", "run-all", "loop")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="python -m src.tiering",
        description="Record tiering worker: hot-to-cold archival and hot cleanup",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("command", choices=COMMANDS, help="Cycle(s) to run")
    parser.add_argument(
        "--cutoff-days",
        type=int,
        default=None,
        help="Archive records older than this (overrides ARCHIVE_CUTOFF_DAYS)",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Seconds between rounds in loop mode (overrides CYCLE_INTERVAL_SECONDS)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (overrides LOG_LEVEL)",
    )
    args = parser.parse_args(argv)
    if args.cutoff_days is not None and args.cutoff_days <= 0:
        parser.error("--cutoff-days must be positive")
    return args


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    config = Config.from_env()
    setup_logging(
        level=args.log_level or config.log_level,
        json_output=config.log_json,
        job_name="tiering-worker",
    )
    logger = get_logger(__name__)

    # Imported late so --help works without the storage drivers configured.
    from src.storage.factory import build_services

    cutoff_days = args.cutoff_days or config.tiering.cutoff_days
    shutdown = GracefulShutdown(logger)
    shutdown.install_signal_handlers()

    try:
        services = build_services(config)
    except Exception as e:
        logger.error(f"Failed to initialize storage: {type(e).__name__}: {e}", exc_info=True)
        return 1

    worker = TieringWorker(
        services.archival,
        services.cleanup,
        cutoff_age=timedelta(days=cutoff_days),
        status_client=services.redis_client,
        shutdown=shutdown,
    )

    try:
        if args.command == "archive":
            result = worker.run_archival()
            failed = result.failed
        elif args.command == "cleanup":
            result = worker.run_cleanup()
            failed = result.failed
        elif args.command == "run-all":
            archival, cleanup = worker.run_all()
            failed = archival.failed + (cleanup.failed if cleanup else 0)
        else:
            interval = args.interval or config.tiering.cycle_interval_seconds
            worker.run_loop(interval)
            failed = 0
    except Exception as e:
        logger.error(f"Fatal error: {type(e).__name__}: {e}", exc_info=True)
        return 1
    finally:
        services.close()

    # Failed records are dead-lettered and retried next cycle; exit 2 flags them.
    return 2 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
