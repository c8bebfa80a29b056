"""
Command line entry point for the test data cleanup.

Usage:
    db-sanitizer --confirm                      # pattern + recency + orphan cleanup
    db-sanitizer --confirm --recent-hours=24    # recency window of 24 hours
    db-sanitizer --confirm --patterns-only      # pattern sweep only
    db-sanitizer --confirm --recent-only        # recency + orphan sweeps
    db-sanitizer --confirm --nuclear            # everything except admin users
    db-sanitizer --confirm --total-wipe         # everything, admins included
    db-sanitizer --confirm --reset-collections  # drop and recreate collections
    db-sanitizer --confirm --dry-run            # report what would be deleted

Every mutation is irreversible, so nothing runs without --confirm. The flag is checked before a
connection to the database is opened.
"""

import argparse
import asyncio
from typing import List, Optional, Sequence

from db_sanitizer.config import settings
from db_sanitizer.database import DatabaseManager, db_manager
from db_sanitizer.exceptions import CleanupAborted, ConfirmationMissing, DatabaseConnectionError, InvalidOptions
from db_sanitizer.managers.cleanup_manager import CleanupOptions, DeletionModeController
from db_sanitizer.managers.logging_manager import get_logger
from db_sanitizer.models import CleanupMode

logger = get_logger(prefix="[CLI]")

MODE_FLAGS = {
    "nuclear": CleanupMode.PROTECTED_BULK,
    "total_wipe": CleanupMode.FULL_WIPE,
    "reset_collections": CleanupMode.SCHEMA_RESET,
}

DANGER_BANNERS = {
    CleanupMode.PROTECTED_BULK: (
        "=== NUCLEAR CLEANUP MODE ===",
        "Every document will be deleted except admin users!",
    ),
    CleanupMode.FULL_WIPE: (
        "=== TOTAL WIPE MODE ===",
        "ALL data will be deleted, admin users and every collection included!",
    ),
    CleanupMode.SCHEMA_RESET: (
        "=== RESET COLLECTIONS MODE ===",
        "Every collection will be dropped and recreated; structure, data and indexes are lost!",
    ),
}

EPILOG = """\
cleanup modes:
  normal       test patterns + recent data + orphaned references (default)
  nuclear      delete everything except admin users
  total wipe   delete ALL data, admin users included
  reset        drop and recreate every collection

warnings:
  --nuclear            cannot be undone, only admin users are kept
  --total-wipe         DANGEROUS! deletes everything including admins
  --reset-collections  removes structure, data and indexes

after a cleanup:
  1. run the seed script to create fresh data
  2. check that the application works normally
  3. back up the database once it holds the new data
"""


class CleanupArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that reports bad arguments as InvalidOptions instead of exiting with status 2."""

    def error(self, message):
        raise InvalidOptions(message)


def build_parser() -> argparse.ArgumentParser:
    parser = CleanupArgumentParser(
        prog="db-sanitizer",
        description="Remove test data from the shop database. Every run is irreversible.",
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--confirm", action="store_true", help="required: confirm that you want to delete data")
    parser.add_argument("--patterns-only", action="store_true", help="only delete documents matching test patterns")
    parser.add_argument("--recent-only", action="store_true", help="only delete recent documents and orphans")
    parser.add_argument(
        "--recent-hours",
        type=int,
        default=settings.CLEANUP_RECENT_HOURS,
        metavar="N",
        help=f"recency window in hours (default: {settings.CLEANUP_RECENT_HOURS})",
    )
    parser.add_argument("--nuclear", action="store_true", help="delete everything except admin users")
    parser.add_argument("--total-wipe", action="store_true", help="delete EVERYTHING (dangerous!)")
    parser.add_argument("--reset-collections", action="store_true", help="drop and recreate every collection")
    parser.add_argument("--dry-run", action="store_true", help="list and count candidates without deleting")
    return parser


def parse_options(argv: Optional[Sequence[str]] = None) -> CleanupOptions:
    """Turn command line arguments into validated CleanupOptions.

    Raises:
        ConfirmationMissing: --confirm was not given.
        InvalidOptions: unknown arguments, more than one mode, or a bad flag combination.
    """
    args = build_parser().parse_args(argv)
    if not args.confirm:
        raise ConfirmationMissing()

    selected = [flag for flag in MODE_FLAGS if getattr(args, flag)]
    if len(selected) > 1:
        flags = ", ".join("--" + flag.replace("_", "-") for flag in selected)
        raise InvalidOptions(f"Only one cleanup mode can run at a time (got {flags})", option=flags)

    options = CleanupOptions(
        mode=MODE_FLAGS[selected[0]] if selected else CleanupMode.NORMAL,
        patterns_only=args.patterns_only,
        recent_only=args.recent_only,
        recent_hours=args.recent_hours,
        dry_run=args.dry_run,
    )
    return options.validate()


def log_danger_banner(options: CleanupOptions):
    banner = DANGER_BANNERS.get(options.mode)
    if banner is None:
        return
    for line in banner:
        logger.warning(line)
    if options.dry_run:
        logger.warning("Dry run: nothing will actually be deleted")


async def run_cleanup(options: CleanupOptions, manager: Optional[DatabaseManager] = None) -> bool:
    """Connect, run the cleanup and log the report. Returns False when the run did not complete."""
    manager = manager or db_manager
    if settings.is_production:
        logger.warning("ENV=%s: this run targets a production deployment", settings.ENV)
    log_danger_banner(options)
    try:
        async with manager.connection():
            controller = DeletionModeController(manager, options)
            reporter = controller.report_aggregator
            try:
                report = await controller.run()
            except CleanupAborted as e:
                reporter.log_report(e.report)
                logger.error("Cleanup failed: %s", e.message)
                return False
            reporter.log_report(report)
    except DatabaseConnectionError as e:
        logger.error("Could not connect to MongoDB: %s", e.message)
        return False

    logger.info("=== CLEANUP COMPLETE ===")
    return True


def main(argv: Optional[List[str]] = None) -> int:
    try:
        options = parse_options(argv)
    except SystemExit as e:
        # --help
        return e.code if isinstance(e.code, int) else 0
    except ConfirmationMissing as e:
        logger.error(e.message)
        logger.warning("This tool deletes data irreversibly. Pass --confirm to proceed, or --help for usage.")
        return 1
    except InvalidOptions as e:
        logger.error("Invalid options: %s", e.message)
        return 1

    logger.info("Database: %s", db_manager.database_name)
    return 0 if asyncio.run(run_cleanup(options)) else 1
