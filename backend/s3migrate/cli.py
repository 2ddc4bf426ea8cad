"""
Command line interface for the local-to-S3 migration.

    python -m s3migrate check
    python -m s3migrate migrate --dry-run off --yes
    python -m s3migrate cleanup-previews --max-age-days 30
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import math
import signal
import sys
from typing import Optional, Sequence

from s3migrate.config import DryRunMode, Settings
from s3migrate.database import build_engine
from s3migrate.errors import ConfigurationError, safe_error_message
from s3migrate.logging_setup import configure_logging
from s3migrate.services.catalog import CatalogStore
from s3migrate.services.migration_runner import MigrationService
from s3migrate.services.models import CheckReport, MigrationState
from s3migrate.services.object_store import ObjectStore
from s3migrate.services.orchestrator import MigrationOrchestrator

logger = logging.getLogger(__name__)

STATUS_ICONS = {"ok": "✅", "warning": "⚠️", "error": "❌", "info": "ℹ️"}

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2


def format_bytes(size: int) -> str:
    if size <= 0:
        return "0 bytes"
    units = ("bytes", "KB", "MB", "GB", "TB", "PB")
    i = min(int(math.floor(math.log(size, 1024))), len(units) - 1)
    return f"{size / 1024 ** i:.2f} {units[i]}"


def print_report(report: CheckReport) -> None:
    for check in report.checks:
        print(f"{STATUS_ICONS.get(check.status, '')} {check.name}: {check.message}")


class ProgressPrinter:
    """Prints a single updating progress line, only when the percentage changes."""

    def __init__(self, stream=None):
        self.stream = stream or sys.stdout
        self._last_percent = -1

    async def __call__(self, state: MigrationState) -> None:
        if not state.total:
            return
        percent = round((state.migrated + state.failed) / state.total * 100)
        if percent == self._last_percent:
            return
        self._last_percent = percent
        self.stream.write(
            f"\rProgress: {percent}% ({state.migrated} migrated, {state.failed} failed, "
            f"{format_bytes(state.bytes)}) - Current: {state.current_file}"
        )
        self.stream.flush()


def _confirm() -> bool:
    print("\nWARNING: You are running in PRODUCTION mode. This will modify your Nextcloud instance.")
    print("Make sure you have a backup before proceeding!")
    answer = input("Do you want to continue? (y/N): ")
    return answer.strip().lower() == "y"


async def cmd_check(settings: Settings) -> int:
    engine = build_engine(settings.DATABASE_URL)
    try:
        report = await MigrationService(settings, engine).run_checks()
    finally:
        await engine.dispose()
    print_report(report)
    return EXIT_OK if report.success else EXIT_FAILED


async def cmd_migrate(settings: Settings, dry_run: DryRunMode, resume: bool) -> int:
    engine = build_engine(settings.DATABASE_URL)
    catalog = CatalogStore(engine)
    try:
        orchestrator = MigrationOrchestrator(settings, catalog, ObjectStore(settings), dry_run=dry_run)

        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, orchestrator.request_stop)
        except (NotImplementedError, RuntimeError):
            logger.debug("Signal handlers unavailable; Ctrl+C will abort without committing")

        result = await orchestrator.run(ProgressPrinter(), resume=resume)
    finally:
        await catalog.close()
        await engine.dispose()

    if result.checks is not None:
        print()
        print_report(result.checks)
    print(f"\n\nFiles migrated: {result.files_migrated}")
    print(f"Files failed: {result.files_failed}")
    print(f"Total data transferred: {format_bytes(result.bytes_transferred)}")
    if result.backup_file:
        print(f"Database backup: {result.backup_file}")
    if result.cursor:
        print(f"Last committed file ID: {result.cursor.last_processed_file_id}")

    if result.success:
        print("\nMigration was successful." if not result.dry_run else "\nDry run finished.")
        return EXIT_OK
    print(f"\nMigration failed: {result.error}")
    return EXIT_FAILED


async def cmd_cleanup(settings: Settings, max_age_days: Optional[int], max_count: Optional[int]) -> int:
    engine = build_engine(settings.DATABASE_URL)
    try:
        result = await MigrationService(settings, engine).cleanup_previews(max_age_days, max_count)
    finally:
        await engine.dispose()
    if settings.DRY_RUN.enabled:
        print(f"Dry run: would delete {result.deleted} previews ({format_bytes(result.bytes_freed)})")
    else:
        print(f"Deleted {result.deleted} previews ({format_bytes(result.bytes_freed)})")
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="s3migrate", description="Migrate Nextcloud local storage to S3")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("check", help="Run pre-migration checks (read-only)")

    migrate = subparsers.add_parser("migrate", help="Migrate files to S3")
    migrate.add_argument(
        "--dry-run",
        choices=[mode.value for mode in DryRunMode],
        default=None,
        help="Override DRY_RUN (off = real migration)",
    )
    migrate.add_argument("--resume", action="store_true", help="Continue after the last committed file")
    migrate.add_argument("--yes", action="store_true", help="Do not ask for confirmation")

    cleanup = subparsers.add_parser(
        "cleanup-previews",
        help="Delete old preview images",
        description=(
            "Delete preview images older than --max-age-days, oldest first. "
            "With DRY_RUN enabled the cleanup only reports: no object, local file or catalog row is deleted."
        ),
    )
    cleanup.add_argument("--max-age-days", type=int, default=None, help="Override PREVIEW_MAX_AGE (0 disables cleanup)")
    cleanup.add_argument("--max-count", type=int, default=None, help="Override PREVIEW_MAX_COUNT")

    return parser


def main(argv: Optional[Sequence[str]] = None, settings: Optional[Settings] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if settings is None:
        from s3migrate.config import settings
    level = logging.DEBUG if args.verbose else settings.LOG_LEVEL
    configure_logging(level, settings.LOG_FILE)

    try:
        if args.command == "check":
            return asyncio.run(cmd_check(settings))

        if args.command == "migrate":
            settings.validate_for_migration()
            dry_run = DryRunMode(args.dry_run) if args.dry_run else settings.DRY_RUN
            if not dry_run.enabled and not args.yes and not _confirm():
                print("Migration aborted.")
                return EXIT_FAILED
            return asyncio.run(cmd_migrate(settings, dry_run, args.resume))

        if args.command == "cleanup-previews":
            return asyncio.run(cmd_cleanup(settings, args.max_age_days, args.max_count))
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return EXIT_CONFIG
    except Exception as exc:
        logger.exception("Fatal error")
        print(f"\nFatal error: {safe_error_message(exc)}", file=sys.stderr)
        return EXIT_FAILED

    parser.error(f"Unknown command: {args.command}")
    return EXIT_FAILED


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
