# src/main.py — v1
"""CLI entry point: run, batches, stats and recover-downloads commands.

Usage:
    rcpsync run [--batch-id ID]
    rcpsync batches [--limit N]
    rcpsync stats <batch_id>
    rcpsync recover-downloads [--batch-id ID]
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from pydantic import ValidationError

from rcpsync.config.settings import ConfigurationError, Settings, load_settings
from rcpsync.logging.logger import setup_logging
from rcpsync.version import __version__

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    try:
        settings = load_settings()
    except (ConfigurationError, ValidationError) as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return 1

    _setup_logging(settings, args.verbose)

    try:
        return asyncio.run(args.func(args, settings))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=args.verbose)
        return 1


def _build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="rcpsync",
        description=f"rcpsync v{__version__}: SPC/leaflet extraction and SFTP delivery",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command")

    # --- run ---
    p_run = subparsers.add_parser(
        "run", help="Run a batch (acquisition, reports, transfers)",
    )
    p_run.add_argument(
        "--batch-id", default=None,
        help="Resume an existing batch: skip acquisition, redo reports and transfers",
    )
    p_run.set_defaults(func=_cmd_run)

    # --- batches ---
    p_batches = subparsers.add_parser(
        "batches", help="List recent batches",
    )
    p_batches.add_argument(
        "--limit", type=int, default=20,
        help="Number of batches to show (default: 20)",
    )
    p_batches.set_defaults(func=_cmd_batches)

    # --- stats ---
    p_stats = subparsers.add_parser(
        "stats", help="Show copy and transfer outcomes of a batch",
    )
    p_stats.add_argument("batch_id", help="Batch identifier (YYYYMMDD_HHMMSS)")
    p_stats.set_defaults(func=_cmd_stats)

    # --- recover-downloads ---
    p_recover = subparsers.add_parser(
        "recover-downloads", help="Retry failed EU downloads of a batch",
    )
    p_recover.add_argument(
        "--batch-id", default=None,
        help="Batch to recover (default: latest)",
    )
    p_recover.set_defaults(func=_cmd_recover)

    return parser


async def _cmd_run(args: argparse.Namespace, settings: Settings) -> int:
    """Execute a batch or resume one."""
    from rcpsync.audit.store import AuditStore
    from rcpsync.batch.coordinator import BatchCoordinator

    store = AuditStore(settings.audit_db_path)
    try:
        summary = await BatchCoordinator(settings, store).run(args.batch_id)
    finally:
        store.close()

    if summary.batch_id:
        print(f"\nBatch {summary.batch_id} {'resumed' if summary.resumed else 'complete'}:")
        print(f"  Files:        {summary.counts.total}")
        print(f"  R / N / E:    {summary.counts.r} / {summary.counts.n} / {summary.counts.e}")
        print(f"  Not sent:     {summary.remaining_failed}")
        if summary.summary_report:
            print(f"  Report:       {summary.summary_report}")
        for error in summary.errors:
            print(f"  Error:        {error}")
    return summary.exit_code


async def _cmd_batches(args: argparse.Namespace, settings: Settings) -> int:
    """List the most recent batches."""
    from rcpsync.audit.store import AuditStore

    store = AuditStore(settings.audit_db_path)
    try:
        store.migrate()
        batches = await store.list_batches(args.limit)
    finally:
        store.close()

    if not batches:
        print("No batch recorded.")
        return 0
    print(f"\n{'batch_id':<17} {'started_at':<26} {'duration':>9} {'files':>6} {'R':>5} {'N':>5} {'E':>5}")
    for b in batches:
        duration = f"{b.duration_seconds}s" if b.duration_seconds is not None else "running"
        print(
            f"{b.batch_id:<17} {b.started_at.isoformat(timespec='seconds'):<26} "
            f"{duration:>9} {b.files_processed:>6} {b.files_r:>5} {b.files_n:>5} {b.files_e:>5}"
        )
    return 0


async def _cmd_stats(args: argparse.Namespace, settings: Settings) -> int:
    """Display per-type copy/transfer outcome counts for one batch."""
    from rcpsync.audit.store import AuditStore, BatchNotFoundError

    store = AuditStore(settings.audit_db_path)
    try:
        store.migrate()
        try:
            batch = await store.require_batch(args.batch_id)
        except BatchNotFoundError as exc:
            logger.error("%s", exc)
            return 1
        counts = await store.status_counts(batch.batch_id)
    finally:
        store.close()

    print(f"\nStatistics for batch {batch.batch_id}:")
    if not counts:
        print("  No file recorded.")
        return 0
    for document_type, copy_status, transfer_status, count in counts:
        print(
            f"  {document_type or '-':<14} {copy_status or '-':<40} "
            f"{transfer_status or '-':<26} {count:>6}"
        )
    return 0


async def _cmd_recover(args: argparse.Namespace, settings: Settings) -> int:
    """Retry failed EU downloads."""
    import httpx

    from rcpsync.audit.store import AuditStore
    from rcpsync.pipeline.recovery import DownloadRecovery

    store = AuditStore(settings.audit_db_path)
    try:
        store.migrate()
        async with httpx.AsyncClient() as client:
            result = await DownloadRecovery(settings, store, client).run(args.batch_id)
    finally:
        store.close()

    print(f"\nRecovery of batch {result.batch_id or '-'}:")
    print(f"  Cycles:     {result.cycles}")
    print(f"  Recovered:  {result.recovered}")
    print(f"  Remaining:  {result.remaining}")
    return 0 if result.remaining == 0 else 1


def _setup_logging(settings: Settings, verbose: bool) -> None:
    """Configure logging for CLI usage."""
    setup_logging(
        level="DEBUG" if verbose else settings.log_level,
        log_format=settings.log_format,
        log_file=str(settings.log_file) if settings.log_file else None,
        rotation=settings.log_rotation,
        retention=settings.log_retention,
    )


if __name__ == "__main__":
    sys.exit(main())
