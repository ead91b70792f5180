#!/usr/bin/env python3
"""
Word Count Job
==============

Compute word counts and content checksums for every organization on
each of the given effective dates.

Usage:
    python scripts/calculate_word_counts.py 2015-12-31 2020-01-01
    python scripts/calculate_word_counts.py --all-dates
    python scripts/calculate_word_counts.py 2020-01-01 --agency "Department of Energy"
    python scripts/calculate_word_counts.py 2020-01-01 --dry-run --concurrency 4

Exit status:
    0  run completed (individual pair failures are logged and counted)
    2  fatal configuration error (database unreachable, no organizations)

Version: 0.1.0
"""

import argparse
import asyncio
import signal
import sys
from datetime import date
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from shared.config import settings
from shared.logging import get_logger, setup_logging

setup_logging(
    log_level=settings.log_level.value,
    json_logs=settings.json_logs,
    service_name="word-count-job",
)
logger = get_logger(__name__)


def parse_date(value: str) -> date:
    """argparse type for YYYY-MM-DD dates."""
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a YYYY-MM-DD date: {value}") from None


async def resolve_dates(explicit: list[date], all_dates: bool) -> list[date]:
    """Use the given dates, or every date present in ecfr_documents."""
    if not all_dates:
        return explicit

    from shared.database import PostgresClient
    from services.scope_metrics.sources import PostgresDocumentSource

    client = PostgresClient(settings.postgres)
    try:
        available = await PostgresDocumentSource(client.session_factory).available_dates()
    finally:
        await client.close()
    return sorted(set(explicit) | set(available))


async def main() -> int:
    """Run the job."""
    from services.scope_metrics.errors import FatalConfigurationError, ScopeMetricsError
    from services.scope_metrics.orchestrator import run_word_count_job

    parser = argparse.ArgumentParser(description="Compute organization word counts and checksums")
    parser.add_argument("dates", nargs="*", type=parse_date, help="Effective dates (YYYY-MM-DD)")
    parser.add_argument("--all-dates", action="store_true", help="Process every stored document date")
    parser.add_argument("--agency", action="append", dest="agencies", help="Limit to agency name (repeatable)")
    parser.add_argument("--concurrency", type=int, default=None, help="Pairs processed at once")
    parser.add_argument("--dry-run", action="store_true", help="Compute without writing aggregates")
    args = parser.parse_args()

    if args.concurrency is not None:
        settings.pipeline.max_concurrent_pairs = max(1, args.concurrency)

    try:
        dates = await resolve_dates(args.dates, args.all_dates)
    except ScopeMetricsError as e:
        logger.error("date_resolution_failed", error=str(e))
        return 2

    if not dates:
        logger.warning("no_dates_specified")
        return 0

    cancel_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, cancel_event.set)
        except NotImplementedError:
            pass  # Windows event loops

    try:
        result = await run_word_count_job(
            dates,
            settings,
            dry_run=args.dry_run,
            organization_names=args.agencies,
            cancel_event=cancel_event,
        )
    except FatalConfigurationError as e:
        logger.critical("word_count_job_aborted", error=str(e))
        return 2

    for failure in result.failures:
        logger.error(
            "rerun_needed",
            organization_id=failure.organization_id,
            organization=failure.organization_name,
            effective_date=failure.effective_date.isoformat(),
            error=failure.error,
        )

    logger.info(
        "word_count_job_finished",
        succeeded=result.pairs_succeeded,
        failed=result.pairs_failed,
        skipped=result.pairs_skipped,
        cancelled=result.cancelled,
        dry_run=args.dry_run,
    )
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
