#!/usr/bin/env python3
"""
Correlation job: links unresolved telemetry records (LYTX, Guardian,
MtData) to roster drivers.
Idempotent: only records without an association are fetched.

Usage:
    python -m jobs.run_driver_correlation --dry-run
    python -m jobs.run_driver_correlation --source lytx --source guardian --date-from 2025-01-01
"""
import argparse
import logging
import sys
from datetime import date
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from driver_identity.db import SessionLocal
from driver_identity.errors import DriverIdentityError
from driver_identity.logging_setup import configure_logging
from driver_identity.schemas.correlation import RunReport, build_run_config
from driver_identity.services.correlation import summarize
from driver_identity.services.runs import execute_correlation

logger = logging.getLogger(__name__)


def run_job(
    dry_run: bool = False,
    sources: Optional[List[str]] = None,
    driver_id: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    batch_size: Optional[int] = None,
    min_confidence: Optional[float] = None,
    max_workers: Optional[int] = None,
    run_id: Optional[int] = None,
    session_factory: Optional[Callable[[], Session]] = None,
) -> RunReport:
    """
    Entry point for CLI, cron or API.

    Raises:
        DriverIdentityError: configuration, roster or fetch failures; the
            run row is marked FAILED first
    """
    config = build_run_config(
        dry_run=dry_run,
        sources=sources,
        driver_id=driver_id,
        date_from=date_from,
        date_to=date_to,
        batch_size=batch_size,
        min_confidence=min_confidence,
        max_workers=max_workers,
    )
    db = (session_factory or SessionLocal)()
    try:
        return execute_correlation(db, config, run_id=run_id)
    finally:
        db.close()


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description='Correlate telemetry driver names with the driver roster')
    parser.add_argument('--dry-run', action='store_true', help='Evaluate matches without writing associations')
    parser.add_argument('--source', action='append', dest='sources', choices=['lytx', 'guardian', 'mtdata'],
                        help='Feed to process; repeat for several (default: all)')
    parser.add_argument('--driver-id', type=str, help='Restrict matching to one roster driver')
    parser.add_argument('--date-from', type=date.fromisoformat, help='Earliest record date (YYYY-MM-DD)')
    parser.add_argument('--date-to', type=date.fromisoformat, help='Latest record date (YYYY-MM-DD)')
    parser.add_argument('--batch-size', type=int, help='Records per page')
    parser.add_argument('--min-confidence', type=float, help='Acceptance floor for matches')
    parser.add_argument('--max-workers', type=int, help='Matching threads')
    parser.add_argument('--log-level', type=str, help='Logging level (default: LOG_LEVEL)')
    args = parser.parse_args(argv)

    configure_logging(args.log_level)

    try:
        report = run_job(
            dry_run=args.dry_run,
            sources=args.sources,
            driver_id=args.driver_id,
            date_from=args.date_from,
            date_to=args.date_to,
            batch_size=args.batch_size,
            min_confidence=args.min_confidence,
            max_workers=args.max_workers,
        )
    except DriverIdentityError as e:
        logger.error({"message": "Driver correlation aborted", "error": e.message})
        if e.report is not None:
            print(f"Partial: {summarize(e.report)}")
        return 1

    prefix = "Dry run" if report.dry_run else "Result"
    print(f"{prefix}: {summarize(report)}")
    for source, stats in report.by_source.items():
        print(f"  {source}: {summarize(stats)}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
