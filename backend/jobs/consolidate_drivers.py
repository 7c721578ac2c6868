#!/usr/bin/env python3
"""
Merges duplicate roster drivers (same normalized name within a fleet).

Usage:
    python -m jobs.consolidate_drivers --dry-run
    python -m jobs.consolidate_drivers
"""
import argparse
import logging
import sys
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from driver_identity.db import SessionLocal
from driver_identity.errors import DriverIdentityError
from driver_identity.logging_setup import configure_logging
from driver_identity.schemas.correlation import ConsolidationReport
from driver_identity.services.runs import execute_consolidation

logger = logging.getLogger(__name__)


def run_job(dry_run: bool = False,
            session_factory: Optional[Callable[[], Session]] = None) -> ConsolidationReport:
    db = (session_factory or SessionLocal)()
    try:
        return execute_consolidation(db, dry_run=dry_run)
    finally:
        db.close()


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description='Consolidate duplicate roster drivers')
    parser.add_argument('--dry-run', action='store_true', help='Only report the merge plan')
    parser.add_argument('--log-level', type=str, help='Logging level (default: LOG_LEVEL)')
    args = parser.parse_args(argv)

    configure_logging(args.log_level)

    try:
        report = run_job(dry_run=args.dry_run)
    except DriverIdentityError as e:
        logger.error({"message": "Driver consolidation aborted", "error": e.message})
        return 1

    for group in report.details:
        fleet = group.fleet or "no fleet"
        print(f"  {group.name_norm} ({fleet}): keep {group.survivor_id}, "
              f"merge {', '.join(group.loser_ids)} [{group.status}, {group.planned_repoints} associations]")
        if group.error:
            print(f"    error: {group.error}")

    if report.dry_run:
        print(f"Dry run: {report.groups} groups, {report.duplicates} duplicates, "
              f"{report.planned_repoints} associations to repoint")
    else:
        print(f"Result: {report.drivers_deleted} drivers deleted, "
              f"{report.associations_repointed} associations repointed, {report.failed_groups} groups failed")
    return 1 if report.failed_groups else 0


if __name__ == "__main__":
    sys.exit(main())
