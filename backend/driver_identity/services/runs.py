"""
Run log for correlation and consolidation jobs.

Every execution started from a job script or the API gets a row in
driver_correlation_runs: RUNNING on start, then COMPLETED with the report
as stats, or FAILED with the error and whatever partial report exists.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from driver_identity.errors import DriverIdentityError
from driver_identity.models.ops import DriverCorrelationRun, JobType, RunStatus
from driver_identity.schemas.correlation import ConsolidationReport, CorrelationRunConfig, RunReport
from driver_identity.services.consolidation import DriverConsolidator
from driver_identity.services.correlation import CorrelationRunner
from driver_identity.services.repository import SqlAlchemyCorrelationStore

logger = logging.getLogger(__name__)


def start_run(db: Session, job_type: JobType, dry_run: bool,
              config: Optional[CorrelationRunConfig] = None) -> DriverCorrelationRun:
    run = DriverCorrelationRun(
        job_type=job_type,
        status=RunStatus.RUNNING,
        dry_run=dry_run,
        started_at=datetime.now(timezone.utc),
    )
    if config is not None:
        run.scope_sources = [s.value for s in config.sources]
        run.scope_driver_id = config.driver_id
        run.scope_date_from = config.date_from
        run.scope_date_to = config.date_to
    db.add(run)
    db.commit()
    db.refresh(run)
    return run


def complete_run(db: Session, run: DriverCorrelationRun, stats: Dict[str, Any]) -> DriverCorrelationRun:
    run.status = RunStatus.COMPLETED
    run.completed_at = datetime.now(timezone.utc)
    run.stats = stats
    db.commit()
    return run


def fail_run(db: Session, run: DriverCorrelationRun, error: str,
             stats: Optional[Dict[str, Any]] = None) -> DriverCorrelationRun:
    # The session may hold a failed statement
    db.rollback()
    run.status = RunStatus.FAILED
    run.completed_at = datetime.now(timezone.utc)
    run.error_message = error
    if stats is not None:
        run.stats = stats
    db.commit()
    return run


def get_run(db: Session, run_id: int) -> Optional[DriverCorrelationRun]:
    return db.get(DriverCorrelationRun, run_id)


def execute_correlation(db: Session, config: CorrelationRunConfig, run_id: Optional[int] = None,
                        should_cancel: Optional[Callable[[], bool]] = None) -> RunReport:
    """
    Runs correlation over the SQL store and records the run.

    Args:
        db: session shared by the store and the run log
        config: validated run configuration
        run_id: existing RUNNING row to complete (the API creates it up front)
        should_cancel: forwarded to the runner

    Raises:
        DriverIdentityError: after the run is marked FAILED
        Exception: any unexpected error, also after the run is marked FAILED
    """
    run = get_run(db, run_id) if run_id is not None else None
    if run is None:
        run = start_run(db, JobType.DRIVER_CORRELATION, config.dry_run, config)

    store = SqlAlchemyCorrelationStore(db)
    runner = CorrelationRunner(store, store)
    try:
        report = runner.run(config, should_cancel=should_cancel)
    except DriverIdentityError as e:
        partial = e.report.model_dump(mode="json") if e.report is not None else None
        fail_run(db, run, e.message, partial)
        logger.error({"message": "Driver correlation run failed", "run_id": run.id, "error": e.message})
        raise
    except Exception as e:
        fail_run(db, run, str(e))
        logger.error({"message": "Driver correlation run failed", "run_id": run.id, "error": str(e)}, exc_info=True)
        raise

    complete_run(db, run, report.model_dump(mode="json"))
    logger.info({"message": "Driver correlation run recorded", "run_id": run.id, "persisted": report.persisted})
    return report


def execute_consolidation(db: Session, dry_run: bool = False) -> ConsolidationReport:
    run = start_run(db, JobType.DRIVER_CONSOLIDATION, dry_run)

    store = SqlAlchemyCorrelationStore(db)
    consolidator = DriverConsolidator(store, store, unit_of_work=store)
    try:
        report = consolidator.consolidate(dry_run=dry_run)
    except DriverIdentityError as e:
        fail_run(db, run, e.message)
        logger.error({"message": "Driver consolidation run failed", "run_id": run.id, "error": e.message})
        raise
    except Exception as e:
        fail_run(db, run, str(e))
        logger.error({"message": "Driver consolidation run failed", "run_id": run.id, "error": str(e)}, exc_info=True)
        raise

    complete_run(db, run, report.model_dump(mode="json"))
    return report
