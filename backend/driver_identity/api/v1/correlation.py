import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from driver_identity.db import SessionLocal, get_db
from driver_identity.errors import ConfigurationError, DriverIdentityError, RosterLoadError
from driver_identity.models.ops import JobType
from driver_identity.schemas.correlation import (
    ConsolidationReport,
    CorrelationRunConfig,
    CoverageResponse,
    DriverCorrelationRunRead,
    SourceCoverage,
    build_run_config,
)
from driver_identity.services import runs
from driver_identity.services.records import Source
from driver_identity.services.repository import SqlAlchemyCorrelationStore

logger = logging.getLogger(__name__)

router = APIRouter()


def _run_correlation_background(run_id: int, config: CorrelationRunConfig):
    db = SessionLocal()
    try:
        runs.execute_correlation(db, config, run_id=run_id)
    except DriverIdentityError as e:
        # Already recorded on the run row
        logger.error({"message": "Background correlation failed", "run_id": run_id, "error": e.message})
    finally:
        db.close()


@router.post("/run", response_model=DriverCorrelationRunRead)
def run_correlation(
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    dry_run: bool = Query(False, description="Evaluate matches without writing associations"),
    sources: Optional[List[Source]] = Query(None, description="Feeds to process (default: all)"),
    driver_id: Optional[str] = Query(None, description="Restrict matching to one roster driver"),
    date_from: Optional[date] = Query(None, description="Earliest record date, inclusive"),
    date_to: Optional[date] = Query(None, description="Latest record date, inclusive"),
    batch_size: Optional[int] = Query(None, description="Records per page"),
    min_confidence: Optional[float] = Query(None, description="Acceptance floor for matches"),
):
    try:
        config = build_run_config(
            dry_run=dry_run,
            sources=sources,
            driver_id=driver_id,
            date_from=date_from,
            date_to=date_to,
            batch_size=batch_size,
            min_confidence=min_confidence,
        )
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=e.message)

    run = runs.start_run(db, JobType.DRIVER_CORRELATION, config.dry_run, config)
    background_tasks.add_task(_run_correlation_background, run.id, config)
    return run


@router.post("/consolidate", response_model=ConsolidationReport)
def consolidate_drivers(
    db: Session = Depends(get_db),
    dry_run: bool = Query(True, description="Only report the merge plan"),
):
    try:
        return runs.execute_consolidation(db, dry_run=dry_run)
    except RosterLoadError as e:
        raise HTTPException(status_code=503, detail=e.message)
    except DriverIdentityError as e:
        raise HTTPException(status_code=500, detail=e.message)


@router.get("/runs/{run_id}", response_model=DriverCorrelationRunRead)
def get_run(run_id: int, db: Session = Depends(get_db)):
    run = runs.get_run(db, run_id)
    if run is None:
        raise HTTPException(status_code=404, detail=f"Run {run_id} not found")
    return run


@router.get("/coverage", response_model=CoverageResponse)
def get_coverage(db: Session = Depends(get_db)):
    store = SqlAlchemyCorrelationStore(db)
    items = []
    for source in Source:
        total, linked = store.coverage(source)
        items.append(SourceCoverage(
            source=source.value,
            total=total,
            linked=linked,
            rate=round(linked / total, 4) if total else 0.0,
        ))
    return CoverageResponse(sources=items)
