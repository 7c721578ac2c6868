"""
Pydantic schemas for correlation / consolidation runs.

RunReport and ConsolidationReport are the structured results returned by
the engine; formatting them is left to the caller (job scripts, API).
"""
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError

from driver_identity.config import settings
from driver_identity.errors import ConfigurationError
from driver_identity.models.ops import JobType, RunStatus
from driver_identity.services.records import Source


class CorrelationRunConfig(BaseModel):
    batch_size: int = 500
    min_confidence: float = 0.7
    dry_run: bool = False
    sources: List[Source] = Field(default_factory=lambda: list(Source))
    driver_id: Optional[str] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    max_workers: int = 1


def validate_run_config(config: CorrelationRunConfig) -> CorrelationRunConfig:
    """Raises ConfigurationError for values the runner cannot work with."""
    if not 0.0 <= config.min_confidence <= 1.0:
        raise ConfigurationError(f"min_confidence must be within [0, 1], got {config.min_confidence}")
    if config.batch_size < 1:
        raise ConfigurationError(f"batch_size must be positive, got {config.batch_size}")
    if not 1 <= config.max_workers <= 32:
        raise ConfigurationError(f"max_workers must be within [1, 32], got {config.max_workers}")
    if not config.sources:
        raise ConfigurationError("At least one source is required")
    if config.date_from and config.date_to and config.date_from > config.date_to:
        raise ConfigurationError("date_from must not be after date_to")
    return config


def build_run_config(**overrides: Any) -> CorrelationRunConfig:
    """
    Run configuration from settings defaults plus explicit overrides.

    Overrides set to None keep the default. Invalid values raise
    ConfigurationError before any work starts.
    """
    values = {
        "batch_size": settings.correlation_batch_size,
        "min_confidence": settings.correlation_min_confidence,
        "max_workers": settings.correlation_max_workers,
    }
    values.update({key: value for key, value in overrides.items() if value is not None})
    try:
        config = CorrelationRunConfig(**values)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid correlation config: {e}") from e
    return validate_run_config(config)


class OutcomeCounts(BaseModel):
    """Per-record outcome counters shared by the run totals and each source."""
    scanned: int = 0
    matched: int = 0
    persisted: int = 0
    below_threshold: int = 0
    no_match: int = 0
    failed: int = 0
    conflicts: int = 0
    by_method: Dict[str, int] = Field(default_factory=dict)


class SourceRunStats(OutcomeCounts):
    pages: int = 0


class RunReport(OutcomeCounts):
    dry_run: bool = False
    cancelled: bool = False
    roster_size: int = 0
    by_source: Dict[str, SourceRunStats] = Field(default_factory=dict)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None


class DuplicateGroupReport(BaseModel):
    name_norm: str
    fleet: Optional[str] = None
    survivor_id: str
    loser_ids: List[str]
    planned_repoints: int = 0
    repointed: int = 0
    status: str = "planned"
    error: Optional[str] = None


class ConsolidationReport(BaseModel):
    dry_run: bool = False
    roster_size: int = 0
    groups: int = 0
    duplicates: int = 0
    drivers_deleted: int = 0
    associations_repointed: int = 0
    planned_repoints: int = 0
    failed_groups: int = 0
    details: List[DuplicateGroupReport] = Field(default_factory=list)


class DriverCorrelationRunRead(BaseModel):
    id: int
    job_type: JobType
    status: RunStatus
    dry_run: bool
    started_at: datetime
    completed_at: Optional[datetime] = None
    stats: Optional[Dict[str, Any]] = None
    error_message: Optional[str] = None

    class Config:
        from_attributes = True


class SourceCoverage(BaseModel):
    source: str
    total: int
    linked: int
    rate: float


class CoverageResponse(BaseModel):
    sources: List[SourceCoverage]
