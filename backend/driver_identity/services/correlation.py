"""
Batch correlation of telemetry driver names against the driver roster.

Idempotent: only records without an association are fetched, so a run can
be repeated after a partial completion and only touches what is still
unresolved. Failed writes are counted and skipped, never retried; the next
run picks them up.
"""
import enum
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Iterator, List, Optional

from driver_identity.errors import ConfigurationError, FetchError, RosterLoadError
from driver_identity.schemas.correlation import (
    CorrelationRunConfig, OutcomeCounts, RunReport, SourceRunStats, validate_run_config
)
from driver_identity.services.matching import DriverMatcher
from driver_identity.services.records import DriverFilter, ExternalRecord, Match, RosterDriver, Source
from driver_identity.services.repository import ExternalRecordRepository, RosterRepository

logger = logging.getLogger(__name__)


class OutcomeStatus(str, enum.Enum):
    PERSISTED = "persisted"
    ACCEPTED = "accepted"
    CONFLICT = "conflict"
    FAILED = "failed"
    BELOW_THRESHOLD = "below_threshold"
    NO_MATCH = "no_match"


# Counters bumped for each outcome, besides "scanned"
_COUNTERS = {
    OutcomeStatus.PERSISTED: ("matched", "persisted"),
    OutcomeStatus.ACCEPTED: ("matched",),
    OutcomeStatus.CONFLICT: ("matched", "conflicts"),
    OutcomeStatus.FAILED: ("matched", "failed"),
    OutcomeStatus.BELOW_THRESHOLD: ("below_threshold",),
    OutcomeStatus.NO_MATCH: ("no_match",),
}


@dataclass(frozen=True)
class RecordOutcome:
    source: str
    record_id: str
    status: OutcomeStatus
    match: Optional[Match] = None
    error: Optional[str] = None


def _bump(counts, outcome: RecordOutcome):
    updates = {"scanned": counts.scanned + 1}
    for name in _COUNTERS[outcome.status]:
        updates[name] = getattr(counts, name) + 1
    if outcome.match is not None and "matched" in _COUNTERS[outcome.status]:
        by_method = dict(counts.by_method)
        method = outcome.match.method.value
        by_method[method] = by_method.get(method, 0) + 1
        updates["by_method"] = by_method
    return counts.model_copy(update=updates)


def fold_outcome(report: RunReport, outcome: RecordOutcome) -> RunReport:
    """Pure reducer: a new report with one more record outcome counted."""
    by_source = dict(report.by_source)
    by_source[outcome.source] = _bump(by_source.get(outcome.source, SourceRunStats()), outcome)
    folded = _bump(report, outcome)
    return folded.model_copy(update={"by_source": by_source})


def _with_page(report: RunReport, source: str) -> RunReport:
    by_source = dict(report.by_source)
    stats = by_source.get(source, SourceRunStats())
    by_source[source] = stats.model_copy(update={"pages": stats.pages + 1})
    return report.model_copy(update={"by_source": by_source})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CorrelationRunner:
    """
    Resolves external records to roster drivers and persists the
    associations.

    Roster and records come from injected repositories; the roster snapshot
    is loaded once per run and never mutated during it.
    """

    def __init__(self, roster: RosterRepository, records: ExternalRecordRepository,
                 fuzzy_min_score: Optional[float] = None,
                 clock: Callable[[], datetime] = _utcnow):
        self.roster = roster
        self.records = records
        self.fuzzy_min_score = fuzzy_min_score
        self.clock = clock

    def run(self, config: CorrelationRunConfig,
            should_cancel: Optional[Callable[[], bool]] = None) -> RunReport:
        """
        Runs one correlation pass.

        Args:
            config: batch size, acceptance floor, dry run flag and scope
            should_cancel: polled between records; a True return stops the
                run after the current record

        Returns:
            RunReport with counts per outcome, method and source

        Raises:
            ConfigurationError, RosterLoadError, FetchError
        """
        self._validate(config)
        start_time = time.time()
        report = RunReport(dry_run=config.dry_run, started_at=self.clock())

        snapshot = self._load_roster(config)
        report = report.model_copy(update={"roster_size": len(snapshot)})
        matcher = DriverMatcher(snapshot, min_score=self.fuzzy_min_score)

        logger.info({
            "message": "Starting driver correlation",
            "dry_run": config.dry_run,
            "batch_size": config.batch_size,
            "min_confidence": config.min_confidence,
            "sources": [s.value for s in config.sources],
            "driver_id": config.driver_id,
            "roster_size": len(snapshot),
        })

        executor = ThreadPoolExecutor(max_workers=config.max_workers) if config.max_workers > 1 else None
        try:
            for source in dict.fromkeys(config.sources):
                report = self._run_source(source, config, matcher, report, executor, should_cancel)
                if report.cancelled:
                    break
        finally:
            if executor is not None:
                executor.shutdown(wait=True)

        report = report.model_copy(update={"finished_at": self.clock()})
        logger.info({
            "message": "Driver correlation completed",
            "scanned": report.scanned,
            "matched": report.matched,
            "persisted": report.persisted,
            "below_threshold": report.below_threshold,
            "no_match": report.no_match,
            "failed": report.failed,
            "conflicts": report.conflicts,
            "by_method": report.by_method,
            "cancelled": report.cancelled,
            "elapsed_seconds": round(time.time() - start_time, 2),
        })
        return report

    def iter_pages(self, source: Source, config: CorrelationRunConfig) -> Iterator[List[ExternalRecord]]:
        """
        Yields pages of unresolved records, keyset-paginated by record id.

        Resolved records leave the unresolved set as they are written, and
        unmatched ones stay in it, so the cursor moves past the last id
        instead of using an offset.
        """
        after_id = None
        while True:
            try:
                page = self.records.list_unresolved(
                    source,
                    config.batch_size,
                    after_id=after_id,
                    date_from=config.date_from,
                    date_to=config.date_to,
                )
            except Exception as e:
                logger.error({"message": "Failed to fetch unresolved records", "source": source.value,
                              "after_id": after_id, "error": str(e)}, exc_info=True)
                raise FetchError(f"Failed to fetch {source.value} records: {e}") from e

            if not page:
                return
            yield page
            if len(page) < config.batch_size:
                return
            after_id = page[-1].id

    def evaluate(self, record: ExternalRecord, matcher: DriverMatcher,
                 min_confidence: float) -> RecordOutcome:
        """Match decision for one record; no I/O."""
        match = matcher.match(record.raw_driver_name, record.employee_id, record.fleet_hint)
        if match is None:
            return RecordOutcome(record.source, record.id, OutcomeStatus.NO_MATCH)
        if match.confidence < min_confidence:
            return RecordOutcome(record.source, record.id, OutcomeStatus.BELOW_THRESHOLD, match=match)
        return RecordOutcome(record.source, record.id, OutcomeStatus.ACCEPTED, match=match)

    def persist(self, source: Source, outcome: RecordOutcome) -> RecordOutcome:
        try:
            written = self.records.update_association(
                source, outcome.record_id, outcome.match.to_association(self.clock())
            )
        except Exception as e:
            logger.error({"message": "Failed to persist association", "source": source.value,
                          "record_id": outcome.record_id, "driver_id": outcome.match.driver_id,
                          "error": str(e)})
            return RecordOutcome(outcome.source, outcome.record_id, OutcomeStatus.FAILED,
                                 match=outcome.match, error=str(e))

        if not written:
            logger.debug({"message": "Record already resolved, skipping", "source": source.value,
                          "record_id": outcome.record_id})
            return RecordOutcome(outcome.source, outcome.record_id, OutcomeStatus.CONFLICT, match=outcome.match)
        return RecordOutcome(outcome.source, outcome.record_id, OutcomeStatus.PERSISTED, match=outcome.match)

    def _run_source(self, source: Source, config: CorrelationRunConfig, matcher: DriverMatcher,
                    report: RunReport, executor: Optional[ThreadPoolExecutor],
                    should_cancel: Optional[Callable[[], bool]]) -> RunReport:
        stage_start = time.time()
        pages = self.iter_pages(source, config)
        while True:
            try:
                page = next(pages, None)
            except FetchError as e:
                # Records already persisted stay persisted; hand back what was done
                e.report = report.model_copy(update={"finished_at": self.clock()})
                raise
            if page is None:
                return report

            report = _with_page(report, source.value)

            if executor is not None:
                outcomes = list(executor.map(
                    lambda record: self.evaluate(record, matcher, config.min_confidence), page
                ))
            else:
                outcomes = [self.evaluate(record, matcher, config.min_confidence) for record in page]

            for outcome in outcomes:
                if should_cancel is not None and should_cancel():
                    logger.info({"message": "Driver correlation cancelled", "source": source.value,
                                 "scanned": report.scanned})
                    pages.close()
                    return report.model_copy(update={"cancelled": True})

                if outcome.status == OutcomeStatus.ACCEPTED and not config.dry_run:
                    outcome = self.persist(source, outcome)
                report = fold_outcome(report, outcome)

            stats = report.by_source[source.value]
            logger.info({
                "message": "Page processed",
                "source": source.value,
                "page": stats.pages,
                "scanned": stats.scanned,
                "persisted": stats.persisted,
                "failed": stats.failed,
                "elapsed": round(time.time() - stage_start, 2),
            })

    def _load_roster(self, config: CorrelationRunConfig) -> List[RosterDriver]:
        driver_filter = DriverFilter(driver_id=config.driver_id) if config.driver_id else None
        try:
            snapshot = self.roster.list_drivers(driver_filter)
        except Exception as e:
            logger.error({"message": "Failed to load driver roster", "error": str(e)}, exc_info=True)
            raise RosterLoadError(f"Failed to load driver roster: {e}") from e

        if config.driver_id and not snapshot:
            raise ConfigurationError(f"Driver {config.driver_id} not found in roster")
        return list(snapshot)

    def _validate(self, config: CorrelationRunConfig) -> None:
        if self.roster is None or self.records is None:
            raise ConfigurationError("Roster and record stores are required")
        validate_run_config(config)


def summarize(report: OutcomeCounts) -> str:
    """One-line summary for job output."""
    methods = ", ".join(f"{k}={v}" for k, v in sorted(report.by_method.items())) or "none"
    return (
        f"scanned={report.scanned} matched={report.matched} persisted={report.persisted} "
        f"below_threshold={report.below_threshold} no_match={report.no_match} "
        f"failed={report.failed} conflicts={report.conflicts} methods[{methods}]"
    )
