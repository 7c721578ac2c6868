"""
Duplicate roster consolidation.

Drivers sharing a normalized full name within a fleet are merged into one
survivor. For every group the loser associations are repointed first and
the losers deleted afterwards, inside one transaction, so no external
record ever references a deleted driver.
"""
import logging
from collections import OrderedDict
from contextlib import nullcontext
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from driver_identity.errors import ConfigurationError, PersistenceError, RosterLoadError
from driver_identity.schemas.correlation import ConsolidationReport, DuplicateGroupReport
from driver_identity.services.records import RosterDriver
from driver_identity.services.repository import ExternalRecordRepository, RosterRepository, UnitOfWork

logger = logging.getLogger(__name__)

_FAR_FUTURE = datetime.max.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class DuplicateGroup:
    name_norm: str
    fleet: Optional[str]
    survivor: RosterDriver
    losers: Tuple[RosterDriver, ...]


def _created_at_key(driver: RosterDriver) -> datetime:
    if driver.created_at is None:
        return _FAR_FUTURE
    if driver.created_at.tzinfo is None:
        return driver.created_at.replace(tzinfo=timezone.utc)
    return driver.created_at


def survivor_sort_key(driver: RosterDriver):
    """Active first, then earliest created, then lowest id."""
    return (0 if driver.is_active else 1, _created_at_key(driver), driver.id)


def group_duplicates(roster: List[RosterDriver]) -> List[DuplicateGroup]:
    buckets: Dict[Tuple[str, Optional[str]], List[RosterDriver]] = OrderedDict()
    for driver in roster:
        if not driver.full_name_norm:
            continue
        buckets.setdefault((driver.full_name_norm, driver.fleet), []).append(driver)

    groups = []
    for (name_norm, fleet), members in buckets.items():
        if len(members) < 2:
            continue
        ordered = sorted(members, key=survivor_sort_key)
        groups.append(DuplicateGroup(
            name_norm=name_norm,
            fleet=fleet,
            survivor=ordered[0],
            losers=tuple(ordered[1:]),
        ))
    return groups


class DriverConsolidator:
    def __init__(self, roster: RosterRepository, records: ExternalRecordRepository,
                 unit_of_work: Optional[UnitOfWork] = None):
        self.roster = roster
        self.records = records
        self.unit_of_work = unit_of_work

    def consolidate(self, dry_run: bool = False) -> ConsolidationReport:
        if self.roster is None or self.records is None:
            raise ConfigurationError("Roster and record stores are required")

        try:
            roster = self.roster.list_drivers()
        except Exception as e:
            logger.error({"message": "Failed to load driver roster", "error": str(e)}, exc_info=True)
            raise RosterLoadError(f"Failed to load driver roster: {e}") from e

        groups = group_duplicates(roster)
        report = ConsolidationReport(
            dry_run=dry_run,
            roster_size=len(roster),
            groups=len(groups),
            duplicates=sum(len(g.losers) for g in groups),
        )
        logger.info({
            "message": "Starting driver consolidation",
            "dry_run": dry_run,
            "roster_size": len(roster),
            "groups": report.groups,
            "duplicates": report.duplicates,
        })

        for group in groups:
            if dry_run:
                detail = self._plan_group_safely(group)
                if detail.status == "failed":
                    report.failed_groups += 1
                report.planned_repoints += detail.planned_repoints
            else:
                detail = self._merge_group(group)
                if detail.status == "failed":
                    report.failed_groups += 1
                else:
                    report.drivers_deleted += len(detail.loser_ids)
                    report.associations_repointed += detail.repointed
                report.planned_repoints += detail.planned_repoints
            report.details.append(detail)

        logger.info({
            "message": "Driver consolidation completed",
            "dry_run": dry_run,
            "groups": report.groups,
            "drivers_deleted": report.drivers_deleted,
            "associations_repointed": report.associations_repointed,
            "planned_repoints": report.planned_repoints,
            "failed_groups": report.failed_groups,
        })
        return report

    def _plan_group(self, group: DuplicateGroup) -> DuplicateGroupReport:
        planned = sum(self.records.count_associations(loser.id) for loser in group.losers)
        return DuplicateGroupReport(
            name_norm=group.name_norm,
            fleet=group.fleet,
            survivor_id=group.survivor.id,
            loser_ids=[loser.id for loser in group.losers],
            planned_repoints=planned,
            status="planned",
        )

    def _plan_group_safely(self, group: DuplicateGroup) -> DuplicateGroupReport:
        try:
            return self._plan_group(group)
        except Exception as e:
            logger.error({
                "message": "Failed to plan duplicate driver merge",
                "name": group.name_norm,
                "fleet": group.fleet,
                "survivor_id": group.survivor.id,
                "error": str(e),
            })
            return DuplicateGroupReport(
                name_norm=group.name_norm,
                fleet=group.fleet,
                survivor_id=group.survivor.id,
                loser_ids=[loser.id for loser in group.losers],
                status="failed",
                error=str(e),
            )

    def _merge_group(self, group: DuplicateGroup) -> DuplicateGroupReport:
        detail = DuplicateGroupReport(
            name_norm=group.name_norm,
            fleet=group.fleet,
            survivor_id=group.survivor.id,
            loser_ids=[loser.id for loser in group.losers],
        )
        repointed = 0
        try:
            detail = self._plan_group(group)
            with self._transaction():
                for loser in group.losers:
                    repointed += self.records.repoint_association(loser.id, group.survivor.id)
                    remaining = self.records.count_associations(loser.id)
                    if remaining:
                        raise PersistenceError(
                            f"Driver {loser.id} still referenced by {remaining} records after repoint"
                        )
                    if not self.roster.delete_driver(loser.id):
                        raise PersistenceError(f"Driver {loser.id} could not be deleted")
        except Exception as e:
            logger.error({
                "message": "Failed to merge duplicate drivers",
                "name": group.name_norm,
                "fleet": group.fleet,
                "survivor_id": group.survivor.id,
                "error": str(e),
            })
            return detail.model_copy(update={"status": "failed", "error": str(e)})

        logger.info({
            "message": "Merged duplicate drivers",
            "name": group.name_norm,
            "fleet": group.fleet,
            "survivor_id": group.survivor.id,
            "loser_ids": detail.loser_ids,
            "repointed": repointed,
        })
        return detail.model_copy(update={"status": "merged", "repointed": repointed})

    def _transaction(self):
        if self.unit_of_work is not None:
            return self.unit_of_work.transaction()
        return nullcontext()

