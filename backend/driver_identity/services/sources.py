"""
Per-feed record shapes and their mapping onto the canonical ExternalRecord.

Each feed names its fields differently (LYTX has an employee id and a
carrier, Guardian a fleet, MtData a group name); the mapping happens here,
before the matcher sees anything.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Type

from driver_identity.models.telemetry import GuardianEvent, LytxSafetyEvent, MtdataTripHistory
from driver_identity.services.records import Association, ExternalRecord, MatchMethod, Source


def _association_from_row(row: Any) -> Optional[Association]:
    if row.driver_id is None:
        return None
    try:
        method = MatchMethod(row.driver_association_method)
    except ValueError:
        # Links written outside the engine without a known method
        method = MatchMethod.MANUAL_ASSIGNMENT
    return Association(
        driver_id=row.driver_id,
        confidence=row.driver_association_confidence if row.driver_association_confidence is not None else 0.0,
        method=method,
        updated_at=row.driver_association_updated_at,
    )


@dataclass(frozen=True)
class LytxEventRecord:
    id: str
    driver_name: Optional[str]
    employee_id: Optional[str]
    carrier: Optional[str]
    event_datetime: Optional[datetime]
    association: Optional[Association] = None

    @classmethod
    def from_row(cls, row: LytxSafetyEvent) -> "LytxEventRecord":
        return cls(
            id=row.id,
            driver_name=row.driver_name,
            employee_id=row.employee_id,
            carrier=row.carrier,
            event_datetime=row.event_datetime,
            association=_association_from_row(row),
        )

    def to_external_record(self) -> ExternalRecord:
        return ExternalRecord(
            source=Source.LYTX.value,
            id=self.id,
            raw_driver_name=self.driver_name,
            employee_id=self.employee_id,
            fleet_hint=self.carrier,
            occurred_at=self.event_datetime,
            association=self.association,
        )


@dataclass(frozen=True)
class GuardianEventRecord:
    id: str
    driver_name: Optional[str]
    fleet: Optional[str]
    detection_time: Optional[datetime]
    association: Optional[Association] = None

    @classmethod
    def from_row(cls, row: GuardianEvent) -> "GuardianEventRecord":
        return cls(
            id=row.id,
            driver_name=row.driver_name,
            fleet=row.fleet,
            detection_time=row.detection_time,
            association=_association_from_row(row),
        )

    def to_external_record(self) -> ExternalRecord:
        return ExternalRecord(
            source=Source.GUARDIAN.value,
            id=self.id,
            raw_driver_name=self.driver_name,
            fleet_hint=self.fleet,
            occurred_at=self.detection_time,
            association=self.association,
        )


@dataclass(frozen=True)
class MtdataTripRecord:
    id: str
    driver_name: Optional[str]
    group_name: Optional[str]
    start_time: Optional[datetime]
    association: Optional[Association] = None

    @classmethod
    def from_row(cls, row: MtdataTripHistory) -> "MtdataTripRecord":
        return cls(
            id=row.id,
            driver_name=row.driver_name,
            group_name=row.group_name,
            start_time=row.start_time,
            association=_association_from_row(row),
        )

    def to_external_record(self) -> ExternalRecord:
        return ExternalRecord(
            source=Source.MTDATA.value,
            id=self.id,
            raw_driver_name=self.driver_name,
            fleet_hint=self.group_name,
            occurred_at=self.start_time,
            association=self.association,
        )


@dataclass(frozen=True)
class SourceDefinition:
    key: Source
    model: Type[Any]
    occurred_at_column: str
    to_record: Callable[[Any], ExternalRecord]

    @property
    def table_name(self) -> str:
        return self.model.__tablename__


SOURCES: Dict[Source, SourceDefinition] = {
    Source.LYTX: SourceDefinition(
        key=Source.LYTX,
        model=LytxSafetyEvent,
        occurred_at_column="event_datetime",
        to_record=lambda row: LytxEventRecord.from_row(row).to_external_record(),
    ),
    Source.GUARDIAN: SourceDefinition(
        key=Source.GUARDIAN,
        model=GuardianEvent,
        occurred_at_column="detection_time",
        to_record=lambda row: GuardianEventRecord.from_row(row).to_external_record(),
    ),
    Source.MTDATA: SourceDefinition(
        key=Source.MTDATA,
        model=MtdataTripHistory,
        occurred_at_column="start_time",
        to_record=lambda row: MtdataTripRecord.from_row(row).to_external_record(),
    ),
}


def get_source(source: Any) -> SourceDefinition:
    return SOURCES[Source(source)]
