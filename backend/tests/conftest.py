"""
Shared fixtures: an in-memory store implementing the repository protocols,
record / driver factories, and a SQLite database for the SQLAlchemy store.
"""
import copy
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional, Set, Tuple

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from driver_identity.db import Base
from driver_identity.errors import PersistenceError
from driver_identity.models import drivers, ops, telemetry  # noqa: F401  (registers tables)
from driver_identity.services.records import (
    Association, DriverFilter, ExternalRecord, MatchMethod, RosterDriver, Source
)
from driver_identity.services.repository import window_bounds


class InMemoryCorrelationStore:
    """
    Roster and external records held in dicts.

    Failure hooks:
        fail_updates: record ids whose association write raises
        conflicting: record ids whose conditional write loses (returns False)
        fail_deletes: driver ids whose delete raises
        fail_fetch_on_call: 1-based list_unresolved call number that raises
        fail_roster: list_drivers raises
    """

    def __init__(self):
        self.drivers: Dict[str, RosterDriver] = {}
        self.records: Dict[str, Dict[str, ExternalRecord]] = {source.value: {} for source in Source}
        self.fail_updates: Set[str] = set()
        self.conflicting: Set[str] = set()
        self.fail_deletes: Set[str] = set()
        self.fail_fetch_on_call: Optional[int] = None
        self.fail_roster = False
        self.fetch_calls: List[Tuple[str, Optional[str]]] = []
        self.update_calls: List[str] = []

    # Seeding

    def add_driver(self, driver: RosterDriver) -> RosterDriver:
        self.drivers[driver.id] = driver
        return driver

    def add_record(self, record: ExternalRecord) -> ExternalRecord:
        self.records[Source(record.source).value][record.id] = record
        return record

    def get_record(self, source, record_id: str) -> ExternalRecord:
        return self.records[Source(source).value][record_id]

    # RosterRepository

    def list_drivers(self, driver_filter: Optional[DriverFilter] = None) -> List[RosterDriver]:
        if self.fail_roster:
            raise RuntimeError("roster unavailable")
        result = list(self.drivers.values())
        if driver_filter and driver_filter.driver_id:
            result = [d for d in result if d.id == driver_filter.driver_id]
        if driver_filter and driver_filter.fleet:
            result = [d for d in result if d.fleet == driver_filter.fleet]
        return result

    def delete_driver(self, driver_id: str) -> bool:
        if driver_id in self.fail_deletes:
            raise PersistenceError(f"delete_driver failed for {driver_id}")
        return self.drivers.pop(driver_id, None) is not None

    # ExternalRecordRepository

    def list_unresolved(self, source, limit, after_id=None, date_from=None, date_to=None):
        source = Source(source)
        self.fetch_calls.append((source.value, after_id))
        if self.fail_fetch_on_call is not None and len(self.fetch_calls) == self.fail_fetch_on_call:
            raise RuntimeError("connection reset")

        start, end = window_bounds(date_from, date_to)
        rows = []
        for record in sorted(self.records[source.value].values(), key=lambda r: r.id):
            if record.association is not None:
                continue
            if not record.raw_driver_name or not record.raw_driver_name.strip():
                continue
            if after_id is not None and record.id <= after_id:
                continue
            if start is not None and (record.occurred_at is None or record.occurred_at < start):
                continue
            if end is not None and (record.occurred_at is None or record.occurred_at >= end):
                continue
            rows.append(record)
        return rows[:limit]

    def update_association(self, source, record_id: str, association: Association) -> bool:
        self.update_calls.append(record_id)
        if record_id in self.fail_updates:
            raise PersistenceError(f"update_association failed for {record_id}")
        if record_id in self.conflicting:
            return False
        record = self.get_record(source, record_id)
        if record.association is not None:
            return False
        self.add_record(replace(record, association=association))
        return True

    def repoint_association(self, old_driver_id: str, new_driver_id: str) -> int:
        repointed = 0
        for rows in self.records.values():
            for record_id, record in list(rows.items()):
                if record.association is not None and record.association.driver_id == old_driver_id:
                    rows[record_id] = replace(
                        record, association=replace(record.association, driver_id=new_driver_id)
                    )
                    repointed += 1
        return repointed

    def count_associations(self, driver_id: str) -> int:
        return sum(
            1
            for rows in self.records.values()
            for record in rows.values()
            if record.association is not None and record.association.driver_id == driver_id
        )

    def coverage(self, source) -> Tuple[int, int]:
        rows = self.records[Source(source).value].values()
        return len(rows), sum(1 for r in rows if r.association is not None)

    # UnitOfWork

    @contextmanager
    def transaction(self):
        drivers_snapshot = dict(self.drivers)
        records_snapshot = copy.deepcopy(self.records)
        try:
            yield
        except Exception:
            self.drivers = drivers_snapshot
            self.records = records_snapshot
            raise


def build_driver(id, first_name, last_name, fleet="Stevemacs", employee_id=None,
                 status="Active", created_at=None) -> RosterDriver:
    return RosterDriver(
        id=id,
        first_name=first_name,
        last_name=last_name,
        fleet=fleet,
        employee_id=employee_id,
        status=status,
        created_at=created_at or datetime(2023, 1, 1),
    )


def build_record(id, name, source=Source.LYTX, employee_id=None, fleet_hint=None,
                 occurred_at=None, association=None) -> ExternalRecord:
    return ExternalRecord(
        source=Source(source).value,
        id=id,
        raw_driver_name=name,
        employee_id=employee_id,
        fleet_hint=fleet_hint,
        occurred_at=occurred_at,
        association=association,
    )


def manual_association(driver_id: str) -> Association:
    return Association(driver_id=driver_id, confidence=1.0, method=MatchMethod.MANUAL_ASSIGNMENT,
                       updated_at=datetime(2024, 6, 1))


@pytest.fixture
def store():
    return InMemoryCorrelationStore()


@pytest.fixture
def make_driver():
    return build_driver


@pytest.fixture
def make_record():
    return build_record


@pytest.fixture
def make_manual_association():
    return manual_association


@pytest.fixture
def engine(tmp_path):
    """File-backed SQLite so each session gets its own connection."""
    engine = create_engine(f"sqlite:///{tmp_path / 'driver_identity.db'}")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()
