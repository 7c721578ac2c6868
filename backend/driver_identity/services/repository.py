"""
Store interfaces consumed by the correlation runner and the consolidator,
and their SQLAlchemy implementation.

The engine only talks to these protocols; tests substitute an in-memory
store.
"""
import logging
from contextlib import contextmanager
from datetime import date, datetime, time, timedelta
from typing import Iterator, List, Optional, Protocol, Tuple

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from driver_identity.errors import PersistenceError
from driver_identity.models.drivers import Driver
from driver_identity.services.records import (
    Association, DriverFilter, ExternalRecord, MatchMethod, RosterDriver, Source
)
from driver_identity.services.sources import SOURCES, get_source

logger = logging.getLogger(__name__)


class RosterRepository(Protocol):
    def list_drivers(self, driver_filter: Optional[DriverFilter] = None) -> List[RosterDriver]:
        ...

    def delete_driver(self, driver_id: str) -> bool:
        ...


class ExternalRecordRepository(Protocol):
    def list_unresolved(self, source: Source, limit: int, after_id: Optional[str] = None,
                        date_from: Optional[date] = None,
                        date_to: Optional[date] = None) -> List[ExternalRecord]:
        ...

    def update_association(self, source: Source, record_id: str, association: Association) -> bool:
        ...

    def repoint_association(self, old_driver_id: str, new_driver_id: str) -> int:
        ...

    def count_associations(self, driver_id: str) -> int:
        ...

    def coverage(self, source: Source) -> Tuple[int, int]:
        ...


class UnitOfWork(Protocol):
    def transaction(self):
        ...


def window_bounds(date_from: Optional[date], date_to: Optional[date]) -> Tuple[Optional[datetime], Optional[datetime]]:
    """Inclusive date window as [start, end) datetimes."""
    start = datetime.combine(date_from, time.min) if date_from else None
    end = datetime.combine(date_to + timedelta(days=1), time.min) if date_to else None
    return start, end


def to_roster_driver(row: Driver) -> RosterDriver:
    return RosterDriver(
        id=row.id,
        first_name=row.first_name,
        last_name=row.last_name,
        fleet=row.fleet,
        employee_id=row.employee_id,
        depot=row.depot,
        status=row.status,
        created_at=row.created_at,
    )


class SqlAlchemyCorrelationStore:
    """
    Roster and telemetry store over one SQLAlchemy session.

    Writes commit immediately unless they run inside transaction(), in which
    case the whole block commits or rolls back together.
    """

    def __init__(self, db: Session):
        self.db = db
        self._in_transaction = False

    # Roster

    def list_drivers(self, driver_filter: Optional[DriverFilter] = None) -> List[RosterDriver]:
        stmt = select(Driver)
        if driver_filter and driver_filter.driver_id:
            stmt = stmt.where(Driver.id == driver_filter.driver_id)
        if driver_filter and driver_filter.fleet:
            stmt = stmt.where(Driver.fleet == driver_filter.fleet)
        stmt = stmt.order_by(Driver.created_at, Driver.id)
        rows = self.db.execute(stmt).scalars().all()
        return [to_roster_driver(row) for row in rows]

    def delete_driver(self, driver_id: str) -> bool:
        with self._write("delete_driver", driver_id=driver_id):
            result = self.db.execute(delete(Driver).where(Driver.id == driver_id))
        return result.rowcount == 1

    # External records

    def list_unresolved(self, source: Source, limit: int, after_id: Optional[str] = None,
                        date_from: Optional[date] = None,
                        date_to: Optional[date] = None) -> List[ExternalRecord]:
        definition = get_source(source)
        model = definition.model
        stmt = select(model).where(
            model.driver_id.is_(None),
            or_(
                model.driver_association_method.is_(None),
                model.driver_association_method != MatchMethod.MANUAL_ASSIGNMENT.value,
            ),
            model.driver_name.is_not(None),
            func.trim(model.driver_name) != "",
        )
        if after_id is not None:
            stmt = stmt.where(model.id > after_id)

        start, end = window_bounds(date_from, date_to)
        occurred_at = getattr(model, definition.occurred_at_column)
        if start is not None:
            stmt = stmt.where(occurred_at >= start)
        if end is not None:
            stmt = stmt.where(occurred_at < end)

        stmt = stmt.order_by(model.id).limit(limit)
        rows = self.db.execute(stmt).scalars().all()
        return [definition.to_record(row) for row in rows]

    def update_association(self, source: Source, record_id: str, association: Association) -> bool:
        model = get_source(source).model
        stmt = (
            update(model)
            .where(
                model.id == record_id,
                # Conditional write: a concurrent runner or a manual link wins
                model.driver_id.is_(None),
                or_(
                    model.driver_association_method.is_(None),
                    model.driver_association_method != MatchMethod.MANUAL_ASSIGNMENT.value,
                ),
            )
            .values(
                driver_id=association.driver_id,
                driver_association_confidence=association.confidence,
                driver_association_method=MatchMethod(association.method).value,
                driver_association_updated_at=association.updated_at,
            )
        )
        with self._write("update_association", source=str(source), record_id=record_id):
            result = self.db.execute(stmt)
        return result.rowcount == 1

    def repoint_association(self, old_driver_id: str, new_driver_id: str) -> int:
        repointed = 0
        with self._write("repoint_association", old_driver_id=old_driver_id, new_driver_id=new_driver_id):
            for definition in SOURCES.values():
                model = definition.model
                result = self.db.execute(
                    update(model)
                    .where(model.driver_id == old_driver_id)
                    .values(driver_id=new_driver_id)
                )
                repointed += result.rowcount or 0
        return repointed

    def count_associations(self, driver_id: str) -> int:
        total = 0
        for definition in SOURCES.values():
            model = definition.model
            total += self.db.execute(
                select(func.count()).select_from(model).where(model.driver_id == driver_id)
            ).scalar_one()
        return total

    def coverage(self, source: Source) -> Tuple[int, int]:
        model = get_source(source).model
        total = self.db.execute(select(func.count()).select_from(model)).scalar_one()
        linked = self.db.execute(
            select(func.count()).select_from(model).where(model.driver_id.is_not(None))
        ).scalar_one()
        return total, linked

    # Transactions

    @contextmanager
    def transaction(self) -> Iterator[None]:
        if self._in_transaction:
            yield
            return
        self._in_transaction = True
        try:
            yield
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        finally:
            self._in_transaction = False

    @contextmanager
    def _write(self, operation: str, **context) -> Iterator[None]:
        try:
            yield
            if not self._in_transaction:
                self.db.commit()
        except SQLAlchemyError as e:
            if not self._in_transaction:
                self.db.rollback()
            logger.warning({"message": "Store write failed", "operation": operation, "error": str(e), **context})
            raise PersistenceError(f"{operation} failed: {e}") from e
