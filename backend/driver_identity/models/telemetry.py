"""
Telemetry feed tables. Rows are written by the ingestion processes with an
empty association; the correlation runner fills the driver_association_*
columns, manual overrides use method 'manual_assignment'.
"""
from sqlalchemy import Column, String, DateTime, Float, Boolean, ForeignKey, CheckConstraint
from sqlalchemy.orm import declared_attr
import uuid
from driver_identity.db import Base


class DriverAssociationMixin:
    driver_name = Column(String, nullable=True)
    driver_association_confidence = Column(Float, nullable=True)
    driver_association_method = Column(String, nullable=True)
    driver_association_updated_at = Column(DateTime(timezone=True), nullable=True)

    @declared_attr
    def driver_id(cls):
        return Column(String(36), ForeignKey("drivers.id"), nullable=True, index=True)

    @declared_attr
    def __table_args__(cls):
        return (
            CheckConstraint(
                "driver_association_confidence IS NULL "
                "OR (driver_association_confidence >= 0 AND driver_association_confidence <= 1)",
                name=f"ck_{cls.__tablename__}_confidence_range",
            ),
        )


class LytxSafetyEvent(DriverAssociationMixin, Base):
    __tablename__ = "lytx_safety_events"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    event_id = Column(String, nullable=True, unique=True)
    employee_id = Column(String, nullable=True)
    carrier = Column(String, nullable=True)
    depot = Column(String, nullable=True)
    vehicle_registration = Column(String, nullable=True)
    event_datetime = Column(DateTime(timezone=True), nullable=True)


class GuardianEvent(DriverAssociationMixin, Base):
    __tablename__ = "guardian_events"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    external_event_id = Column(String, nullable=True)
    event_type = Column(String, nullable=True)
    fleet = Column(String, nullable=True)
    vehicle_registration = Column(String, nullable=True)
    verified = Column(Boolean, nullable=True)
    detection_time = Column(DateTime(timezone=True), nullable=True)


class MtdataTripHistory(DriverAssociationMixin, Base):
    __tablename__ = "mtdata_trip_history"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    trip_external_id = Column(String, nullable=True)
    group_name = Column(String, nullable=True)
    vehicle_registration = Column(String, nullable=True)
    start_time = Column(DateTime(timezone=True), nullable=True)
