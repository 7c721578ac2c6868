from sqlalchemy import Column, Integer, DateTime, String, JSON, Enum, Date, Boolean
from sqlalchemy.sql import func
import enum
from driver_identity.db import Base


class RunStatus(str, enum.Enum):
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class JobType(str, enum.Enum):
    DRIVER_CORRELATION = "driver_correlation"
    DRIVER_CONSOLIDATION = "driver_consolidation"


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class DriverCorrelationRun(Base):
    __tablename__ = "driver_correlation_runs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_type = Column(Enum(JobType, native_enum=False, values_callable=_enum_values), nullable=False, default=JobType.DRIVER_CORRELATION)
    status = Column(Enum(RunStatus, native_enum=False, values_callable=_enum_values), default=RunStatus.RUNNING, nullable=False)
    dry_run = Column(Boolean, nullable=False, default=False)
    started_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    scope_sources = Column(JSON, nullable=True)
    scope_driver_id = Column(String, nullable=True)
    scope_date_from = Column(Date, nullable=True)
    scope_date_to = Column(Date, nullable=True)
    stats = Column(JSON, nullable=True)
    error_message = Column(String, nullable=True)
