from sqlalchemy import Column, String, DateTime, Index
from sqlalchemy.sql import func
import uuid
from driver_identity.db import Base


class Driver(Base):
    """Canonical roster entry. Rows are maintained by the HR / roster import."""
    __tablename__ = "drivers"
    __table_args__ = (
        Index("idx_drivers_fleet_name", "fleet", "last_name", "first_name"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    employee_id = Column(String, nullable=True, index=True)
    fleet = Column(String, nullable=False)
    depot = Column(String, nullable=True)
    status = Column(String, nullable=False, server_default="Active")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
