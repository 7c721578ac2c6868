"""
Canonical types the matcher, runner and consolidator work with.

Repositories map their storage rows into these shapes at the boundary;
nothing above the repository layer sees ORM objects.
"""
import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from driver_identity.services.normalization import full_name, normalize_name


class Source(str, enum.Enum):
    LYTX = "lytx"
    GUARDIAN = "guardian"
    MTDATA = "mtdata"


class MatchMethod(str, enum.Enum):
    EMPLOYEE_ID_MATCH = "employee_id_match"
    EXACT_MATCH = "exact_match"
    FUZZY_MATCH = "fuzzy_match"
    MANUAL_ASSIGNMENT = "manual_assignment"


class DriverStatus(str, enum.Enum):
    ACTIVE = "Active"
    INACTIVE = "Inactive"
    ON_LEAVE = "On Leave"
    TERMINATED = "Terminated"


class Fleet(str, enum.Enum):
    STEVEMACS = "Stevemacs"
    GREAT_SOUTHERN_FUELS = "Great Southern Fuels"


@dataclass(frozen=True)
class RosterDriver:
    id: str
    first_name: Optional[str]
    last_name: Optional[str]
    fleet: Optional[str] = None
    employee_id: Optional[str] = None
    depot: Optional[str] = None
    status: Optional[str] = None
    created_at: Optional[datetime] = None
    full_name_norm: str = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "full_name_norm", normalize_name(self.full_name))

    @property
    def full_name(self) -> str:
        return full_name(self.first_name, self.last_name)

    @property
    def is_active(self) -> bool:
        return (self.status or "").strip().lower() == DriverStatus.ACTIVE.value.lower()


@dataclass(frozen=True)
class Association:
    driver_id: str
    confidence: float
    method: MatchMethod
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class ExternalRecord:
    source: str
    id: str
    raw_driver_name: Optional[str]
    employee_id: Optional[str] = None
    fleet_hint: Optional[str] = None
    occurred_at: Optional[datetime] = None
    association: Optional[Association] = None


@dataclass(frozen=True)
class Match:
    driver_id: str
    confidence: float
    method: MatchMethod
    driver_name: str = ""

    def to_association(self, updated_at: datetime) -> Association:
        return Association(
            driver_id=self.driver_id,
            confidence=self.confidence,
            method=self.method,
            updated_at=updated_at,
        )


@dataclass(frozen=True)
class DriverFilter:
    driver_id: Optional[str] = None
    fleet: Optional[str] = None
