"""
Domain Records

Plain records shared by services, repositories and the HTTP layer. They carry
no persistence behaviour; repositories map their own storage rows to them.
"""

import enum
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import FrozenSet, Optional

# =============================================================================
# Enums for Type Safety
# =============================================================================

class ReportCategory(str, enum.Enum):
    """Closed set of municipal incident categories."""
    POTHOLE = "pothole"
    STREETLIGHT = "streetlight"
    TRAFFIC_SIGNAL = "traffic-signal"
    STORM_DRAIN = "storm-drain"
    WATER_LEAK = "water-leak"
    POWER_GRID = "power-grid"
    ACCIDENT = "accident"
    FLOOD = "flood"
    LANDSLIDE = "landslide"
    OTHER = "other"


class ReportStatus(str, enum.Enum):
    """Report status lifecycle."""
    RECEIVED = "received"          # Submitted, waiting for triage
    IN_PROGRESS = "in_progress"    # Crew assigned / being handled
    RESOLVED = "resolved"          # Fixed or closed by an admin

    @property
    def label(self) -> str:
        """Human readable form, e.g. ``in progress``."""
        return self.value.replace("_", " ")


class UserRole(str, enum.Enum):
    CITIZEN = "citizen"
    ADMIN = "admin"


# Categories whose reports page every admin as soon as they are filed
CRITICAL_CATEGORIES: FrozenSet[ReportCategory] = frozenset({
    ReportCategory.FLOOD,
    ReportCategory.LANDSLIDE,
    ReportCategory.ACCIDENT,
    ReportCategory.POWER_GRID,
})


# =============================================================================
# Records
# =============================================================================

@dataclass(frozen=True)
class Location:
    lat: float
    lng: float
    address: str = ""


@dataclass
class NewReport:
    """
    Report payload before persistence.

    ``user_name`` is a snapshot of the submitter's display name taken at
    creation time; it is never refreshed if the user later renames.
    """
    user_id: str
    user_name: str
    category: ReportCategory
    title: str
    description: str
    location: Location
    image_url: Optional[str] = None
    status: ReportStatus = ReportStatus.RECEIVED


@dataclass
class Report:
    id: str
    user_id: str
    user_name: str
    category: ReportCategory
    title: str
    description: str
    location: Location
    status: ReportStatus
    created_at: datetime
    updated_at: datetime
    image_url: Optional[str] = None

    @property
    def is_critical(self) -> bool:
        return self.category in CRITICAL_CATEGORIES

    def with_status(self, status: ReportStatus, updated_at: datetime) -> "Report":
        return replace(self, status=status, updated_at=updated_at)


@dataclass
class NewNotification:
    user_id: str
    report_id: str
    title: str
    message: str
    read: bool = False


@dataclass
class Notification:
    id: str
    user_id: str
    report_id: str
    title: str
    message: str
    created_at: datetime
    read: bool = False


@dataclass
class User:
    id: str
    email: str
    name: str
    role: UserRole = UserRole.CITIZEN

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


@dataclass
class ReportStatistics:
    """Dashboard counters over the full report set."""
    total: int = 0
    by_status: dict = field(default_factory=dict)
    by_category: list = field(default_factory=list)
