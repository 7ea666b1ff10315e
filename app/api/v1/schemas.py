"""
Shared API Models

Request and response bodies use camelCase on the wire (``userId``,
``createdAt``) while the Python side stays snake_case.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.models.domain import Location, Notification, Report, ReportCategory, ReportStatus, User, UserRole


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LocationModel(CamelModel):
    """Location data model."""
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    address: str = Field(default="", max_length=500)

    def to_domain(self) -> Location:
        return Location(lat=self.lat, lng=self.lng, address=self.address.strip())


class UserResponse(CamelModel):
    id: str
    email: str
    name: str
    role: UserRole

    @classmethod
    def from_domain(cls, user: User) -> "UserResponse":
        return cls(id=user.id, email=user.email, name=user.name, role=user.role)


class ReportResponse(CamelModel):
    """Response model for reports."""
    id: str
    user_id: str
    user_name: str
    category: ReportCategory
    title: str
    description: str
    location: LocationModel
    image_url: Optional[str] = None
    status: ReportStatus
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_domain(cls, report: Report) -> "ReportResponse":
        return cls(
            id=report.id,
            user_id=report.user_id,
            user_name=report.user_name,
            category=report.category,
            title=report.title,
            description=report.description,
            location=LocationModel(
                lat=report.location.lat,
                lng=report.location.lng,
                address=report.location.address,
            ),
            image_url=report.image_url,
            status=report.status,
            created_at=report.created_at,
            updated_at=report.updated_at,
        )


class NotificationResponse(CamelModel):
    """Response model for notifications."""
    id: str
    user_id: str
    report_id: str
    title: str
    message: str
    read: bool
    created_at: datetime

    @classmethod
    def from_domain(cls, notification: Notification) -> "NotificationResponse":
        return cls(
            id=notification.id,
            user_id=notification.user_id,
            report_id=notification.report_id,
            title=notification.title,
            message=notification.message,
            read=notification.read,
            created_at=notification.created_at,
        )
