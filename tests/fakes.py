"""
In-memory repositories used by the service and API tests.
"""

import uuid
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from app.core.exceptions import (
    AuthenticationError,
    NotificationNotFoundError,
    ReportNotFoundError,
    UserAlreadyExistsError,
)
from app.models.domain import (
    NewNotification,
    NewReport,
    Notification,
    Report,
    ReportStatus,
    User,
    UserRole,
)
from app.repositories.base import AuthRepository, NotificationRepository, ReportRepository


def _now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# In-memory repositories
# =============================================================================

class InMemoryReportRepository(ReportRepository):

    def __init__(self):
        self.reports: Dict[str, Report] = {}

    async def save(self, report: NewReport) -> Report:
        now = _now()
        saved = Report(
            id=str(uuid.uuid4()),
            user_id=report.user_id,
            user_name=report.user_name,
            category=report.category,
            title=report.title,
            description=report.description,
            location=report.location,
            status=report.status,
            created_at=now,
            updated_at=now,
            image_url=report.image_url,
        )
        self.reports[saved.id] = saved
        return saved

    async def find_all(self, category=None, status=None, user_id=None) -> List[Report]:
        reports = [
            r for r in self.reports.values()
            if (category is None or r.category == category)
            and (status is None or r.status == status)
            and (user_id is None or r.user_id == user_id)
        ]
        return sorted(reports, key=lambda r: r.created_at, reverse=True)

    async def find_by_id(self, report_id: str) -> Report:
        if report_id not in self.reports:
            raise ReportNotFoundError(report_id)
        return self.reports[report_id]

    async def update_status(self, report_id: str, status: ReportStatus) -> Report:
        current = await self.find_by_id(report_id)
        now = max(_now(), current.updated_at + timedelta(microseconds=1))
        updated = current.with_status(status, now)
        self.reports[report_id] = updated
        return updated


class InMemoryNotificationRepository(NotificationRepository):

    def __init__(self, admin_ids: Optional[List[str]] = None, fail_for: Optional[set] = None):
        self.notifications: Dict[str, Notification] = {}
        self.admin_ids = list(admin_ids or [])
        self.fail_for = set(fail_for or ())
        self.create_calls: List[NewNotification] = []
        self.find_admins_calls = 0
        self._last_created: Optional[datetime] = None

    async def create(self, notification: NewNotification) -> Notification:
        self.create_calls.append(notification)
        if notification.user_id in self.fail_for:
            raise RuntimeError(f"datastore rejected write for {notification.user_id}")
        created = Notification(
            id=str(uuid.uuid4()),
            user_id=notification.user_id,
            report_id=notification.report_id,
            title=notification.title,
            message=notification.message,
            created_at=self._next_timestamp(),
            read=notification.read,
        )
        self.notifications[created.id] = created
        return created

    def _next_timestamp(self) -> datetime:
        now = _now()
        if self._last_created is not None and now <= self._last_created:
            now = self._last_created + timedelta(microseconds=1)
        self._last_created = now
        return now

    async def find_by_user_id(self, user_id: str) -> List[Notification]:
        return [n for n in self.notifications.values() if n.user_id == user_id]

    async def find_by_id(self, notification_id: str) -> Notification:
        if notification_id not in self.notifications:
            raise NotificationNotFoundError(notification_id)
        return self.notifications[notification_id]

    async def mark_as_read(self, notification_id: str) -> None:
        if notification_id not in self.notifications:
            raise NotificationNotFoundError(notification_id)
        self.notifications[notification_id] = replace(self.notifications[notification_id], read=True)

    async def find_admins(self) -> List[str]:
        self.find_admins_calls += 1
        return list(self.admin_ids)


class InMemoryAuthRepository(AuthRepository):

    def __init__(self):
        self.users: Dict[str, User] = {}
        self.passwords: Dict[str, str] = {}

    def add_user(self, name: str, role: UserRole = UserRole.CITIZEN, password: str = "password123") -> User:
        user = User(
            id=str(uuid.uuid4()),
            email=f"{name.lower().replace(' ', '.')}@example.com",
            name=name,
            role=role,
        )
        self.users[user.id] = user
        self.passwords[user.email] = password
        return user

    async def register(self, email: str, password: str, name: str) -> User:
        email = email.lower()
        if email in self.passwords:
            raise UserAlreadyExistsError(email)
        user = User(id=str(uuid.uuid4()), email=email, name=name)
        self.users[user.id] = user
        self.passwords[email] = password
        return user

    async def authenticate(self, email: str, password: str) -> User:
        email = email.lower()
        if self.passwords.get(email) != password:
            raise AuthenticationError("Invalid credentials")
        return next(u for u in self.users.values() if u.email == email)

    async def get_user(self, user_id: str) -> Optional[User]:
        return self.users.get(user_id)
