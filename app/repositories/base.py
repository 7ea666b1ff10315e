"""
Persistence Ports

Abstract contracts the services depend on. Concrete adapters live in
``app.repositories.sql``; tests plug in in-memory fakes.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from app.models.domain import (
    NewNotification,
    NewReport,
    Notification,
    Report,
    ReportCategory,
    ReportStatus,
    User,
)


class ReportRepository(ABC):
    """Storage of reports."""

    @abstractmethod
    async def save(self, report: NewReport) -> Report:
        """Persist a new report, assigning ``id``, ``created_at`` and ``updated_at``."""

    @abstractmethod
    async def find_all(
        self,
        category: Optional[ReportCategory] = None,
        status: Optional[ReportStatus] = None,
        user_id: Optional[str] = None,
    ) -> List[Report]:
        """Return reports newest-first, optionally filtered."""

    @abstractmethod
    async def find_by_id(self, report_id: str) -> Report:
        """Return one report or raise ``ReportNotFoundError``."""

    @abstractmethod
    async def update_status(self, report_id: str, status: ReportStatus) -> Report:
        """
        Set ``status`` and refresh ``updated_at``.

        The new ``updated_at`` is strictly greater than the previous one.
        Raises ``ReportNotFoundError`` when the report does not exist.
        """


class NotificationRepository(ABC):
    """Storage of notifications plus the admin roster lookup used for fan-out."""

    @abstractmethod
    async def create(self, notification: NewNotification) -> Notification:
        ...

    @abstractmethod
    async def find_by_user_id(self, user_id: str) -> List[Notification]:
        """Notifications addressed to ``user_id``, newest-first."""

    @abstractmethod
    async def find_by_id(self, notification_id: str) -> Notification:
        """Return one notification or raise ``NotificationNotFoundError``."""

    @abstractmethod
    async def mark_as_read(self, notification_id: str) -> None:
        """Set ``read`` to true. Raises ``NotificationNotFoundError`` if absent."""

    @abstractmethod
    async def find_admins(self) -> List[str]:
        """Ids of every admin user."""


class AuthRepository(ABC):
    """Credential verification and account creation."""

    @abstractmethod
    async def register(self, email: str, password: str, name: str) -> User:
        """Create a citizen account. Raises ``UserAlreadyExistsError``."""

    @abstractmethod
    async def authenticate(self, email: str, password: str) -> User:
        """Return the user for valid credentials or raise ``AuthenticationError``."""

    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[User]:
        ...
