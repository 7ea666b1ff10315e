"""
SQLAlchemy Repository Adapters

Implements the persistence ports over the async ORM models. Each operation
opens its own session from the factory, so concurrent calls (e.g. the admin
fan-out) never share a session.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.exceptions import (
    AuthenticationError,
    NotificationNotFoundError,
    PersistenceError,
    ReportNotFoundError,
    UserAlreadyExistsError,
)
from app.core.security import create_password_hash, verify_password
from app.models.database import (
    NotificationRecord,
    ReportRecord,
    UserRecord,
    async_session_maker,
    utcnow,
)
from app.models.domain import (
    Location,
    NewNotification,
    NewReport,
    Notification,
    Report,
    ReportCategory,
    ReportStatus,
    User,
    UserRole,
)
from app.repositories.base import AuthRepository, NotificationRepository, ReportRepository

logger = structlog.get_logger(__name__)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _parse_uuid(value: str) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(str(value))
    except (ValueError, TypeError):
        return None


# =============================================================================
# Reports
# =============================================================================

class SqlReportRepository(ReportRepository):

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] = async_session_maker):
        self._session_factory = session_factory

    @staticmethod
    def _to_domain(record: ReportRecord) -> Report:
        return Report(
            id=str(record.id),
            user_id=record.user_id,
            user_name=record.user_name,
            category=ReportCategory(record.category),
            title=record.title,
            description=record.description,
            location=Location(
                lat=record.latitude,
                lng=record.longitude,
                address=record.address or "",
            ),
            image_url=record.image_url,
            status=ReportStatus(record.status),
            created_at=_as_utc(record.created_at),
            updated_at=_as_utc(record.updated_at),
        )

    async def save(self, report: NewReport) -> Report:
        now = utcnow()
        record = ReportRecord(
            user_id=report.user_id,
            user_name=report.user_name,
            category=report.category,
            title=report.title,
            description=report.description,
            latitude=report.location.lat,
            longitude=report.location.lng,
            address=report.location.address or "",
            image_url=report.image_url,
            status=report.status or ReportStatus.RECEIVED,
            created_at=now,
            updated_at=now,
        )
        try:
            async with self._session_factory() as session:
                session.add(record)
                await session.commit()
        except SQLAlchemyError as e:
            logger.error("Failed to save report", user_id=report.user_id, error=str(e))
            raise PersistenceError("save_report", str(e)) from e

        return self._to_domain(record)

    async def find_all(
        self,
        category: Optional[ReportCategory] = None,
        status: Optional[ReportStatus] = None,
        user_id: Optional[str] = None,
    ) -> List[Report]:
        query = select(ReportRecord)
        if category is not None:
            query = query.where(ReportRecord.category == category)
        if status is not None:
            query = query.where(ReportRecord.status == status)
        if user_id is not None:
            query = query.where(ReportRecord.user_id == user_id)
        query = query.order_by(ReportRecord.created_at.desc())

        try:
            async with self._session_factory() as session:
                result = await session.execute(query)
                records = result.scalars().all()
        except SQLAlchemyError as e:
            raise PersistenceError("find_reports", str(e)) from e

        return [self._to_domain(record) for record in records]

    async def find_by_id(self, report_id: str) -> Report:
        key = _parse_uuid(report_id)
        if key is None:
            raise ReportNotFoundError(report_id)
        try:
            async with self._session_factory() as session:
                record = await session.get(ReportRecord, key)
        except SQLAlchemyError as e:
            raise PersistenceError("find_report", str(e)) from e

        if record is None:
            raise ReportNotFoundError(report_id)
        return self._to_domain(record)

    async def update_status(self, report_id: str, status: ReportStatus) -> Report:
        key = _parse_uuid(report_id)
        if key is None:
            raise ReportNotFoundError(report_id)
        try:
            async with self._session_factory() as session:
                record = await session.get(ReportRecord, key)
                if record is None:
                    raise ReportNotFoundError(report_id)

                previous = _as_utc(record.updated_at)
                now = utcnow()
                if now <= previous:
                    now = previous + timedelta(microseconds=1)

                record.status = status
                record.updated_at = now
                await session.commit()
        except SQLAlchemyError as e:
            logger.error("Failed to update report status", report_id=report_id, error=str(e))
            raise PersistenceError("update_report_status", str(e)) from e

        return self._to_domain(record)


# =============================================================================
# Notifications
# =============================================================================

class SqlNotificationRepository(NotificationRepository):

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] = async_session_maker):
        self._session_factory = session_factory

    @staticmethod
    def _to_domain(record: NotificationRecord) -> Notification:
        return Notification(
            id=str(record.id),
            user_id=record.user_id,
            report_id=record.report_id,
            title=record.title,
            message=record.message,
            read=record.read,
            created_at=_as_utc(record.created_at),
        )

    async def create(self, notification: NewNotification) -> Notification:
        record = NotificationRecord(
            user_id=notification.user_id,
            report_id=notification.report_id,
            title=notification.title,
            message=notification.message,
            read=notification.read,
            created_at=utcnow(),
        )
        try:
            async with self._session_factory() as session:
                session.add(record)
                await session.commit()
        except SQLAlchemyError as e:
            raise PersistenceError("create_notification", str(e)) from e

        return self._to_domain(record)

    async def find_by_user_id(self, user_id: str) -> List[Notification]:
        query = (
            select(NotificationRecord)
            .where(NotificationRecord.user_id == user_id)
            .order_by(NotificationRecord.created_at.desc())
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(query)
                records = result.scalars().all()
        except SQLAlchemyError as e:
            raise PersistenceError("find_notifications", str(e)) from e

        return [self._to_domain(record) for record in records]

    async def find_by_id(self, notification_id: str) -> Notification:
        key = _parse_uuid(notification_id)
        if key is None:
            raise NotificationNotFoundError(notification_id)
        try:
            async with self._session_factory() as session:
                record = await session.get(NotificationRecord, key)
        except SQLAlchemyError as e:
            raise PersistenceError("find_notification", str(e)) from e

        if record is None:
            raise NotificationNotFoundError(notification_id)
        return self._to_domain(record)

    async def mark_as_read(self, notification_id: str) -> None:
        key = _parse_uuid(notification_id)
        if key is None:
            raise NotificationNotFoundError(notification_id)
        try:
            async with self._session_factory() as session:
                record = await session.get(NotificationRecord, key)
                if record is None:
                    raise NotificationNotFoundError(notification_id)
                if not record.read:
                    record.read = True
                    await session.commit()
        except SQLAlchemyError as e:
            raise PersistenceError("mark_notification_read", str(e)) from e

    async def find_admins(self) -> List[str]:
        query = select(UserRecord.id).where(
            UserRecord.role == UserRole.ADMIN,
            UserRecord.is_active.is_(True),
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(query)
                admin_ids = result.scalars().all()
        except SQLAlchemyError as e:
            raise PersistenceError("find_admins", str(e)) from e

        return [str(admin_id) for admin_id in admin_ids]


# =============================================================================
# Users / Auth
# =============================================================================

class SqlAuthRepository(AuthRepository):

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] = async_session_maker):
        self._session_factory = session_factory

    @staticmethod
    def _to_domain(record: UserRecord) -> User:
        return User(
            id=str(record.id),
            email=record.email,
            name=record.name,
            role=UserRole(record.role),
        )

    async def register(self, email: str, password: str, name: str) -> User:
        email = email.strip().lower()
        try:
            async with self._session_factory() as session:
                existing = await session.scalar(select(UserRecord.id).where(UserRecord.email == email))
                if existing is not None:
                    raise UserAlreadyExistsError(email)

                record = UserRecord(
                    email=email,
                    name=name,
                    role=UserRole.CITIZEN,
                    password_hash=create_password_hash(password),
                )
                session.add(record)
                await session.commit()
        except IntegrityError as e:
            raise UserAlreadyExistsError(email) from e
        except SQLAlchemyError as e:
            raise PersistenceError("register_user", str(e)) from e

        logger.info("User registered", user_id=str(record.id))
        return self._to_domain(record)

    async def authenticate(self, email: str, password: str) -> User:
        email = email.strip().lower()
        try:
            async with self._session_factory() as session:
                record = await session.scalar(select(UserRecord).where(UserRecord.email == email))
        except SQLAlchemyError as e:
            raise PersistenceError("authenticate_user", str(e)) from e

        if record is None or not verify_password(password, record.password_hash):
            raise AuthenticationError("Invalid credentials")
        if not record.is_active:
            raise AuthenticationError("User account is disabled")
        return self._to_domain(record)

    async def get_user(self, user_id: str) -> Optional[User]:
        key = _parse_uuid(user_id)
        if key is None:
            return None
        try:
            async with self._session_factory() as session:
                record = await session.get(UserRecord, key)
        except SQLAlchemyError as e:
            raise PersistenceError("get_user", str(e)) from e

        if record is None or not record.is_active:
            return None
        return self._to_domain(record)
