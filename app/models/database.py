"""
Database Models and ORM Setup

This module contains the database models using SQLAlchemy 2.0 with async
support, plus the engine, session factory and lifecycle helpers.
"""

import asyncio
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    Float,
    Index,
    String,
    Text,
    Uuid,
    func,
    select,
    text,
)
from sqlalchemy.ext.asyncio import AsyncAttrs, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from app.core.config import settings
from app.models.domain import ReportCategory, ReportStatus, UserRole
import structlog

logger = structlog.get_logger(__name__).bind(component="database")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


# =============================================================================
# Base Model with Common Fields
# =============================================================================

class Base(AsyncAttrs, DeclarativeBase):
    """
    Base class for all database models.

    Provides async support via AsyncAttrs and timezone-aware datetimes.
    """

    type_annotation_map = {
        datetime: DateTime(timezone=True),
    }


class UUIDMixin:
    """Mixin for UUID primary keys."""

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        doc="Primary key UUID"
    )


class TimestampMixin:
    """Mixin for created_at and updated_at timestamps."""

    # Application-side defaults: server clocks may only have second resolution
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
        doc="Record creation timestamp"
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
        doc="Last update timestamp"
    )


# =============================================================================
# User Management Models
# =============================================================================

class UserRecord(Base, UUIDMixin, TimestampMixin):
    """
    Account of a citizen or an administrator.

    Owned by the auth adapter; the reporting core only reads id, name and role.
    """

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        doc="Login email address"
    )

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        doc="Display name"
    )

    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole, name="user_role", values_callable=_enum_values),
        default=UserRole.CITIZEN,
        nullable=False,
        doc="User role"
    )

    password_hash: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        doc="bcrypt password hash"
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    __table_args__ = (
        Index("ix_users_email", "email"),
        Index("ix_users_role", "role"),
    )


# =============================================================================
# Reports
# =============================================================================

class ReportRecord(Base, UUIDMixin, TimestampMixin):
    """
    Citizen-submitted municipal incident.

    ``user_id`` is a plain reference (no foreign key): reports and users are
    correlated by id only and never cascade.
    """

    __tablename__ = "reports"

    user_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        doc="Submitting user"
    )

    user_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        doc="Submitter display name at creation time"
    )

    category: Mapped[ReportCategory] = mapped_column(
        Enum(ReportCategory, name="report_category", values_callable=_enum_values),
        nullable=False,
    )

    title: Mapped[str] = mapped_column(String(255), nullable=False)

    description: Mapped[str] = mapped_column(Text, nullable=False)

    latitude: Mapped[float] = mapped_column(Float, nullable=False)

    longitude: Mapped[float] = mapped_column(Float, nullable=False)

    address: Mapped[str] = mapped_column(Text, nullable=False, default="")

    image_url: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        doc="Public URL of the uploaded photo"
    )

    status: Mapped[ReportStatus] = mapped_column(
        Enum(ReportStatus, name="report_status", values_callable=_enum_values),
        default=ReportStatus.RECEIVED,
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint("updated_at >= created_at", name="check_report_timestamps"),
        CheckConstraint("latitude >= -90 AND latitude <= 90", name="check_report_latitude"),
        CheckConstraint("longitude >= -180 AND longitude <= 180", name="check_report_longitude"),
        Index("ix_reports_user_id", "user_id"),
        Index("ix_reports_status", "status"),
        Index("ix_reports_category", "category"),
        Index("ix_reports_created_at", "created_at"),
    )


# =============================================================================
# Notifications
# =============================================================================

class NotificationRecord(Base, UUIDMixin):
    """In-app notification addressed to one user."""

    __tablename__ = "notifications"

    user_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        doc="Recipient"
    )

    report_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        doc="Report that triggered the notification"
    )

    title: Mapped[str] = mapped_column(String(255), nullable=False)

    message: Mapped[str] = mapped_column(Text, nullable=False)

    read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )

    __table_args__ = (
        Index("ix_notifications_user_id_created_at", "user_id", "created_at"),
    )


# =============================================================================
# Database Engine and Session Management
# =============================================================================

engine = create_async_engine(
    str(settings.DATABASE_URL),
    **settings.DATABASE_ENGINE_OPTIONS,
)

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=True,
)


# =============================================================================
# Database Initialization
# =============================================================================

async def create_tables() -> None:
    """Create all database tables."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def wait_for_database(
    max_attempts: int = 10,
    initial_delay_seconds: float = 0.5,
    max_delay_seconds: float = 5.0,
) -> None:
    """Wait for database to become available with exponential backoff.

    Raises last exception if database is not reachable after all attempts.
    """
    attempt = 0
    delay = float(initial_delay_seconds)
    last_error: Optional[Exception] = None

    while attempt < max_attempts:
        try:
            async with async_session_maker() as session:
                await session.execute(text("SELECT 1"))
            if attempt > 0:
                logger.info("Database became available", attempts=attempt + 1)
            return
        except Exception as exc:  # noqa: BLE001 - we want original error
            last_error = exc
            logger.warning(
                "Database not reachable yet",
                attempt=attempt + 1,
                delay_seconds=delay,
                error=str(exc),
            )
            await asyncio.sleep(delay)
            delay = min(max_delay_seconds, delay * 2)
            attempt += 1

    logger.error(
        "Database not reachable after retries",
        attempts=max_attempts,
        error=str(last_error) if last_error else None,
    )
    if last_error:
        raise last_error


# =============================================================================
# Health Check Queries
# =============================================================================

async def check_database_health() -> Dict[str, Any]:
    """Check database connectivity."""
    try:
        async with async_session_maker() as session:
            result = await session.execute(text("SELECT 1"))
            test_value = result.scalar()

            reports_total = await session.scalar(select(func.count()).select_from(ReportRecord))

            return {
                "status": "healthy",
                "test_query": test_value == 1,
                "reports_total": reports_total,
            }

    except Exception as e:
        return {
            "status": "unhealthy",
            "error": str(e),
        }


__all__ = [
    "Base",
    "UserRecord",
    "ReportRecord",
    "NotificationRecord",
    "engine",
    "async_session_maker",
    "create_tables",
    "wait_for_database",
    "check_database_health",
    "utcnow",
]
