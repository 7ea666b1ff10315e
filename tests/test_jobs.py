from unittest.mock import patch

import pytest
from sqlalchemy import select

from app.core.exceptions import PersistenceError
from app.models.database import NotificationRecord, UserRecord
from app.models.domain import UserRole
from app.repositories.sql import SqlNotificationRepository
from app.workers.jobs import _notify_admins_async


async def _add_admin(session_factory, name) -> str:
    record = UserRecord(
        email=f"{name}@example.com",
        name=name,
        role=UserRole.ADMIN,
        password_hash="not-a-real-hash",
    )
    async with session_factory() as session:
        session.add(record)
        await session.commit()
    return str(record.id)


async def _stored_recipients(session_factory):
    async with session_factory() as session:
        result = await session.execute(select(NotificationRecord.user_id))
        return sorted(result.scalars().all())


@pytest.mark.asyncio
async def test_job_alerts_every_admin(session_factory):
    admin_ids = [await _add_admin(session_factory, f"admin{i}") for i in range(2)]

    result = await _notify_admins_async("Urgent", "Flood on Main St", "report-1", session_factory)

    assert result == {"report_id": "report-1", "notifications_created": 2, "failed": 0}
    assert await _stored_recipients(session_factory) == sorted(admin_ids)


@pytest.mark.asyncio
async def test_job_without_admins_creates_nothing(session_factory):
    result = await _notify_admins_async("Urgent", "Flood on Main St", "report-1", session_factory)

    assert result["notifications_created"] == 0
    assert result["failed"] == 0


@pytest.mark.asyncio
async def test_job_reports_partial_failure_instead_of_raising(session_factory):
    healthy = await _add_admin(session_factory, "healthy")
    broken = await _add_admin(session_factory, "broken")
    create = SqlNotificationRepository.create

    async def flaky_create(self, notification):
        if notification.user_id == broken:
            raise PersistenceError("create_notification", "disk full")
        return await create(self, notification)

    with patch.object(SqlNotificationRepository, "create", flaky_create):
        result = await _notify_admins_async("Urgent", "Flood on Main St", "report-1", session_factory)

    assert result["notifications_created"] == 1
    assert result["failed"] == 1
    assert result["error"] == "NOTIFICATION_DELIVERY_FAILED"
    assert await _stored_recipients(session_factory) == [healthy]


@pytest.mark.asyncio
async def test_job_survives_roster_failure(session_factory):
    async def broken_roster(self):
        raise PersistenceError("find_admins", "connection reset")

    with patch.object(SqlNotificationRepository, "find_admins", broken_roster):
        result = await _notify_admins_async("Urgent", "Flood on Main St", "report-1", session_factory)

    assert result["notifications_created"] == 0
    assert result["error"] == "PERSISTENCE_FAILURE"
