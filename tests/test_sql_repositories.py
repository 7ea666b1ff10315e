import uuid

import pytest

from app.core.exceptions import (
    AuthenticationError,
    NotificationNotFoundError,
    ReportNotFoundError,
    UserAlreadyExistsError,
)
from app.core.security import create_password_hash
from app.models.database import UserRecord
from app.models.domain import Location, NewNotification, NewReport, ReportCategory, ReportStatus, UserRole
from app.repositories.sql import SqlAuthRepository, SqlNotificationRepository, SqlReportRepository
from app.services.notifications import NotificationService


async def _add_user(session_factory, name, role=UserRole.CITIZEN, is_active=True) -> str:
    record = UserRecord(
        email=f"{name}@example.com",
        name=name,
        role=role,
        password_hash="not-a-real-hash",
        is_active=is_active,
    )
    async with session_factory() as session:
        session.add(record)
        await session.commit()
    return str(record.id)


def _new_report(category=ReportCategory.POTHOLE, user_id="citizen-1", address="Main St") -> NewReport:
    return NewReport(
        user_id=user_id,
        user_name="Dana Citizen",
        category=category,
        title="Deep pothole",
        description="Right by the bus stop",
        location=Location(lat=32.08, lng=34.78, address=address),
    )


# =============================================================================
# Reports
# =============================================================================

@pytest.mark.asyncio
async def test_save_and_find_report(session_factory):
    repository = SqlReportRepository(session_factory)

    saved = await repository.save(_new_report())
    loaded = await repository.find_by_id(saved.id)

    assert uuid.UUID(saved.id)
    assert loaded.id == saved.id
    assert loaded.status == ReportStatus.RECEIVED
    assert loaded.category == ReportCategory.POTHOLE
    assert loaded.location == Location(lat=32.08, lng=34.78, address="Main St")
    assert loaded.user_name == "Dana Citizen"
    assert loaded.created_at.tzinfo is not None
    assert loaded.created_at == loaded.updated_at


@pytest.mark.asyncio
async def test_find_all_filters_newest_first(session_factory):
    repository = SqlReportRepository(session_factory)
    first = await repository.save(_new_report(user_id="a"))
    await repository.save(_new_report(category=ReportCategory.FLOOD, user_id="b"))
    third = await repository.save(_new_report(user_id="a"))

    mine = await repository.find_all(user_id="a")
    floods = await repository.find_all(category=ReportCategory.FLOOD)

    assert [r.id for r in mine] == [third.id, first.id]
    assert [r.user_id for r in floods] == ["b"]
    assert await repository.find_all(status=ReportStatus.RESOLVED) == []


@pytest.mark.asyncio
async def test_update_status_strictly_increases_updated_at(session_factory):
    repository = SqlReportRepository(session_factory)
    saved = await repository.save(_new_report())

    first = await repository.update_status(saved.id, ReportStatus.IN_PROGRESS)
    second = await repository.update_status(saved.id, ReportStatus.RESOLVED)

    assert first.updated_at > saved.updated_at
    assert second.updated_at > first.updated_at
    assert (await repository.find_by_id(saved.id)).status == ReportStatus.RESOLVED


@pytest.mark.asyncio
@pytest.mark.parametrize("report_id", [str(uuid.uuid4()), "not-a-uuid"])
async def test_unknown_report_raises_not_found(session_factory, report_id):
    repository = SqlReportRepository(session_factory)

    with pytest.raises(ReportNotFoundError):
        await repository.find_by_id(report_id)
    with pytest.raises(ReportNotFoundError):
        await repository.update_status(report_id, ReportStatus.RESOLVED)


# =============================================================================
# Notifications
# =============================================================================

@pytest.mark.asyncio
async def test_notifications_per_user_newest_first(session_factory):
    repository = SqlNotificationRepository(session_factory)
    first = await repository.create(NewNotification("u1", "r1", "t1", "m1"))
    await repository.create(NewNotification("u2", "r1", "t2", "m2"))
    second = await repository.create(NewNotification("u1", "r2", "t3", "m3"))

    result = await repository.find_by_user_id("u1")

    assert [n.id for n in result] == [second.id, first.id]
    assert all(n.read is False for n in result)


@pytest.mark.asyncio
async def test_mark_as_read_twice(session_factory):
    repository = SqlNotificationRepository(session_factory)
    created = await repository.create(NewNotification("u1", "r1", "t", "m"))

    await repository.mark_as_read(created.id)
    await repository.mark_as_read(created.id)

    [stored] = await repository.find_by_user_id("u1")
    assert stored.read is True


@pytest.mark.asyncio
async def test_mark_as_read_missing(session_factory):
    repository = SqlNotificationRepository(session_factory)

    with pytest.raises(NotificationNotFoundError):
        await repository.mark_as_read(str(uuid.uuid4()))


@pytest.mark.asyncio
async def test_find_notification_by_id(session_factory):
    repository = SqlNotificationRepository(session_factory)
    created = await repository.create(NewNotification("u1", "r1", "t", "m"))

    found = await repository.find_by_id(created.id)

    assert found.user_id == "u1"
    assert found.read is False
    with pytest.raises(NotificationNotFoundError):
        await repository.find_by_id("not-a-uuid")


@pytest.mark.asyncio
async def test_find_admins_returns_active_admins_only(session_factory):
    admin_id = await _add_user(session_factory, "alice", role=UserRole.ADMIN)
    await _add_user(session_factory, "bob", role=UserRole.ADMIN, is_active=False)
    await _add_user(session_factory, "carol")

    repository = SqlNotificationRepository(session_factory)

    assert await repository.find_admins() == [admin_id]


@pytest.mark.asyncio
async def test_concurrent_fan_out_uses_separate_sessions(session_factory):
    admin_ids = [
        await _add_user(session_factory, f"admin{i}", role=UserRole.ADMIN) for i in range(3)
    ]
    service = NotificationService(SqlNotificationRepository(session_factory))

    created = await service.notify_admins("Urgent", "Flood on Main St", "report-1")

    assert sorted(n.user_id for n in created) == sorted(admin_ids)


# =============================================================================
# Auth
# =============================================================================

@pytest.mark.asyncio
async def test_register_and_authenticate(session_factory):
    repository = SqlAuthRepository(session_factory)

    user = await repository.register("Dana@Example.com", "password123", "Dana")
    authenticated = await repository.authenticate("dana@example.com", "password123")

    assert user.email == "dana@example.com"
    assert user.role == UserRole.CITIZEN
    assert authenticated.id == user.id
    assert (await repository.get_user(user.id)).name == "Dana"


@pytest.mark.asyncio
async def test_register_duplicate_email(session_factory):
    repository = SqlAuthRepository(session_factory)
    await repository.register("dana@example.com", "password123", "Dana")

    with pytest.raises(UserAlreadyExistsError):
        await repository.register("DANA@example.com", "another-password", "Dana 2")


@pytest.mark.asyncio
async def test_authenticate_wrong_password(session_factory):
    repository = SqlAuthRepository(session_factory)
    await repository.register("dana@example.com", "password123", "Dana")

    with pytest.raises(AuthenticationError):
        await repository.authenticate("dana@example.com", "wrong-password")
    with pytest.raises(AuthenticationError):
        await repository.authenticate("nobody@example.com", "password123")


@pytest.mark.asyncio
async def test_disabled_user_cannot_sign_in(session_factory):
    async with session_factory() as session:
        record = UserRecord(
            email="eve@example.com",
            name="Eve",
            password_hash=create_password_hash("password123"),
            is_active=False,
        )
        session.add(record)
        await session.commit()

    repository = SqlAuthRepository(session_factory)

    with pytest.raises(AuthenticationError):
        await repository.authenticate("eve@example.com", "password123")
    assert await repository.get_user(str(record.id)) is None
