import pytest

from app.core.exceptions import NotificationDeliveryError, NotificationNotFoundError
from app.models.domain import NewNotification
from app.services.notifications import NotificationService

from tests.fakes import InMemoryNotificationRepository


def _notification(user_id: str, title: str = "Report Update") -> NewNotification:
    return NewNotification(
        user_id=user_id,
        report_id="report-1",
        title=title,
        message="Something happened",
    )


@pytest.mark.asyncio
async def test_notify_admins_creates_one_per_admin(notification_service, notification_repository):
    created = await notification_service.notify_admins("Urgent", "Flood on Main St", "report-1")

    assert sorted(n.user_id for n in created) == ["admin-1", "admin-2"]
    assert all(n.read is False for n in created)
    assert all(n.report_id == "report-1" for n in created)
    assert len(notification_repository.create_calls) == 2


@pytest.mark.asyncio
async def test_notify_admins_reads_roster_once(notification_service, notification_repository):
    await notification_service.notify_admins("Urgent", "Flood", "report-1")
    assert notification_repository.find_admins_calls == 1


@pytest.mark.asyncio
async def test_notify_admins_without_admins_is_a_noop():
    repository = InMemoryNotificationRepository(admin_ids=[])
    service = NotificationService(repository)

    created = await service.notify_admins("Urgent", "Flood", "report-1")

    assert created == []
    assert repository.create_calls == []


@pytest.mark.asyncio
async def test_notify_admins_attempts_everyone_before_failing():
    repository = InMemoryNotificationRepository(
        admin_ids=["admin-1", "admin-2", "admin-3"],
        fail_for={"admin-2"},
    )
    service = NotificationService(repository)

    with pytest.raises(NotificationDeliveryError) as exc_info:
        await service.notify_admins("Urgent", "Flood", "report-1")

    assert exc_info.value.failed == 1
    assert exc_info.value.attempted == 3
    # The other admins still got their notification
    assert sorted(n.user_id for n in repository.notifications.values()) == ["admin-1", "admin-3"]


@pytest.mark.asyncio
async def test_get_user_notifications_filters_and_orders_newest_first(notification_service):
    first = await notification_service.create_notification(_notification("citizen-1", "first"))
    await notification_service.create_notification(_notification("citizen-2", "other user"))
    second = await notification_service.create_notification(_notification("citizen-1", "second"))

    result = await notification_service.get_user_notifications("citizen-1")

    assert [n.id for n in result] == [second.id, first.id]


@pytest.mark.asyncio
async def test_get_user_notifications_empty(notification_service):
    assert await notification_service.get_user_notifications("nobody") == []


@pytest.mark.asyncio
async def test_mark_as_read_is_idempotent(notification_service, notification_repository):
    created = await notification_service.create_notification(_notification("citizen-1"))

    await notification_service.mark_as_read(created.id)
    await notification_service.mark_as_read(created.id)

    assert notification_repository.notifications[created.id].read is True


@pytest.mark.asyncio
async def test_mark_as_read_unknown_id_raises_not_found(notification_service):
    with pytest.raises(NotificationNotFoundError):
        await notification_service.mark_as_read("missing")
