"""
Notification Service

Reads, creates and marks notifications, and fans a single event out to every
administrator.
"""

import asyncio
from typing import List

import structlog

from app.core.exceptions import NotificationDeliveryError, format_exception_for_logging
from app.core.metrics import NOTIFICATIONS_CREATED
from app.models.domain import NewNotification, Notification
from app.repositories.base import NotificationRepository

logger = structlog.get_logger(__name__)


class NotificationService:

    def __init__(self, notification_repository: NotificationRepository):
        self.notification_repository = notification_repository

    async def get_user_notifications(self, user_id: str) -> List[Notification]:
        """All notifications addressed to ``user_id``, newest first."""
        notifications = await self.notification_repository.find_by_user_id(user_id)
        return sorted(notifications, key=lambda n: n.created_at, reverse=True)

    async def create_notification(self, notification: NewNotification) -> Notification:
        created = await self.notification_repository.create(notification)
        NOTIFICATIONS_CREATED.labels(kind="direct").inc()
        logger.debug(
            "Notification created",
            notification_id=created.id,
            user_id=created.user_id,
            report_id=created.report_id,
        )
        return created

    async def notify_admins(self, title: str, message: str, report_id: str) -> List[Notification]:
        """
        Create one notification per administrator.

        The roster is read once per call. Every creation is attempted
        concurrently; if any of them fails, the failures are logged and a
        ``NotificationDeliveryError`` is raised once all attempts have
        finished.

        Returns:
            The notifications that were created
        """
        admin_ids = await self.notification_repository.find_admins()
        if not admin_ids:
            logger.warning("No administrators to notify", report_id=report_id)
            return []

        results = await asyncio.gather(
            *(
                self.notification_repository.create(
                    NewNotification(
                        user_id=admin_id,
                        report_id=report_id,
                        title=title,
                        message=message,
                        read=False,
                    )
                )
                for admin_id in admin_ids
            ),
            return_exceptions=True,
        )

        created: List[Notification] = []
        failed = 0
        for admin_id, result in zip(admin_ids, results):
            if isinstance(result, Exception):
                failed += 1
                logger.error(
                    "Failed to notify administrator",
                    admin_id=admin_id,
                    report_id=report_id,
                    **format_exception_for_logging(result),
                )
            else:
                created.append(result)

        if created:
            NOTIFICATIONS_CREATED.labels(kind="admin_alert").inc(len(created))

        logger.info(
            "Administrators notified",
            report_id=report_id,
            recipients=len(admin_ids),
            created=len(created),
            failed=failed,
        )

        if failed:
            raise NotificationDeliveryError(report_id, failed=failed, attempted=len(admin_ids))
        return created

    async def get_notification(self, notification_id: str) -> Notification:
        return await self.notification_repository.find_by_id(notification_id)

    async def mark_as_read(self, notification_id: str) -> None:
        await self.notification_repository.mark_as_read(notification_id)
