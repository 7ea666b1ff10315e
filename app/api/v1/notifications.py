"""
Notifications API Endpoints

Inbox listing and read receipts.
"""

from typing import Dict, List

import structlog
from fastapi import APIRouter, Depends

from app.api.deps import get_current_user, get_notification_service
from app.api.v1.schemas import NotificationResponse
from app.core.exceptions import PermissionDeniedError
from app.models.domain import User
from app.services.notifications import NotificationService

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.get("/me", response_model=List[NotificationResponse])
async def get_my_notifications(
    current_user: User = Depends(get_current_user),
    notification_service: NotificationService = Depends(get_notification_service),
) -> List[NotificationResponse]:
    """Notifications for the authenticated user, newest first."""
    notifications = await notification_service.get_user_notifications(current_user.id)
    return [NotificationResponse.from_domain(n) for n in notifications]


@router.get("/{user_id}", response_model=List[NotificationResponse])
async def get_user_notifications(
    user_id: str,
    current_user: User = Depends(get_current_user),
    notification_service: NotificationService = Depends(get_notification_service),
) -> List[NotificationResponse]:
    if user_id != current_user.id and not current_user.is_admin:
        raise PermissionDeniedError(
            "You can only read your own notifications",
            resource="notification",
        )
    notifications = await notification_service.get_user_notifications(user_id)
    return [NotificationResponse.from_domain(n) for n in notifications]


@router.patch("/{notification_id}/read")
async def mark_notification_as_read(
    notification_id: str,
    current_user: User = Depends(get_current_user),
    notification_service: NotificationService = Depends(get_notification_service),
) -> Dict[str, bool]:
    notification = await notification_service.get_notification(notification_id)
    if notification.user_id != current_user.id and not current_user.is_admin:
        raise PermissionDeniedError(
            "You can only mark your own notifications as read",
            resource="notification",
        )
    await notification_service.mark_as_read(notification_id)
    return {"success": True}
