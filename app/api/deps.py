"""
API Dependencies

FastAPI providers that wire repositories and services together, plus the
request-level authentication and role checks. Tests swap any of these through
``app.dependency_overrides``.
"""

from functools import lru_cache
from typing import Callable, List, Optional

import structlog
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.exceptions import AuthenticationError, PermissionDeniedError
from app.core.security import decode_token
from app.models.domain import User, UserRole
from app.repositories.base import AuthRepository, NotificationRepository, ReportRepository
from app.repositories.sql import SqlAuthRepository, SqlNotificationRepository, SqlReportRepository
from app.services.auth import AuthService
from app.services.file_storage import FileStorageService
from app.services.notifications import NotificationService
from app.services.reports import ReportService
from app.workers.jobs import dispatcher

logger = structlog.get_logger(__name__)

security = HTTPBearer(auto_error=False)

# =============================================================================
# Repositories and Services
# =============================================================================

def get_report_repository() -> ReportRepository:
    return SqlReportRepository()


def get_notification_repository() -> NotificationRepository:
    return SqlNotificationRepository()


def get_auth_repository() -> AuthRepository:
    return SqlAuthRepository()


def get_notification_service(
    notification_repository: NotificationRepository = Depends(get_notification_repository),
) -> NotificationService:
    return NotificationService(notification_repository)


def get_report_service(
    report_repository: ReportRepository = Depends(get_report_repository),
    notification_service: NotificationService = Depends(get_notification_service),
) -> ReportService:
    return ReportService(report_repository, notification_service, dispatcher=dispatcher)


def get_auth_service(
    auth_repository: AuthRepository = Depends(get_auth_repository),
) -> AuthService:
    return AuthService(auth_repository)


@lru_cache()
def get_file_storage() -> FileStorageService:
    return FileStorageService()


# =============================================================================
# Authentication
# =============================================================================

async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    auth_repository: AuthRepository = Depends(get_auth_repository),
) -> User:
    """
    Resolve the bearer token to a user.

    The user record is reloaded on every request, so role changes apply
    immediately regardless of what the token claims.

    Raises:
        AuthenticationError: Missing/invalid token or unknown user
    """
    if credentials is None:
        raise AuthenticationError()

    payload = decode_token(credentials.credentials)
    if payload.get("type") != "access":
        raise AuthenticationError("Invalid token type")

    user = await auth_repository.get_user(payload["sub"])
    if user is None:
        logger.warning("Token subject not found", user_id=payload["sub"])
        raise AuthenticationError("User not found")

    structlog.contextvars.bind_contextvars(user_id=user.id)
    return user


def require_roles(allowed_roles: List[UserRole]) -> Callable:
    """
    Dependency factory restricting an endpoint to ``allowed_roles``.

    Usage:
        @router.get("/stats")
        async def stats(user: User = Depends(require_roles([UserRole.ADMIN]))):
            ...
    """
    async def role_checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in allowed_roles:
            logger.warning(
                "Access denied",
                user_id=current_user.id,
                user_role=current_user.role.value,
                required_roles=[role.value for role in allowed_roles],
            )
            raise PermissionDeniedError(
                "Insufficient permissions",
                required_role=", ".join(role.value for role in allowed_roles),
            )
        return current_user

    return role_checker


require_admin = require_roles([UserRole.ADMIN])
