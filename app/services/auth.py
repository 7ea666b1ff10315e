"""
Auth Service

Thin use-case layer over the auth repository: registers and logs users in,
returning a signed access token alongside the user.
"""

from dataclasses import dataclass

import structlog

from app.core.security import create_access_token
from app.models.domain import User
from app.repositories.base import AuthRepository

logger = structlog.get_logger(__name__)


@dataclass
class AuthSession:
    user: User
    access_token: str
    token_type: str = "bearer"


class AuthService:

    def __init__(self, auth_repository: AuthRepository):
        self.auth_repository = auth_repository

    async def register(self, email: str, password: str, name: str) -> AuthSession:
        user = await self.auth_repository.register(email, password, name)
        return AuthSession(user=user, access_token=create_access_token(user))

    async def login(self, email: str, password: str) -> AuthSession:
        user = await self.auth_repository.authenticate(email, password)
        logger.info("User logged in", user_id=user.id, role=user.role.value)
        return AuthSession(user=user, access_token=create_access_token(user))
