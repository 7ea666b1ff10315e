"""
Auth API Endpoints

Account registration and password login, both returning a bearer token.
"""

import structlog
from fastapi import APIRouter, Depends, status
from pydantic import EmailStr, Field

from app.api.deps import get_auth_service
from app.api.v1.schemas import CamelModel, UserResponse
from app.services.auth import AuthService, AuthSession

logger = structlog.get_logger(__name__)
router = APIRouter()


class RegisterRequest(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    name: str = Field(..., min_length=1, max_length=255)


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)


class AuthResponse(CamelModel):
    access_token: str
    token_type: str
    user: UserResponse

    @classmethod
    def from_session(cls, session: AuthSession) -> "AuthResponse":
        return cls(
            access_token=session.access_token,
            token_type=session.token_type,
            user=UserResponse.from_domain(session.user),
        )


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(
    request: RegisterRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> AuthResponse:
    """Create a citizen account and sign it in."""
    session = await auth_service.register(request.email, request.password, request.name.strip())
    logger.info("User registered", user_id=session.user.id)
    return AuthResponse.from_session(session)


@router.post("/login", response_model=AuthResponse)
async def login(
    request: LoginRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> AuthResponse:
    session = await auth_service.login(request.email, request.password)
    return AuthResponse.from_session(session)
