from datetime import timedelta

import jwt
import pytest

from app.core.config import settings
from app.core.exceptions import AuthenticationError
from app.core.security import (
    ALGORITHM,
    create_access_token,
    create_password_hash,
    decode_token,
    verify_password,
)
from app.models.domain import User, UserRole


def test_password_hash_roundtrip():
    hashed = create_password_hash("password123")
    assert hashed != "password123"
    assert verify_password("password123", hashed)
    assert not verify_password("password124", hashed)


def test_access_token_carries_subject_and_role():
    user = User(id="user-1", email="a@example.com", name="A", role=UserRole.ADMIN)

    payload = decode_token(create_access_token(user))

    assert payload["sub"] == "user-1"
    assert payload["role"] == "admin"
    assert payload["type"] == "access"


def test_expired_token_is_rejected():
    user = User(id="user-1", email="a@example.com", name="A")
    token = create_access_token(user, expires_delta=timedelta(seconds=-1))

    with pytest.raises(AuthenticationError, match="expired"):
        decode_token(token)


def test_token_signed_with_another_key_is_rejected():
    token = jwt.encode({"sub": "user-1", "type": "access"}, "another-secret", algorithm=ALGORITHM)
    assert settings.SECRET_KEY != "another-secret"

    with pytest.raises(AuthenticationError):
        decode_token(token)


def test_token_without_subject_is_rejected():
    token = jwt.encode({"type": "access"}, settings.SECRET_KEY, algorithm=ALGORITHM)

    with pytest.raises(AuthenticationError):
        decode_token(token)
