from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any

from jose import JWTError, jwt
from passlib.context import CryptContext

from loandesk.core.settings import settings


pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# Hashed once at import so unknown-email logins pay the same bcrypt cost.
_FAKE_HASH = pwd_context.hash("loandesk-no-such-user")


def get_password_hash(password: str) -> str:
    min_len = settings.default_password_min_length
    if len(password) < min_len:
        raise ValueError(f"Password too short; minimum {min_len} characters")
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def constant_time_verify(user_password_hash: str | None, password: str) -> bool:
    if user_password_hash:
        return verify_password(password, user_password_hash)
    # Dummy verification to equalize timing
    verify_password(password, _FAKE_HASH)
    return False


class JWTKeyError(RuntimeError):
    pass


@lru_cache(maxsize=1)
def _load_private_key() -> str:
    if settings.jwt_private_key:
        return settings.jwt_private_key
    if settings.jwt_private_key_path:
        return _read_key(settings.jwt_private_key_path)
    raise JWTKeyError("JWT private key not configured")


@lru_cache(maxsize=1)
def _load_public_key() -> str:
    if settings.jwt_public_key:
        return settings.jwt_public_key
    if settings.jwt_public_key_path:
        return _read_key(settings.jwt_public_key_path)
    raise JWTKeyError("JWT public key not configured")


def _read_key(path: str) -> str:
    with open(path, "r", encoding="utf-8") as key_file:
        return key_file.read()


def _encode(claims: dict[str, Any]) -> str:
    return jwt.encode(claims, _load_private_key(), algorithm=settings.jwt_algorithm)


def create_access_token(
    subject: str,
    expires_delta: timedelta | None = None,
    token_version: int | None = None,
    role: str | None = None,
) -> str:
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    to_encode: dict[str, Any] = {"sub": subject, "exp": expire, "type": "access"}
    if token_version is not None:
        to_encode["tv"] = token_version
    if role is not None:
        to_encode["role"] = role
    return _encode(to_encode)


def create_refresh_token(
    subject: str,
    expires_delta: timedelta | None = None,
    token_version: int | None = None,
) -> str:
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.refresh_token_expire_minutes)
    )
    to_encode: dict[str, Any] = {
        "sub": subject,
        "exp": expire,
        "type": "refresh",
        "jti": str(uuid.uuid4()),
    }
    if token_version is not None:
        to_encode["tv"] = token_version
    return _encode(to_encode)


def decode_token(token: str, expected_type: str | None = None) -> dict[str, Any]:
    public_key = _load_public_key()
    try:
        payload = jwt.decode(token, public_key, algorithms=[settings.jwt_algorithm])
    except JWTError as exc:
        raise ValueError("Invalid token") from exc
    if expected_type and payload.get("type") != expected_type:
        raise ValueError(f"Unexpected token type: {payload.get('type')}")
    return payload
