"""Password hashing and token issuance.

These are the only places credentials are hashed or tokens are signed; the
rest of the service treats them as opaque collaborators.
"""

from __future__ import annotations

import secrets
from datetime import UTC, datetime, timedelta
from typing import Any

from jose import JWTError, jwt
from passlib.context import CryptContext

from app.config import settings
from app.errors import AuthenticationError, ValidationError

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


def hash_password(plain: str) -> str:
    return pwd_context.hash(plain)


def verify_password(plain: str | None, hashed: str | None) -> bool:
    if not plain or not hashed:
        return False
    try:
        return pwd_context.verify(plain, hashed)
    except (ValueError, TypeError):
        # Unrecognized hash format stored for the account.
        return False


def check_password_strength(plain: str) -> None:
    if len(plain) < settings.password_min_length:
        raise ValidationError(f"Mật khẩu phải có ít nhất {settings.password_min_length} ký tự")


def _jwt_secret() -> str:
    return settings.jwt_secret


def _jwt_algorithm() -> str:
    return settings.jwt_algorithm


def _encode(account, token_type: str, ttl: timedelta) -> str:
    now = datetime.now(UTC)
    payload: dict[str, Any] = {
        "sub": str(account.id),
        "username": account.username,
        "role": account.role.name if account.role else None,
        "typ": token_type,
        "iat": int(now.timestamp()),
        "exp": int((now + ttl).timestamp()),
    }
    return jwt.encode(payload, _jwt_secret(), algorithm=_jwt_algorithm())


def issue_tokens(account) -> dict[str, str]:
    return {
        "access_token": _encode(
            account, ACCESS_TOKEN_TYPE, timedelta(minutes=settings.jwt_access_ttl_minutes)
        ),
        "refresh_token": _encode(
            account, REFRESH_TOKEN_TYPE, timedelta(days=settings.jwt_refresh_ttl_days)
        ),
    }


def decode_access_token(token: str | None) -> dict[str, Any]:
    if not token:
        raise AuthenticationError("Không có token xác thực")
    try:
        payload = jwt.decode(token, _jwt_secret(), algorithms=[_jwt_algorithm()])
    except JWTError as exc:
        raise AuthenticationError("Token không hợp lệ hoặc đã hết hạn") from exc
    if payload.get("typ") != ACCESS_TOKEN_TYPE or not payload.get("sub"):
        raise AuthenticationError("Token không hợp lệ hoặc đã hết hạn")
    return payload


def generate_reset_token() -> str:
    return secrets.token_urlsafe(32)
