from __future__ import annotations

from app.schemas.accounts import AccountRead
from app.schemas.common import CamelModel


class LoginRequest(CamelModel):
    username: str | None = None
    password: str | None = None


class LoginResponse(CamelModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    account: AccountRead


class ChangePasswordRequest(CamelModel):
    old_password: str | None = None
    new_password: str | None = None


class ForgotPasswordRequest(CamelModel):
    email: str | None = None


class ResetPasswordRequest(CamelModel):
    token: str | None = None
    new_password: str | None = None
