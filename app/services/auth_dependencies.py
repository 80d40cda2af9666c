from datetime import timedelta

from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session, selectinload

from app.db import get_db as _get_db
from app.errors import AuthenticationError, PermissionDeniedError, ValidationError
from app.models.auth import Account, AccountStatus
from app.services.auth_flow import decode_access_token
from app.services.common import as_utc, coerce_uuid, now
from app.services.identity import IdentityContext, identity_from_account
from app.services.role_policy import RoleTag

ACCESS_TOKEN_COOKIE = "access_token"

# last_seen_at is only rewritten when it is older than this.
_SEEN_RESOLUTION = timedelta(minutes=1)


def _extract_bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    parts = authorization.split(" ", 1)
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1].strip()
    return None


def _touch_last_seen(db: Session, account: Account) -> None:
    current = now()
    last_seen = as_utc(account.last_seen_at)
    if last_seen is None or current - last_seen >= _SEEN_RESOLUTION:
        account.last_seen_at = current
        db.commit()


def require_identity(
    request: Request,
    authorization: str | None = Header(default=None),
    db: Session = Depends(_get_db),
) -> IdentityContext:
    token = _extract_bearer_token(authorization) or request.cookies.get(ACCESS_TOKEN_COOKIE)
    payload = decode_access_token(token)
    try:
        account_id = coerce_uuid(payload.get("sub"))
    except ValidationError as exc:
        raise AuthenticationError("Token không hợp lệ hoặc đã hết hạn") from exc
    account = (
        db.query(Account)
        .options(selectinload(Account.role), selectinload(Account.member))
        .filter(Account.id == account_id)
        .first()
    )
    if account is None or account.is_deleted:
        raise AuthenticationError("Tài khoản không tồn tại hoặc đã bị xóa")
    if account.status == AccountStatus.locked.value:
        raise AuthenticationError("Tài khoản đã bị khóa")
    _touch_last_seen(db, account)
    identity = identity_from_account(account)
    request.state.user_id = str(identity.account_id)
    return identity


def require_roles(*tags: RoleTag):
    """Route-level gate for surfaces owned by a fixed set of roles."""

    def _require(identity: IdentityContext = Depends(require_identity)) -> IdentityContext:
        if not identity.has_role(*tags):
            allowed = ", ".join(tag.value for tag in tags)
            raise PermissionDeniedError(f"Access Denied: requires one of [{allowed}].")
        return identity

    return _require
