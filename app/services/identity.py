"""Resolve the calling principal for a request."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass

from sqlalchemy.orm import Session, selectinload

from app.errors import NotFoundError, PermissionDeniedError
from app.models.auth import Account
from app.services.common import coerce_uuid
from app.services.role_policy import Action, PolicyContext, RoleTag, authorize, normalize_role

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IdentityContext:
    account_id: uuid.UUID
    username: str
    role_name: str | None
    role: RoleTag | None
    member_id: uuid.UUID | None
    department_id: uuid.UUID | None
    display_name: str

    @property
    def is_admin(self) -> bool:
        return self.role == RoleTag.admin

    def has_role(self, *tags: RoleTag) -> bool:
        return self.role in tags


def identity_from_account(account: Account) -> IdentityContext:
    role_name = account.role.name if account.role else None
    member = account.member
    return IdentityContext(
        account_id=account.id,
        username=account.username,
        role_name=role_name,
        role=normalize_role(role_name),
        member_id=member.id if member and not member.is_deleted else None,
        department_id=member.department_id if member and not member.is_deleted else None,
        display_name=member.full_name if member and member.full_name else account.username,
    )


def load_identity(db: Session, account_id) -> IdentityContext:
    account = (
        db.query(Account)
        .options(selectinload(Account.role), selectinload(Account.member))
        .filter(Account.id == coerce_uuid(account_id))
        .filter(Account.is_deleted.is_(False))
        .first()
    )
    if not account:
        raise NotFoundError("Không tìm thấy tài khoản")
    return identity_from_account(account)


def ensure_allowed(identity: IdentityContext, action: Action, context: PolicyContext | None = None) -> None:
    """Raise ``PermissionDeniedError`` with the policy's reason on denial."""
    from app.container import container

    decision = authorize(identity.role_name, action, context, container.policy_toggles())
    if not decision:
        logger.info(
            "access_denied action=%s account_id=%s role=%s",
            action.value,
            identity.account_id,
            identity.role_name,
        )
        raise PermissionDeniedError(decision.reason or "Access Denied")
