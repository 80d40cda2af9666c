"""Startup seeding for the role catalogue and the first admin account."""

import logging

from sqlalchemy.orm import Session

from app.config import settings
from app.models.auth import Account
from app.models.organization import Role
from app.services.auth_flow import hash_password
from app.services.role_policy import RoleTag, normalize_role

logger = logging.getLogger(__name__)

DEFAULT_ROLE_NAMES = {
    RoleTag.admin: ("Admin", "Quản trị hệ thống"),
    RoleTag.director: ("Director", "Giám đốc"),
    RoleTag.pmo: ("PMO", "Văn phòng quản lý dự án"),
    RoleTag.leader: ("Leader", "Trưởng phòng"),
    RoleTag.staff: ("Staff", "Nhân viên"),
}


def seed_roles(db: Session) -> list[Role]:
    """Create any role tag that no existing role name maps to."""
    present = {normalize_role(role.name) for role in db.query(Role).all()}
    created = []
    for tag, (name, description) in DEFAULT_ROLE_NAMES.items():
        if tag in present:
            continue
        role = Role(name=name, description=description)
        db.add(role)
        created.append(role)
    if created:
        db.commit()
        logger.info("roles_seeded names=%s", ",".join(role.name for role in created))
    return created


def seed_admin_account(db: Session) -> Account | None:
    username = settings.bootstrap_admin_username
    password = settings.bootstrap_admin_password
    if not username or not password:
        return None
    if db.query(Account).filter(Account.username == username).first() is not None:
        return None
    admin_role = next(
        (role for role in db.query(Role).all() if normalize_role(role.name) == RoleTag.admin),
        None,
    )
    if admin_role is None:
        logger.warning("bootstrap_admin_skipped reason=no_admin_role")
        return None
    account = Account(username=username, password_hash=hash_password(password), role_id=admin_role.id)
    db.add(account)
    db.commit()
    logger.info("bootstrap_admin_created username=%s", username)
    return account
