from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.deps import get_db, require_identity
from app.api.envelope import respond
from app.schemas.accounts import AccountCreate, AccountRead, AccountStatusUpdate, AccountUpdate
from app.schemas.common import RoleRead
from app.services import accounts as accounts_service
from app.services.identity import IdentityContext

router = APIRouter(tags=["accounts"])


@router.get("/accounts")
def list_accounts(
    search: str | None = None,
    role_id: str | None = Query(default=None, alias="roleId"),
    status: str | None = None,
    include_deleted: bool = Query(default=False, alias="includeDeleted"),
    order_by: str = Query(default="created_at", alias="orderBy"),
    order_dir: str = Query(default="desc", alias="orderDir", pattern="^(asc|desc)$"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=200),
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
):
    result = accounts_service.accounts.list(
        db, identity, search, role_id, status, include_deleted, order_by, order_dir, page, limit
    )
    return respond(result, AccountRead)


@router.post("/accounts")
def create_account(
    payload: AccountCreate,
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
):
    return respond(accounts_service.accounts.create(db, identity, payload), AccountRead)


@router.get("/roles")
def list_roles(identity: IdentityContext = Depends(require_identity), db: Session = Depends(get_db)):
    return respond(accounts_service.accounts.roles(db, identity), RoleRead)


@router.get("/accounts/{account_id}")
def get_account(account_id: str, identity: IdentityContext = Depends(require_identity), db: Session = Depends(get_db)):
    return respond(accounts_service.accounts.get(db, identity, account_id), AccountRead)


@router.put("/accounts/{account_id}")
def update_account(
    account_id: str,
    payload: AccountUpdate,
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
):
    return respond(accounts_service.accounts.update(db, identity, account_id, payload), AccountRead)


@router.put("/accounts/{account_id}/status")
def set_account_status(
    account_id: str,
    payload: AccountStatusUpdate,
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
):
    return respond(accounts_service.accounts.set_status(db, identity, account_id, payload), AccountRead)


@router.delete("/accounts/{account_id}")
def delete_account(
    account_id: str,
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
):
    return respond(accounts_service.accounts.delete(db, identity, account_id))


@router.post("/accounts/{account_id}/restore")
def restore_account(
    account_id: str,
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
):
    return respond(accounts_service.accounts.restore(db, identity, account_id), AccountRead)
