from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.deps import get_db, require_identity
from app.api.envelope import respond
from app.schemas.notifications import NotificationRead
from app.services import notifications as notifications_service
from app.services.identity import IdentityContext

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("")
def list_notifications(
    unread_only: bool = Query(default=False, alias="unreadOnly"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=200),
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
):
    result = notifications_service.notifications.list(db, identity.account_id, page, limit, unread_only)
    return respond(result, NotificationRead)


@router.get("/unread-count")
def unread_count(identity: IdentityContext = Depends(require_identity), db: Session = Depends(get_db)):
    return respond(notifications_service.notifications.unread_count(db, identity.account_id))


@router.put("/read-all")
def mark_all_read(identity: IdentityContext = Depends(require_identity), db: Session = Depends(get_db)):
    return respond(notifications_service.notifications.mark_all_read(db, identity.account_id))


@router.put("/{notification_id}/read")
def mark_read(
    notification_id: str,
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
):
    return respond(notifications_service.notifications.mark_read(db, notification_id, identity.account_id))


@router.delete("/{notification_id}")
def delete_notification(
    notification_id: str,
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
):
    return respond(notifications_service.notifications.delete(db, notification_id, identity.account_id))
