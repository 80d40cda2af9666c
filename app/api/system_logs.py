from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.deps import get_db, require_identity
from app.api.envelope import respond
from app.schemas.system_logs import SystemLogRead
from app.services import audit as audit_service
from app.services.identity import IdentityContext

router = APIRouter(prefix="/system-logs", tags=["system-logs"])


@router.get("")
def list_system_logs(
    action: str | None = None,
    actor_id: str | None = Query(default=None, alias="actorId"),
    target_id: str | None = Query(default=None, alias="targetId"),
    start_date: str | None = Query(default=None, alias="startDate"),
    end_date: str | None = Query(default=None, alias="endDate"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=200),
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
):
    result = audit_service.system_logs.list(
        db,
        identity,
        page=page,
        limit=limit,
        action=action,
        actor_id=actor_id,
        target_id=target_id,
        start_date=start_date,
        end_date=end_date,
    )
    return respond(result, SystemLogRead)


@router.get("/action-types")
def list_action_types(identity: IdentityContext = Depends(require_identity)):
    return respond(audit_service.system_logs.action_types())
