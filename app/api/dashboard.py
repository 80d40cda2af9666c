from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.deps import get_db, require_identity
from app.api.envelope import respond
from app.services import dashboard as dashboard_service
from app.services.identity import IdentityContext

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("/stats")
def dashboard_stats(
    report_type: str | None = Query(default=None, alias="type"),
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
):
    return respond(dashboard_service.dashboard.stats(db, identity, report_type))
