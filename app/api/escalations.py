from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import get_db, require_identity
from app.api.envelope import respond
from app.schemas.escalations import EscalateToLeader, EscalateToPmo
from app.services import escalations as escalations_service
from app.services.identity import IdentityContext

router = APIRouter(prefix="/escalate", tags=["escalations"])


@router.post("/to-leader")
def escalate_to_leader(
    payload: EscalateToLeader,
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
):
    return respond(escalations_service.escalations.to_leader(db, identity, payload))


@router.post("/to-pmo")
def escalate_to_pmo(
    payload: EscalateToPmo,
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
):
    return respond(escalations_service.escalations.to_pmo(db, identity, payload))
