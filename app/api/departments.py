from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import get_db, require_identity
from app.api.envelope import respond
from app.schemas.accounts import DepartmentCreate, DepartmentRead, DepartmentUpdate
from app.schemas.common import MemberBrief
from app.services import departments as departments_service
from app.services import task_items as task_items_service
from app.services.identity import IdentityContext

router = APIRouter()


@router.get("/departments", tags=["departments"])
def list_departments(identity: IdentityContext = Depends(require_identity), db: Session = Depends(get_db)):
    return respond(departments_service.departments.list(db))


@router.post("/departments", tags=["departments"])
def create_department(
    payload: DepartmentCreate,
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
):
    return respond(departments_service.departments.create(db, identity, payload), DepartmentRead)


@router.put("/departments/{department_id}", tags=["departments"])
def update_department(
    department_id: str,
    payload: DepartmentUpdate,
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
):
    return respond(departments_service.departments.update(db, identity, department_id, payload), DepartmentRead)


@router.get("/departments/{department_id}/members", tags=["departments"])
def list_department_members(
    department_id: str,
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
):
    return respond(departments_service.departments.members(db, department_id), MemberBrief)


@router.get("/labels", tags=["labels"])
def list_labels(identity: IdentityContext = Depends(require_identity), db: Session = Depends(get_db)):
    return respond(task_items_service.labels.list(db))
