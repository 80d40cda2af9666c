from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.deps import get_db, require_identity
from app.api.envelope import respond
from app.schemas.projects import ProjectCreate, ProjectRead, ProjectUpdate
from app.services import projects as projects_service
from app.services.identity import IdentityContext

router = APIRouter(tags=["projects"])


@router.post("/projects")
def create_project(
    payload: ProjectCreate,
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
):
    return respond(projects_service.projects.create(db, identity, payload), ProjectRead)


@router.get("/projects")
def list_projects(
    status: str | None = None,
    department_id: str | None = Query(default=None, alias="departmentId"),
    search: str | None = None,
    order_by: str = Query(default="created_at", alias="orderBy"),
    order_dir: str = Query(default="desc", alias="orderDir", pattern="^(asc|desc)$"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=200),
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
):
    result = projects_service.projects.list(
        db, identity, status, department_id, search, order_by, order_dir, page, limit
    )
    return respond(result, ProjectRead)


@router.get("/projects/{project_id}")
def get_project(project_id: str, identity: IdentityContext = Depends(require_identity), db: Session = Depends(get_db)):
    return respond(projects_service.projects.get(db, identity, project_id), ProjectRead)


@router.put("/projects/{project_id}")
def update_project(
    project_id: str,
    payload: ProjectUpdate,
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
):
    return respond(projects_service.projects.update(db, identity, project_id, payload), ProjectRead)


@router.delete("/projects/{project_id}")
def delete_project(
    project_id: str,
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
):
    return respond(projects_service.projects.delete(db, identity, project_id))
