import uuid
from typing import List, Optional

import structlog
from sqlalchemy.orm import Query, Session

from ..errors import Conflict, NotFound
from ..models.models import DeliveryNote, Project
from ..schemas.projects import ProjectCreate, ProjectUpdate
from . import archive
from .archive import Scope
from .clients import get_client
from .ownership import Principal, owner_filter, owner_snapshot


logger = structlog.get_logger(__name__)

LABEL = "PROJECT"


def scoped_projects(db: Session, principal: Principal, scope: Scope = Scope.ACTIVE) -> Query:
    q = db.query(Project).filter(owner_filter(Project, principal))
    return archive.apply_scope(q, Project, scope)


def get_project(db: Session, principal: Principal, project_id: uuid.UUID, scope: Scope = Scope.ACTIVE) -> Project:
    project = scoped_projects(db, principal, scope).filter(Project.id == project_id).first()
    if project is None:
        raise NotFound("PROJECT_NOT_FOUND")
    return project


def _ensure_unique(db: Session, principal: Principal, name: str, client_id: uuid.UUID, exclude_id: Optional[uuid.UUID] = None) -> None:
    q = scoped_projects(db, principal).filter(Project.name == name, Project.client_id == client_id)
    if exclude_id is not None:
        q = q.filter(Project.id != exclude_id)
    if q.first() is not None:
        raise Conflict("PROJECT_ALREADY_EXISTS")


def create_project(db: Session, principal: Principal, payload: ProjectCreate) -> Project:
    # The client has to be visible to whoever creates the project
    get_client(db, principal, payload.client_id)
    _ensure_unique(db, principal, payload.name, payload.client_id)
    data = payload.model_dump()
    if data.get("start_date") is None:
        data.pop("start_date", None)
    project = Project(**data, **owner_snapshot(principal))
    db.add(project)
    db.commit()
    db.refresh(project)
    logger.info("project_created", project_id=str(project.id), client_id=str(project.client_id))
    return project


def list_projects(
    db: Session,
    principal: Principal,
    client_id: Optional[uuid.UUID] = None,
    status: Optional[str] = None,
    scope: Scope = Scope.ACTIVE,
) -> List[Project]:
    q = scoped_projects(db, principal, scope)
    if client_id is not None:
        q = q.filter(Project.client_id == client_id)
    if status:
        q = q.filter(Project.status == status)
    return q.order_by(Project.created_at.desc()).all()


def update_project(db: Session, principal: Principal, project_id: uuid.UUID, payload: ProjectUpdate) -> Project:
    project = get_project(db, principal, project_id)
    data = payload.model_dump(exclude_unset=True)
    for required in ("name", "client_id", "status"):
        if required in data and data[required] is None:
            data.pop(required)
    if "client_id" in data and data["client_id"] != project.client_id:
        get_client(db, principal, data["client_id"])
    name = data.get("name", project.name)
    client_id = data.get("client_id", project.client_id)
    if name != project.name or client_id != project.client_id:
        _ensure_unique(db, principal, name, client_id, exclude_id=project.id)
    for key, value in data.items():
        setattr(project, key, value)
    db.commit()
    db.refresh(project)
    return project


def delete_project(db: Session, principal: Principal, project_id: uuid.UUID, hard: bool = False) -> str:
    project = get_project(db, principal, project_id, scope=Scope.ALL)
    if hard:
        if db.query(DeliveryNote.id).filter(DeliveryNote.project_id == project.id).first() is not None:
            raise Conflict("PROJECT_IN_USE")
        archive.purge(db, project, LABEL)
        return "PROJECT_DELETED_PERMANENTLY"
    archive.archive(db, project, LABEL)
    return "PROJECT_ARCHIVED"


def restore_project(db: Session, principal: Principal, project_id: uuid.UUID) -> Project:
    project = get_project(db, principal, project_id, scope=Scope.ALL)
    if archive.is_archived(project):
        _ensure_unique(db, principal, project.name, project.client_id, exclude_id=project.id)
    return archive.restore(db, project, LABEL)
