import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..auth.security import get_principal
from ..db import get_db
from ..schemas.projects import ProjectCreate, ProjectResponse, ProjectStatus, ProjectUpdate
from ..services import projects as project_service
from ..services.archive import Scope
from ..services.ownership import Principal


router = APIRouter(prefix="/api/project", tags=["projects"])


@router.post("", response_model=ProjectResponse, status_code=status.HTTP_201_CREATED)
def create_project(payload: ProjectCreate, db: Session = Depends(get_db), principal: Principal = Depends(get_principal)):
    return project_service.create_project(db, principal, payload)


@router.get("", response_model=List[ProjectResponse])
def list_projects(
    client_id: Optional[uuid.UUID] = None,
    status: Optional[ProjectStatus] = None,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    return project_service.list_projects(db, principal, client_id=client_id, status=status)


@router.get("/archived", response_model=List[ProjectResponse])
def list_archived_projects(
    client_id: Optional[uuid.UUID] = None,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    return project_service.list_projects(db, principal, client_id=client_id, scope=Scope.ARCHIVED)


@router.put("/restore/{project_id}", response_model=ProjectResponse)
def restore_project(project_id: uuid.UUID, db: Session = Depends(get_db), principal: Principal = Depends(get_principal)):
    return project_service.restore_project(db, principal, project_id)


@router.get("/{project_id}", response_model=ProjectResponse)
def get_project(project_id: uuid.UUID, db: Session = Depends(get_db), principal: Principal = Depends(get_principal)):
    return project_service.get_project(db, principal, project_id)


@router.put("/{project_id}", response_model=ProjectResponse)
@router.patch("/{project_id}", response_model=ProjectResponse)
def update_project(
    project_id: uuid.UUID,
    payload: ProjectUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    return project_service.update_project(db, principal, project_id, payload)


@router.delete("/{project_id}")
def delete_project(
    project_id: uuid.UUID,
    hard: bool = False,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    return {"message": project_service.delete_project(db, principal, project_id, hard=hard)}
