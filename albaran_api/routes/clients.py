import uuid
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..auth.security import get_principal
from ..db import get_db
from ..schemas.clients import ClientCreate, ClientResponse, ClientUpdate
from ..services import clients as client_service
from ..services.archive import Scope
from ..services.ownership import Principal


router = APIRouter(prefix="/api/client", tags=["clients"])


@router.post("", response_model=ClientResponse, status_code=status.HTTP_201_CREATED)
def create_client(payload: ClientCreate, db: Session = Depends(get_db), principal: Principal = Depends(get_principal)):
    return client_service.create_client(db, principal, payload)


@router.get("", response_model=List[ClientResponse])
def list_clients(db: Session = Depends(get_db), principal: Principal = Depends(get_principal)):
    return client_service.list_clients(db, principal)


@router.get("/archived", response_model=List[ClientResponse])
def list_archived_clients(db: Session = Depends(get_db), principal: Principal = Depends(get_principal)):
    return client_service.list_clients(db, principal, scope=Scope.ARCHIVED)


@router.put("/restore/{client_id}", response_model=ClientResponse)
def restore_client(client_id: uuid.UUID, db: Session = Depends(get_db), principal: Principal = Depends(get_principal)):
    return client_service.restore_client(db, principal, client_id)


@router.get("/{client_id}", response_model=ClientResponse)
def get_client(client_id: uuid.UUID, db: Session = Depends(get_db), principal: Principal = Depends(get_principal)):
    return client_service.get_client(db, principal, client_id)


@router.put("/{client_id}", response_model=ClientResponse)
@router.patch("/{client_id}", response_model=ClientResponse)
def update_client(
    client_id: uuid.UUID,
    payload: ClientUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    return client_service.update_client(db, principal, client_id, payload)


@router.delete("/{client_id}")
def delete_client(
    client_id: uuid.UUID,
    hard: bool = False,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    return {"message": client_service.delete_client(db, principal, client_id, hard=hard)}
