import uuid
from typing import List, Optional

import structlog
from sqlalchemy.orm import Query, Session

from ..errors import Conflict, NotFound
from ..models.models import Client, Project
from ..schemas.clients import ClientCreate, ClientUpdate
from . import archive
from .archive import Scope
from .ownership import Principal, owner_filter, owner_snapshot


logger = structlog.get_logger(__name__)

LABEL = "CLIENT"


def scoped_clients(db: Session, principal: Principal, scope: Scope = Scope.ACTIVE) -> Query:
    q = db.query(Client).filter(owner_filter(Client, principal))
    return archive.apply_scope(q, Client, scope)


def get_client(db: Session, principal: Principal, client_id: uuid.UUID, scope: Scope = Scope.ACTIVE) -> Client:
    client = scoped_clients(db, principal, scope).filter(Client.id == client_id).first()
    if client is None:
        raise NotFound("CLIENT_NOT_FOUND")
    return client


def _ensure_unique_name(db: Session, principal: Principal, name: str, exclude_id: Optional[uuid.UUID] = None) -> None:
    q = scoped_clients(db, principal).filter(Client.name == name)
    if exclude_id is not None:
        q = q.filter(Client.id != exclude_id)
    if q.first() is not None:
        raise Conflict("CLIENT_ALREADY_EXISTS")


def create_client(db: Session, principal: Principal, payload: ClientCreate) -> Client:
    _ensure_unique_name(db, principal, payload.name)
    client = Client(**payload.model_dump(), **owner_snapshot(principal))
    db.add(client)
    db.commit()
    db.refresh(client)
    logger.info("client_created", client_id=str(client.id), user_id=str(principal.user_id))
    return client


def list_clients(db: Session, principal: Principal, scope: Scope = Scope.ACTIVE) -> List[Client]:
    return scoped_clients(db, principal, scope).order_by(Client.name.asc()).all()


def update_client(db: Session, principal: Principal, client_id: uuid.UUID, payload: ClientUpdate) -> Client:
    client = get_client(db, principal, client_id)
    data = payload.model_dump(exclude_unset=True)
    if data.get("name") is None:
        data.pop("name", None)
    elif data["name"] != client.name:
        _ensure_unique_name(db, principal, data["name"], exclude_id=client.id)
    for key, value in data.items():
        setattr(client, key, value)
    db.commit()
    db.refresh(client)
    return client


def delete_client(db: Session, principal: Principal, client_id: uuid.UUID, hard: bool = False) -> str:
    client = get_client(db, principal, client_id, scope=Scope.ALL)
    if hard:
        if db.query(Project.id).filter(Project.client_id == client.id).first() is not None:
            raise Conflict("CLIENT_IN_USE")
        archive.purge(db, client, LABEL)
        return "CLIENT_DELETED_PERMANENTLY"
    archive.archive(db, client, LABEL)
    return "CLIENT_ARCHIVED"


def restore_client(db: Session, principal: Principal, client_id: uuid.UUID) -> Client:
    client = get_client(db, principal, client_id, scope=Scope.ALL)
    if archive.is_archived(client):
        _ensure_unique_name(db, principal, client.name, exclude_id=client.id)
    return archive.restore(db, client, LABEL)
