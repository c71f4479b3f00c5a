"""
Soft-delete lifecycle: active -> archived -> active, and purge from either.

Every archivable model carries SoftDeleteMixin; the helpers here are the only
place the deleted/deleted_at pair is written.
"""
import enum

import structlog
from sqlalchemy import update
from sqlalchemy.orm import Query, Session

from ..errors import InvalidState, ServiceError
from ..models.models import utcnow


logger = structlog.get_logger(__name__)


class Scope(str, enum.Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"
    ALL = "all"


def apply_scope(query: Query, model, scope: Scope = Scope.ACTIVE) -> Query:
    if scope == Scope.ACTIVE:
        return query.filter(model.deleted.is_(False))
    if scope == Scope.ARCHIVED:
        return query.filter(model.deleted.is_(True))
    return query


def is_archived(obj) -> bool:
    return bool(obj.deleted)


def archive(db: Session, obj, label: str):
    if is_archived(obj):
        raise InvalidState(f"{label}_ALREADY_ARCHIVED")
    obj.deleted = True
    obj.deleted_at = utcnow()
    db.commit()
    db.refresh(obj)
    logger.info("archived", entity=label.lower(), entity_id=str(obj.id))
    return obj


def _clear_marker(db: Session, model, obj_id) -> None:
    db.execute(
        update(model)
        .where(model.id == obj_id)
        .values(deleted=False, deleted_at=None)
        .execution_options(synchronize_session=False)
    )
    db.commit()


def restore(db: Session, obj, label: str):
    """Flip the marker back in one UPDATE and confirm it reads false before returning."""
    if not is_archived(obj):
        raise InvalidState(f"{label}_NOT_ARCHIVED")
    model = type(obj)
    _clear_marker(db, model, obj.id)
    db.refresh(obj)
    if obj.deleted:
        logger.warning("restore_marker_still_set", entity=label.lower(), entity_id=str(obj.id))
        _clear_marker(db, model, obj.id)
        db.refresh(obj)
        if obj.deleted:
            raise ServiceError(f"ERROR_RESTORE_{label}", 500)
    logger.info("restored", entity=label.lower(), entity_id=str(obj.id))
    return obj


def purge(db: Session, obj, label: str) -> None:
    obj_id = str(obj.id)
    db.delete(obj)
    db.commit()
    logger.info("purged", entity=label.lower(), entity_id=obj_id)
