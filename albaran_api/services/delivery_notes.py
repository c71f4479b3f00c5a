import uuid
from typing import List, Optional

import structlog
from sqlalchemy.orm import Query, Session

from ..document_creator.pdf_builder import build_delivery_note_pdf
from ..errors import InvalidState, NotFound, UpstreamFailure
from ..models.models import Company, DeliveryNote, Project, User, utcnow
from ..schemas.delivery_notes import DeliveryNoteCreate, DeliveryNoteUpdate
from ..storage.provider import BlobStore, BlobStoreError
from . import archive
from .archive import Scope
from .numbering import compute_total, next_number
from .ownership import Principal, owner_filter, owner_snapshot
from .projects import get_project, scoped_projects


logger = structlog.get_logger(__name__)

LABEL = "DELIVERY_NOTE"
DEFAULT_SIGNER = "Cliente"


def scoped_notes(db: Session, principal: Principal, scope: Scope = Scope.ACTIVE) -> Query:
    q = db.query(DeliveryNote).filter(owner_filter(DeliveryNote, principal))
    return archive.apply_scope(q, DeliveryNote, scope)


def get_note(db: Session, principal: Principal, note_id: uuid.UUID, scope: Scope = Scope.ACTIVE) -> DeliveryNote:
    note = scoped_notes(db, principal, scope).filter(DeliveryNote.id == note_id).first()
    if note is None:
        raise NotFound("DELIVERY_NOTE_NOT_FOUND")
    return note


def _dump_lines(items) -> list:
    return [item.model_dump(mode="json") for item in items or []]


def create_note(db: Session, principal: Principal, payload: DeliveryNoteCreate) -> DeliveryNote:
    get_project(db, principal, payload.project_id)
    worked_hours = _dump_lines(payload.worked_hours)
    materials = _dump_lines(payload.materials)
    note = DeliveryNote(
        number=next_number(db, principal),
        project_id=payload.project_id,
        worked_hours=worked_hours,
        materials=materials,
        observations=payload.observations,
        status=payload.status,
        total_amount=compute_total(worked_hours, materials),
        **owner_snapshot(principal),
    )
    if payload.date is not None:
        note.date = payload.date
    db.add(note)
    db.commit()
    db.refresh(note)
    logger.info("delivery_note_created", note_id=str(note.id), number=note.number, total=note.total_amount)
    return note


def list_notes(
    db: Session,
    principal: Principal,
    project_id: Optional[uuid.UUID] = None,
    client_id: Optional[uuid.UUID] = None,
    status: Optional[str] = None,
    scope: Scope = Scope.ACTIVE,
) -> List[DeliveryNote]:
    q = scoped_notes(db, principal, scope)
    if client_id is not None:
        # Notes of archived projects still belong to the client
        project_ids = [
            pid for (pid,) in scoped_projects(db, principal, Scope.ALL)
            .filter(Project.client_id == client_id)
            .with_entities(Project.id)
            .all()
        ]
        if project_id is not None:
            project_ids = [pid for pid in project_ids if pid == project_id]
        if not project_ids:
            return []
        q = q.filter(DeliveryNote.project_id.in_(project_ids))
    elif project_id is not None:
        q = q.filter(DeliveryNote.project_id == project_id)
    if status:
        q = q.filter(DeliveryNote.status == status)
    return q.order_by(DeliveryNote.created_at.desc(), DeliveryNote.number.desc()).all()


def update_note(db: Session, principal: Principal, note_id: uuid.UUID, payload: DeliveryNoteUpdate) -> DeliveryNote:
    note = get_note(db, principal, note_id)
    if note.status == "signed":
        raise InvalidState("CANNOT_UPDATE_SIGNED_DELIVERY_NOTE")
    data = payload.model_dump(exclude_unset=True)
    for required in ("project_id", "date", "status", "worked_hours", "materials"):
        if required in data and data[required] is None:
            data.pop(required)
    if "project_id" in data and data["project_id"] != note.project_id:
        get_project(db, principal, data["project_id"])
    if "worked_hours" in data:
        data["worked_hours"] = _dump_lines(payload.worked_hours)
    if "materials" in data:
        data["materials"] = _dump_lines(payload.materials)
    for key, value in data.items():
        setattr(note, key, value)
    if "worked_hours" in data or "materials" in data:
        note.total_amount = compute_total(note.worked_hours, note.materials)
    db.commit()
    db.refresh(note)
    return note


def delete_note(db: Session, principal: Principal, note_id: uuid.UUID, hard: bool = False) -> str:
    note = get_note(db, principal, note_id, scope=Scope.ALL)
    if hard:
        if note.status == "signed":
            logger.warning("signed_note_purged", note_id=str(note.id), number=note.number, user_id=str(principal.user_id))
        archive.purge(db, note, LABEL)
        return "DELIVERY_NOTE_DELETED_PERMANENTLY"
    if note.status == "signed":
        raise InvalidState("CANNOT_DELETE_SIGNED_DELIVERY_NOTE")
    archive.archive(db, note, LABEL)
    return "DELIVERY_NOTE_ARCHIVED"


def restore_note(db: Session, principal: Principal, note_id: uuid.UUID) -> DeliveryNote:
    note = get_note(db, principal, note_id, scope=Scope.ALL)
    return archive.restore(db, note, LABEL)


def resolve_issuer(db: Session, note: DeliveryNote) -> Optional[Company]:
    """Company printed as issuer: the note's company, else the creator's current one."""
    if note.company_id is not None:
        company = db.get(Company, note.company_id)
        if company is not None:
            return company
    creator = db.get(User, note.created_by)
    return creator.company if creator is not None else None


def render_pdf(db: Session, note: DeliveryNote, signature_image: Optional[bytes] = None) -> bytes:
    return build_delivery_note_pdf(note, company=resolve_issuer(db, note), signature_image=signature_image)


def load_signature(store: BlobStore, note: DeliveryNote) -> Optional[bytes]:
    """Stored signature bytes, or None when they cannot be read back."""
    content_hash = store.hash_from_url(note.signature_image)
    if content_hash is None:
        return None
    try:
        return store.fetch(content_hash)
    except BlobStoreError as e:
        logger.warning("signature_fetch_failed", note_id=str(note.id), error=str(e))
        return None


def _archive_pdf(db: Session, store: BlobStore, note: DeliveryNote, signature_image: bytes) -> None:
    try:
        pdf_bytes = render_pdf(db, note, signature_image)
        content_hash = store.pin(pdf_bytes, f"albaran-{note.number}.pdf", "application/pdf")
        note.pdf_url = store.url_for(content_hash)
        db.commit()
        db.refresh(note)
        logger.info("delivery_note_pdf_archived", note_id=str(note.id), pdf_url=note.pdf_url)
    except Exception as e:
        # The signature is already committed; a missing PDF is rendered on demand later
        db.rollback()
        db.refresh(note)
        logger.warning("delivery_note_pdf_failed", note_id=str(note.id), error=str(e))


def sign_note(
    db: Session,
    principal: Principal,
    note_id: uuid.UUID,
    store: BlobStore,
    image: Optional[bytes],
    filename: Optional[str] = None,
    content_type: Optional[str] = None,
    signer: Optional[str] = None,
) -> DeliveryNote:
    note = get_note(db, principal, note_id)
    if not image:
        raise InvalidState("NO_SIGNATURE_PROVIDED")
    if note.status == "signed":
        raise InvalidState("DELIVERY_NOTE_ALREADY_SIGNED")
    try:
        content_hash = store.pin(image, filename or f"firma-{note.number}.png", content_type)
    except BlobStoreError as e:
        logger.error("signature_upload_failed", note_id=str(note.id), error=str(e))
        raise UpstreamFailure("ERROR_UPLOADING_SIGNATURE") from e
    note.signature_image = store.url_for(content_hash)
    note.signature_signer = (signer or "").strip() or DEFAULT_SIGNER
    note.signature_date = utcnow()
    note.status = "signed"
    db.commit()
    db.refresh(note)
    logger.info("delivery_note_signed", note_id=str(note.id), number=note.number, signer=note.signature_signer)
    _archive_pdf(db, store, note, image)
    return note
