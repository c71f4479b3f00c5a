import uuid
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile, status
from fastapi.responses import RedirectResponse, Response
from sqlalchemy.orm import Session

from ..auth.security import get_principal
from ..db import get_db
from ..schemas.delivery_notes import (
    DeliveryNoteCreate,
    DeliveryNoteResponse,
    DeliveryNoteUpdate,
    PdfLocation,
)
from ..services import delivery_notes as note_service
from ..services.archive import Scope
from ..services.ownership import Principal
from ..storage.provider import BlobStore
from .files import get_blob_store


router = APIRouter(prefix="/api/deliverynote", tags=["deliverynotes"])

NoteStatus = Literal["draft", "pending", "signed", "cancelled"]


def _prefers_json(request: Request) -> bool:
    accept = request.headers.get("accept", "").lower()
    return "application/json" in accept and "text/html" not in accept


@router.post("", response_model=DeliveryNoteResponse, status_code=status.HTTP_201_CREATED)
def create_note(payload: DeliveryNoteCreate, db: Session = Depends(get_db), principal: Principal = Depends(get_principal)):
    return note_service.create_note(db, principal, payload)


@router.get("", response_model=List[DeliveryNoteResponse])
def list_notes(
    project_id: Optional[uuid.UUID] = None,
    client_id: Optional[uuid.UUID] = None,
    status: Optional[NoteStatus] = None,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    return note_service.list_notes(db, principal, project_id=project_id, client_id=client_id, status=status)


@router.get("/archived", response_model=List[DeliveryNoteResponse])
def list_archived_notes(
    project_id: Optional[uuid.UUID] = None,
    client_id: Optional[uuid.UUID] = None,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    return note_service.list_notes(db, principal, project_id=project_id, client_id=client_id, scope=Scope.ARCHIVED)


@router.put("/restore/{note_id}", response_model=DeliveryNoteResponse)
def restore_note(note_id: uuid.UUID, db: Session = Depends(get_db), principal: Principal = Depends(get_principal)):
    return note_service.restore_note(db, principal, note_id)


@router.post("/sign/{note_id}", response_model=DeliveryNoteResponse)
def sign_note(
    note_id: uuid.UUID,
    signature: Optional[UploadFile] = File(None),
    signer: Optional[str] = Form(None),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
    store: BlobStore = Depends(get_blob_store),
):
    data = signature.file.read() if signature is not None else None
    return note_service.sign_note(
        db,
        principal,
        note_id,
        store,
        data,
        filename=signature.filename if signature is not None else None,
        content_type=signature.content_type if signature is not None else None,
        signer=signer,
    )


@router.get("/pdf/{note_id}", responses={200: {"model": PdfLocation}, 307: {"description": "Stored PDF"}})
def get_note_pdf(
    note_id: uuid.UUID,
    request: Request,
    format: Literal["auto", "json", "pdf"] = "auto",
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
    store: BlobStore = Depends(get_blob_store),
):
    note = note_service.get_note(db, principal, note_id)
    as_json = format == "json" or (format == "auto" and _prefers_json(request))
    if note.pdf_url:
        if as_json:
            return PdfLocation(message="PDF_AVAILABLE", pdf_url=note.pdf_url, number=note.number, status=note.status)
        return RedirectResponse(note.pdf_url, status_code=status.HTTP_307_TEMPORARY_REDIRECT)
    if format == "json":
        return PdfLocation(message="PDF_NOT_STORED", number=note.number, status=note.status)
    # Rendered on the fly, not persisted
    pdf_bytes = note_service.render_pdf(db, note, note_service.load_signature(store, note))
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": f"attachment; filename=albaran-{note.number}.pdf"},
    )


@router.get("/{note_id}", response_model=DeliveryNoteResponse)
def get_note(note_id: uuid.UUID, db: Session = Depends(get_db), principal: Principal = Depends(get_principal)):
    return note_service.get_note(db, principal, note_id)


@router.put("/{note_id}", response_model=DeliveryNoteResponse)
@router.patch("/{note_id}", response_model=DeliveryNoteResponse)
def update_note(
    note_id: uuid.UUID,
    payload: DeliveryNoteUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    return note_service.update_note(db, principal, note_id, payload)


@router.delete("/{note_id}")
def delete_note(
    note_id: uuid.UUID,
    hard: bool = False,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    return {"message": note_service.delete_note(db, principal, note_id, hard=hard)}
