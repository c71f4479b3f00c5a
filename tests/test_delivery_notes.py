import io

import pytest
from PIL import Image

from albaran_api.errors import Conflict, InvalidState, NotFound, UpstreamFailure
from albaran_api.schemas.clients import ClientCreate
from albaran_api.schemas.delivery_notes import DeliveryNoteCreate, DeliveryNoteUpdate
from albaran_api.schemas.projects import ProjectCreate
from albaran_api.services import clients as client_service
from albaran_api.services import delivery_notes as note_service
from albaran_api.services import projects as project_service
from albaran_api.services.archive import Scope
from albaran_api.services.ownership import Principal
from albaran_api.storage.provider import BlobStore, BlobStoreError


def _png() -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (120, 40), "white").save(buf, format="PNG")
    return buf.getvalue()


PNG = _png()


class FailingStore(BlobStore):
    def pin(self, data, filename, content_type=None):
        raise BlobStoreError("gateway down")

    def url_for(self, content_hash):
        return f"https://gateway.example/ipfs/{content_hash}"


class SignatureOnlyStore(BlobStore):
    """Accepts the signature upload, fails on the PDF."""

    def __init__(self):
        self.pinned = []

    def pin(self, data, filename, content_type=None):
        if filename.endswith(".pdf"):
            raise BlobStoreError("pdf upload failed")
        self.pinned.append(filename)
        return "QmSignature"

    def url_for(self, content_hash):
        return f"https://gateway.example/ipfs/{content_hash}"


@pytest.fixture
def project(db, principal):
    client = client_service.create_client(db, principal, ClientCreate(name="Acme"))
    return project_service.create_project(db, principal, ProjectCreate(name="Website", client_id=client.id))


def _note(db, principal, project, **extra):
    payload = {
        "project_id": project.id,
        "worked_hours": [{"person": "Luis", "hours": 8, "hourly_rate": 20}],
        "materials": [{"name": "Tubo", "quantity": 5, "price": 10}],
    }
    payload.update(extra)
    return note_service.create_note(db, principal, DeliveryNoteCreate(**payload))


def test_create_computes_total_and_number(db, principal, project):
    note = _note(db, principal, project)
    assert note.total_amount == 210
    assert note.number.startswith("ALB-")
    assert note.number.endswith("-0001")
    assert note.status == "draft"
    assert note.created_by == principal.user_id
    assert note.worked_hours[0]["person"] == "Luis"


def test_numbers_increase_per_scope(db, principal, project):
    first = _note(db, principal, project)
    second = _note(db, principal, project)
    assert first.number != second.number
    assert second.number.endswith("-0002")


def test_create_on_archived_project_is_not_found(db, principal, project):
    project_service.delete_project(db, principal, project.id)
    with pytest.raises(NotFound) as exc:
        _note(db, principal, project)
    assert exc.value.code == "PROJECT_NOT_FOUND"


def test_update_recomputes_total_when_lines_change(db, principal, project):
    note = _note(db, principal, project)
    updated = note_service.update_note(
        db, principal, note.id, DeliveryNoteUpdate(materials=[{"name": "Cable", "quantity": 2, "price": 5}])
    )
    assert updated.total_amount == 170
    kept = note_service.update_note(db, principal, note.id, DeliveryNoteUpdate(observations="Sin incidencias"))
    assert kept.total_amount == 170
    assert kept.observations == "Sin incidencias"


def test_list_filters_by_client_and_status(db, principal, project):
    note = _note(db, principal, project, status="pending")
    draft = _note(db, principal, project)
    other_client = client_service.create_client(db, principal, ClientCreate(name="Globex"))

    assert {n.id for n in note_service.list_notes(db, principal, client_id=project.client_id)} == {note.id, draft.id}
    assert note_service.list_notes(db, principal, client_id=other_client.id) == []
    assert [n.id for n in note_service.list_notes(db, principal, status="pending")] == [note.id]


def test_other_scope_cannot_see_note(db, principal, project, outsider):
    note = _note(db, principal, project)
    with pytest.raises(NotFound) as exc:
        note_service.get_note(db, Principal.for_user(outsider), note.id)
    assert exc.value.code == "DELIVERY_NOTE_NOT_FOUND"


def test_sign_locks_the_note(db, principal, project, store):
    note = _note(db, principal, project)
    signed = note_service.sign_note(db, principal, note.id, store, PNG, "firma.png", "image/png")

    assert signed.status == "signed"
    assert signed.signature_signer == "Cliente"
    assert signed.signature_image.startswith("http://testserver/files/ipfs/")
    assert signed.signature_date is not None
    assert signed.pdf_url is not None

    with pytest.raises(InvalidState) as exc:
        note_service.sign_note(db, principal, note.id, store, PNG)
    assert exc.value.code == "DELIVERY_NOTE_ALREADY_SIGNED"
    with pytest.raises(InvalidState) as exc:
        note_service.update_note(db, principal, note.id, DeliveryNoteUpdate(observations="x"))
    assert exc.value.code == "CANNOT_UPDATE_SIGNED_DELIVERY_NOTE"
    with pytest.raises(InvalidState) as exc:
        note_service.delete_note(db, principal, note.id)
    assert exc.value.code == "CANNOT_DELETE_SIGNED_DELIVERY_NOTE"


def test_signed_note_can_be_purged(db, principal, project, store):
    note_id = _note(db, principal, project).id
    note_service.sign_note(db, principal, note_id, store, PNG, signer="Marta")
    assert note_service.delete_note(db, principal, note_id, hard=True) == "DELIVERY_NOTE_DELETED_PERMANENTLY"
    with pytest.raises(NotFound):
        note_service.get_note(db, principal, note_id, scope=Scope.ALL)


def test_sign_without_image_is_rejected(db, principal, project, store):
    note = _note(db, principal, project)
    with pytest.raises(InvalidState) as exc:
        note_service.sign_note(db, principal, note.id, store, b"")
    assert exc.value.code == "NO_SIGNATURE_PROVIDED"


def test_failed_signature_upload_leaves_note_unsigned(db, principal, project):
    note = _note(db, principal, project)
    with pytest.raises(UpstreamFailure) as exc:
        note_service.sign_note(db, principal, note.id, FailingStore(), PNG)
    assert exc.value.code == "ERROR_UPLOADING_SIGNATURE"
    assert note_service.get_note(db, principal, note.id).status == "draft"


def test_pdf_failure_after_sign_keeps_signature(db, principal, project):
    note = _note(db, principal, project)
    store = SignatureOnlyStore()
    signed = note_service.sign_note(db, principal, note.id, store, PNG, signer="Marta")
    assert signed.status == "signed"
    assert signed.signature_signer == "Marta"
    assert signed.pdf_url is None
    assert store.pinned == ["firma-" + note.number + ".png"]


def test_archive_restore_note(db, principal, project):
    note = _note(db, principal, project)
    assert note_service.delete_note(db, principal, note.id) == "DELIVERY_NOTE_ARCHIVED"
    assert note_service.list_notes(db, principal) == []
    assert [n.id for n in note_service.list_notes(db, principal, scope=Scope.ARCHIVED)] == [note.id]
    restored = note_service.restore_note(db, principal, note.id)
    assert restored.deleted is False
    with pytest.raises(InvalidState) as exc:
        note_service.restore_note(db, principal, note.id)
    assert exc.value.code == "DELIVERY_NOTE_NOT_ARCHIVED"


def test_project_with_notes_cannot_be_purged(db, principal, project):
    _note(db, principal, project)
    with pytest.raises(Conflict) as exc:
        project_service.delete_project(db, principal, project.id, hard=True)
    assert exc.value.code == "PROJECT_IN_USE"


def test_rendered_pdf_is_a_pdf(db, principal, project):
    note = _note(db, principal, project, observations="Entrega parcial")
    pdf = note_service.render_pdf(db, note)
    assert pdf.startswith(b"%PDF")
