import io
from datetime import datetime, timezone

from PIL import Image

from conftest import auth_headers


def _png() -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (160, 60), "white").save(buf, format="PNG")
    return buf.getvalue()


def _setup_project(client, headers):
    r = client.post("/api/client", headers=headers, json={
        "name": "Acme", "nif": "B11111111",
        "address": {"street": "Calle Mayor", "number": 3, "postal": 28001, "city": "Madrid"},
    })
    assert r.status_code == 201, r.text
    client_id = r.json()["id"]
    r = client.post("/api/project", headers=headers, json={"name": "Website", "client_id": client_id})
    assert r.status_code == 201, r.text
    return client_id, r.json()["id"]


def test_first_delivery_note_of_the_year(client, member_a):
    headers = auth_headers(member_a)
    _, project_id = _setup_project(client, headers)

    r = client.post("/api/deliverynote", headers=headers, json={
        "project_id": project_id,
        "worked_hours": [{"person": "Luis", "hours": 8, "hourly_rate": 20}],
    })
    assert r.status_code == 201, r.text
    note = r.json()
    assert note["number"] == f"ALB-{datetime.now(timezone.utc).year}-0001"
    assert note["total_amount"] == 160
    assert note["project"]["client"]["name"] == "Acme"
    assert note["signature"] is None


def test_company_colleague_sees_and_outsider_does_not(client, member_a, member_b, outsider):
    client_id, project_id = _setup_project(client, auth_headers(member_a))

    r = client.get("/api/client", headers=auth_headers(member_b))
    assert [c["id"] for c in r.json()] == [client_id]
    r = client.get(f"/api/project/{project_id}", headers=auth_headers(outsider))
    assert r.status_code == 404
    assert r.json() == {"detail": "PROJECT_NOT_FOUND"}

    r = client.post("/api/client", headers=auth_headers(member_b), json={"name": "Acme"})
    assert r.status_code == 409
    assert r.json() == {"detail": "CLIENT_ALREADY_EXISTS"}


def test_client_archive_endpoints(client, user):
    headers = auth_headers(user)
    r = client.post("/api/client", headers=headers, json={"name": "Globex"})
    client_id = r.json()["id"]

    r = client.delete(f"/api/client/{client_id}", headers=headers)
    assert r.json() == {"message": "CLIENT_ARCHIVED"}
    assert client.get("/api/client", headers=headers).json() == []
    archived = client.get("/api/client/archived", headers=headers).json()
    assert archived[0]["deleted"] is True

    r = client.put(f"/api/client/restore/{client_id}", headers=headers)
    assert r.status_code == 200
    assert r.json()["deleted"] is False
    r = client.put(f"/api/client/restore/{client_id}", headers=headers)
    assert r.status_code == 400
    assert r.json() == {"detail": "CLIENT_NOT_ARCHIVED"}

    r = client.delete(f"/api/client/{client_id}?hard=true", headers=headers)
    assert r.json() == {"message": "CLIENT_DELETED_PERMANENTLY"}
    assert client.get(f"/api/client/{client_id}", headers=headers).status_code == 404


def test_update_ignores_unknown_fields(client, user, outsider):
    headers = auth_headers(user)
    client_id = client.post("/api/client", headers=headers, json={"name": "Initech"}).json()["id"]
    r = client.patch(f"/api/client/{client_id}", headers=headers, json={
        "phone": "911000000", "created_by": str(outsider.id), "deleted": True,
    })
    assert r.status_code == 200
    assert r.json()["phone"] == "911000000"
    assert r.json()["created_by"] == str(user.id)
    assert r.json()["deleted"] is False


def test_sign_and_fetch_pdf(client, user):
    headers = auth_headers(user)
    client_id, project_id = _setup_project(client, headers)
    note = client.post("/api/deliverynote", headers=headers, json={
        "project_id": project_id,
        "materials": [{"name": "Tubo", "quantity": 5, "price": 10}],
    }).json()

    # Nothing stored yet: rendered on the fly
    r = client.get(f"/api/deliverynote/pdf/{note['id']}?format=pdf", headers=headers)
    assert r.status_code == 200
    assert r.headers["content-type"] == "application/pdf"
    assert r.headers["content-disposition"] == f"attachment; filename=albaran-{note['number']}.pdf"
    assert r.content.startswith(b"%PDF")
    r = client.get(f"/api/deliverynote/pdf/{note['id']}?format=json", headers=headers)
    assert r.json()["pdf_url"] is None

    r = client.post(
        f"/api/deliverynote/sign/{note['id']}",
        headers=headers,
        files={"signature": ("firma.png", _png(), "image/png")},
        data={"signer": "Marta Gómez"},
    )
    assert r.status_code == 200, r.text
    signed = r.json()
    assert signed["status"] == "signed"
    assert signed["signature"]["signer"] == "Marta Gómez"
    assert signed["pdf_url"].startswith("http://testserver/files/ipfs/")

    r = client.get(f"/api/deliverynote/pdf/{note['id']}", headers={**headers, "Accept": "application/json"})
    assert r.json()["pdf_url"] == signed["pdf_url"]
    assert r.json()["number"] == note["number"]
    r = client.get(f"/api/deliverynote/pdf/{note['id']}?format=pdf", headers=headers, follow_redirects=False)
    assert r.status_code == 307
    assert r.headers["location"] == signed["pdf_url"]

    stored = client.get(signed["pdf_url"].replace("http://testserver", ""))
    assert stored.headers["content-type"] == "application/pdf"

    r = client.post(
        f"/api/deliverynote/sign/{note['id']}",
        headers=headers,
        files={"signature": ("firma.png", _png(), "image/png")},
    )
    assert r.status_code == 400
    assert r.json() == {"detail": "DELIVERY_NOTE_ALREADY_SIGNED"}
    r = client.put(f"/api/deliverynote/{note['id']}", headers=headers, json={"observations": "tarde"})
    assert r.json() == {"detail": "CANNOT_UPDATE_SIGNED_DELIVERY_NOTE"}
    r = client.delete(f"/api/deliverynote/{note['id']}", headers=headers)
    assert r.json() == {"detail": "CANNOT_DELETE_SIGNED_DELIVERY_NOTE"}


def test_sign_without_file_is_rejected(client, user):
    headers = auth_headers(user)
    _, project_id = _setup_project(client, headers)
    note = client.post("/api/deliverynote", headers=headers, json={"project_id": project_id}).json()
    r = client.post(f"/api/deliverynote/sign/{note['id']}", headers=headers, data={"signer": "Marta"})
    assert r.status_code == 400
    assert r.json() == {"detail": "NO_SIGNATURE_PROVIDED"}


def test_delivery_notes_filter_by_client(client, user):
    headers = auth_headers(user)
    acme_id, web_id = _setup_project(client, headers)
    globex_id = client.post("/api/client", headers=headers, json={"name": "Globex"}).json()["id"]
    shop_id = client.post("/api/project", headers=headers, json={"name": "Tienda", "client_id": globex_id}).json()["id"]
    web_note = client.post("/api/deliverynote", headers=headers, json={"project_id": web_id}).json()
    client.post("/api/deliverynote", headers=headers, json={"project_id": shop_id})

    r = client.get(f"/api/deliverynote?client_id={acme_id}", headers=headers)
    assert [n["id"] for n in r.json()] == [web_note["id"]]
    r = client.get(f"/api/deliverynote?client_id={acme_id}&project_id={shop_id}", headers=headers)
    assert r.json() == []
    assert len(client.get("/api/deliverynote", headers=headers).json()) == 2


def test_validation_errors_are_422(client, user):
    r = client.post("/api/client", headers=auth_headers(user), json={"name": "Ab"})
    assert r.status_code == 422
    r = client.post("/api/deliverynote", headers=auth_headers(user), json={"project_id": "not-a-uuid"})
    assert r.status_code == 422


def test_health(client):
    r = client.get("/")
    assert r.status_code == 200
    assert "albaranes" in r.text
