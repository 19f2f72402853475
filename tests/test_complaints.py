from pathlib import Path

from conftest import product_body
from puremeds.core.config import settings
from puremeds.services.hashing import derive_fingerprint
from puremeds.services.qr_codec import encode


def _fields(**overrides):
    fields = {
        "medicine_name": "Paracetamol",
        "medicine_dose": "500mg",
        "manufacturer": "Acme",
        "batch_code": "PM-404",
        "manufacturer_date": "2024-01-01",
        "expiry_date": "2026-01-01",
        "store": "Corner Pharmacy",
        "city": "Pune",
        "description": "Scan says not distributed by PureMeds",
    }
    fields.update(overrides)
    return fields


def _label(batch_code="PM-404"):
    fingerprint = derive_fingerprint(batch_code, "Elsewhere", "2030-01-01", "Lookalike")
    return ("label.png", encode(fingerprint, batch_code), "image/png")


def _file(client, headers=None, **overrides):
    return client.post(
        "/api/v1/complaints",
        data=_fields(**overrides),
        files={"qr_code": _label()},
        headers=headers or {},
    )


def test_complaint_is_filed_with_stored_label(client):
    response = _file(client)
    assert response.status_code == 201
    complaint = response.json()

    assert complaint["complaint_number"].startswith("ALT-")
    assert len(complaint["complaint_number"]) == 9
    assert complaint["status"] == "Pending"
    assert complaint["admin_remarks"] == ""
    assert complaint["batch_code"] == "PM-404"
    assert Path(complaint["qr_code"]).is_file()
    assert Path(complaint["qr_code"]).parent == Path(settings.complaint_dir)


def test_complaint_audit_flags_unregistered_batch(client):
    client.post("/api/v1/admin/products", json=product_body())
    _file(client, batch_code="PM-12345")
    _file(client, batch_code="PM-404")

    rows = client.get("/api/v1/audit/events", params={"action_type": "complaint.created"}).json()["rows"]
    flags = {row["payload"]["batch_code"]: row["payload"]["registered_batch"] for row in rows}
    assert flags == {"PM-12345": True, "PM-404": False}


def test_complaint_requires_label_and_fields(client):
    no_label = client.post("/api/v1/complaints", data=_fields())
    assert no_label.status_code == 422

    empty_label = client.post(
        "/api/v1/complaints", data=_fields(), files={"qr_code": ("label.png", b"", "image/png")}
    )
    assert empty_label.status_code == 400

    missing_field = _fields()
    del missing_field["store"]
    response = client.post("/api/v1/complaints", data=missing_field, files={"qr_code": _label()})
    assert response.status_code == 422


def test_complaint_listing_detail_and_delete(client):
    first = _file(client, batch_code="PM-1").json()
    second = _file(client, batch_code="PM-2").json()

    listed = client.get("/api/v1/complaints").json()["complaints"]
    assert {c["complaint_id"] for c in listed} == {first["complaint_id"], second["complaint_id"]}

    detail = client.get(f"/api/v1/complaints/{first['complaint_id']}")
    assert detail.json()["batch_code"] == "PM-1"

    assert client.delete(f"/api/v1/complaints/{first['complaint_id']}").status_code == 200
    assert not Path(first["qr_code"]).exists()
    assert client.get(f"/api/v1/complaints/{first['complaint_id']}").status_code == 404


def test_complaints_are_private_to_their_owner(client, token_auth):
    complaint = _file(client, headers=token_auth["alice"]).json()

    assert client.get("/api/v1/complaints", headers=token_auth["bob"]).json()["complaints"] == []
    assert client.get(
        f"/api/v1/complaints/{complaint['complaint_id']}", headers=token_auth["bob"]
    ).status_code == 403
    assert client.delete(
        f"/api/v1/complaints/{complaint['complaint_id']}", headers=token_auth["bob"]
    ).status_code == 403
    assert Path(complaint["qr_code"]).is_file()

    assert _file(client).status_code == 401
