"""End-to-end flow over HTTP: template, document, values, batch sign."""

import json

from .helpers import field_spec


def _create_template_with_fields(client):
    resp = client.post("/templates", json={"name": "Consulting agreement"})
    assert resp.status_code == 201
    template_id = resp.json()["id"]

    signature = client.post(
        f"/templates/{template_id}/fields",
        json=field_spec(field_type="signature", field_name="Signature", y_position=0.8),
    ).json()
    name = client.post(f"/templates/{template_id}/fields", json=field_spec(field_name="Name")).json()
    agree = client.post(
        f"/templates/{template_id}/fields",
        json=field_spec(field_type="checkbox", field_name="Agree", width=0.03, height=0.03, required=False),
    ).json()
    return template_id, signature, name, agree


def test_sign_flow(client):
    # 1. Template with three fields
    template_id, signature, name, agree = _create_template_with_fields(client)
    assert signature["metadata"]["include_name"] is True

    # 2. Document from the template, every field assigned to one signer
    resp = client.post(
        "/documents",
        json={
            "title": "Consulting agreement - ACME",
            "template_id": template_id,
            "assignments": {str(f["id"]): "signer@example.com" for f in (signature, name, agree)},
        },
    )
    assert resp.status_code == 201
    document = resp.json()
    assert document["status"] == "pending"
    fields = {f["field_name"]: f for f in document["fields"]}
    assert {f["state"] for f in fields.values()} == {"assigned"}

    # 3. Signing before the required text is filled names the field
    client.patch(f"/document-fields/{fields['Signature']['id']}/value", json={"file_id": "sig-blob-1"})
    resp = client.post("/signing/batch-sign", json={"document_id": document["id"], "contact_id": "signer@example.com"})
    assert resp.status_code == 422
    assert resp.json()["field_id"] == fields["Name"]["id"]

    # 4. Fill it in and sign
    resp = client.patch(f"/document-fields/{fields['Name']['id']}/value", json={"value": "John Doe"})
    assert resp.status_code == 200
    resp = client.post("/signing/batch-sign", json={"document_id": document["id"], "contact_id": "signer@example.com"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["signed_fields_count"] == 2

    completion = client.get(f"/documents/{document['id']}/completion").json()
    assert completion["complete"] is True
    assert client.get(f"/documents/{document['id']}").json()["status"] == "completed"

    # 5. Resubmitting changes nothing
    resp = client.post("/signing/batch-sign", json={"document_id": document["id"], "contact_id": "signer@example.com"})
    assert resp.json()["signed_fields_count"] == 0

    footprints = client.get(f"/documents/{document['id']}/footprints").json()
    assert len(footprints) == 1
    assert footprints[0]["id"] == body["footprint_id"]
    assert footprints[0]["ip_address"] == "testclient"
    assert footprints[0]["user_agent"] == "testclient"
    assert "referer" not in footprints[0]["request_headers"]
    assert footprints[0]["request_info"]["method"] == "POST"


def test_signed_field_conflicts(client):
    template_id, signature, name, _ = _create_template_with_fields(client)
    document = client.post(
        "/documents",
        json={"title": "NDA", "template_id": template_id, "assignments": {str(name["id"]): "a@example.com"}},
    ).json()
    name_field = next(f for f in document["fields"] if f["field_id"] == name["id"])

    client.patch(f"/document-fields/{name_field['id']}/value", json={"value": "Ann"})
    client.post("/signing/batch-sign", json={"document_id": document["id"], "contact_id": "a@example.com"})

    resp = client.patch(f"/document-fields/{name_field['id']}/assignee", json={"contact_id": "b@example.com"})
    assert resp.status_code == 409
    assert resp.json()["field_id"] == name_field["id"]

    assert client.delete(f"/documents/{document['id']}/fields").status_code == 409
    assert client.post(f"/documents/{document['id']}/fields", json=field_spec()).status_code == 409
    assert client.delete(f"/template-fields/{name['id']}").status_code == 409
    assert client.get(f"/documents/{document['id']}").json()["status"] == "in_progress"


def test_reset_and_note(client):
    template_id, _, name, _ = _create_template_with_fields(client)
    document = client.post(
        "/documents",
        json={"title": "NDA", "template_id": template_id, "assignments": {str(name["id"]): "a@example.com"}},
    ).json()
    name_field = next(f for f in document["fields"] if f["field_id"] == name["id"])
    client.patch(f"/document-fields/{name_field['id']}/value", json={"value": "Ann"})
    signed = client.post(
        "/signing/batch-sign", json={"document_id": document["id"], "contact_id": "a@example.com"}
    ).json()

    resp = client.post(
        "/signing/reset",
        json={"document_id": document["id"], "contact_id": "a@example.com", "reason": "wrong name"},
    )
    assert resp.status_code == 200
    assert resp.json()["reset_fields_count"] == 1
    assert client.get(f"/documents/{document['id']}").json()["status"] == "pending"

    resp = client.post(f"/footprints/{signed['footprint_id']}/note", json={"note": "reset on request"})
    assert resp.status_code == 200
    assert resp.json()["correction_note"] == "reset on request"
    actions = [f["action"] for f in client.get(f"/documents/{document['id']}/footprints").json()]
    assert actions == ["signed", "reset"]
    assert client.get(f"/documents/{document['id']}/footprints", params={"contact_id": "b@example.com"}).json() == []


def test_validation_and_missing_resources(client):
    template_id = client.post("/templates", json={"name": "Empty"}).json()["id"]

    resp = client.post(f"/templates/{template_id}/fields", json=field_spec(x_position=0.9, width=0.5))
    assert resp.status_code == 422
    resp = client.post(
        f"/templates/{template_id}/fields",
        content=json.dumps(field_spec(x_position=float("nan"))),
        headers={"content-type": "application/json"},
    )
    assert resp.status_code == 422

    assert client.get("/templates/999").status_code == 404
    assert client.get("/documents/999/fields").status_code == 404
    assert client.post("/signing/batch-sign", json={"document_id": 999, "contact_id": "x"}).status_code == 404
    assert client.get("/health").json()["status"] == "ok"
