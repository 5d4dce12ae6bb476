# SPDX-License-Identifier: Apache-2.0
"""HTTP and WebSocket surface: routing, error mapping, live snapshots."""
import pytest

from recboard.core.context import Actor
from recboard.services import archive

from conftest import headers

PDF = b"%PDF-1.4 protocol"


@pytest.fixture
def chair_h(chair):
    return headers(chair)


@pytest.fixture
def prop_h(proponent):
    return headers(proponent)


@pytest.fixture
def rev_h(reviewer_actor):
    return headers(reviewer_actor)


def _create(client, prop_h, title="Sleep and learning"):
    r = client.post("/protocols", json={"title": title, "principal_investigator": "Juan Dela Cruz"}, headers=prop_h)
    assert r.status_code == 201
    return r.json()


def _accepted(client, prop_h, chair_h):
    protocol = _create(client, prop_h)
    r = client.post(f"/protocols/{protocol['id']}/status", json={"status": "accepted"}, headers=chair_h)
    assert r.status_code == 200
    return r.json()


def test_health(client):
    """Health endpoint returns ok."""
    r = client.get("/system/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


def test_version(client):
    r = client.get("/system/version")
    assert r.status_code == 200
    assert "version" in r.json()


def test_security_headers(client):
    r = client.get("/system/health")
    assert r.headers["X-Content-Type-Options"] == "nosniff"
    assert r.headers["X-Frame-Options"] == "DENY"
    assert r.headers["X-Request-ID"]


def test_request_id_is_echoed(client):
    r = client.get("/system/health", headers={"X-Request-ID": "req-42"})
    assert r.headers["X-Request-ID"] == "req-42"


def test_create_and_accept_protocol(client, prop_h, chair_h):
    protocol = _accepted(client, prop_h, chair_h)
    assert protocol["status"] == "accepted"
    assert protocol["permanent_code"].startswith("SPUP_")
    assert protocol["permanent_code"].endswith("_SR_JC")


def test_invalid_transition_is_409(client, prop_h, chair_h):
    protocol = _accepted(client, prop_h, chair_h)
    r = client.post(f"/protocols/{protocol['id']}/status", json={"status": "accepted"}, headers=chair_h)
    assert r.status_code == 409
    body = r.json()
    assert body["error"] == "invalid_transition"
    assert body["current"] == "accepted"


def test_permission_denied_is_403(client, prop_h):
    protocol = _create(client, prop_h)
    r = client.post(f"/protocols/{protocol['id']}/status", json={"status": "accepted"}, headers=prop_h)
    assert r.status_code == 403
    assert r.json()["error"] == "permission_denied"


def test_unknown_role_is_403(client):
    r = client.post("/protocols", json={"title": "X"}, headers={"X-Actor-Id": "u1", "X-Actor-Role": "admin"})
    assert r.status_code == 403


def test_missing_actor_headers_is_422(client):
    r = client.post("/protocols", json={"title": "X"})
    assert r.status_code == 422


def test_not_found_is_404(client):
    r = client.get("/protocols/missing")
    assert r.status_code == 404
    assert r.json()["error"] == "not_found"


def test_assignment_and_slot_occupied(client, prop_h, chair_h, mailer):
    protocol = _accepted(client, prop_h, chair_h)
    r = client.post("/reviewers", json={"name": "Ana Reyes", "email": "ana@rec.test", "reviewer_id": "r1"},
                    headers=chair_h)
    assert r.status_code == 201
    client.post("/reviewers", json={"name": "Ben Santos", "email": "ben@rec.test", "reviewer_id": "r2"},
                headers=chair_h)

    r = client.post(f"/protocols/{protocol['id']}/assignments", json={"slot": 0, "reviewer_id": "r1"},
                    headers=chair_h)
    assert r.status_code == 201
    assert r.json()["notification"]["sent"] is True
    assert len(mailer.sent) == 1

    r = client.post(f"/protocols/{protocol['id']}/assignments", json={"slot": 0, "reviewer_id": "r2"},
                    headers=chair_h)
    assert r.status_code == 409
    assert r.json()["error"] == "slot_occupied"

    slots = client.get(f"/protocols/{protocol['id']}/slots").json()
    assert slots[0]["assignment"]["reviewer_id"] == "r1"
    assert slots[2]["form_type"] == "informed-consent"
    assert slots[2]["assignment"] is None
    r = client.get(f"/protocols/{protocol['id']}/has_active_reviewers")
    assert r.json()["has_active_reviewers"] is True


def test_document_revise_and_reupload(client, prop_h, chair_h, blobs):
    protocol = _create(client, prop_h)
    pid = protocol["id"]
    r = client.post(
        f"/protocols/{pid}/documents",
        files={"file": ("consent form.pdf", PDF, "application/pdf")},
        data={"title": "Informed consent"},
        headers=prop_h,
    )
    assert r.status_code == 201
    doc = r.json()
    assert doc["version"] == 1
    assert doc["file_name"] == "consent_form.pdf"
    assert archive.extract(blobs.get(doc["storage_path"]), "consent_form.pdf") == PDF

    r = client.post(f"/protocols/{pid}/documents/{doc['id']}/review", json={"status": "revise", "comment": ""},
                    headers=chair_h)
    assert r.status_code == 422
    assert r.json()["error"] == "comment_required"

    r = client.post(f"/protocols/{pid}/documents/{doc['id']}/review",
                    json={"status": "revise", "comment": "fix §3"}, headers=chair_h)
    assert r.status_code == 200
    request_id = r.json()["request_id"]

    r = client.post(
        f"/protocols/{pid}/document_requests/{request_id}/fulfill",
        files={"file": ("consent-v2.pdf", b"%PDF v2", "application/pdf")},
        headers=prop_h,
    )
    assert r.status_code == 200
    assert r.json()["version"] == 2
    assert r.json()["status"] == "pending"
    versions = client.get(f"/protocols/{pid}/documents/{doc['id']}/versions").json()
    assert [v["version"] for v in versions] == [1, 2]


def test_fulfill_unknown_request_is_404(client, prop_h):
    protocol = _create(client, prop_h)
    r = client.post(
        f"/protocols/{protocol['id']}/document_requests/nope/fulfill",
        files={"file": ("a.pdf", PDF, "application/pdf")},
        headers=prop_h,
    )
    assert r.status_code == 404
    assert r.json()["error"] == "unknown_request"


def test_document_request_and_cancel(client, prop_h, chair_h):
    protocol = _create(client, prop_h)
    pid = protocol["id"]
    r = client.post(f"/protocols/{pid}/document_requests", json={"title": "Budget"}, headers=chair_h)
    assert r.status_code == 201
    assert r.json()["status"] == "requested"
    r = client.delete(f"/protocols/{pid}/document_requests/{r.json()['id']}", headers=chair_h)
    assert r.status_code == 204
    assert client.get(f"/protocols/{pid}/documents/summary").json()["total"] == 0


def test_preview_endpoint(client, prop_h, blobs):
    protocol = _create(client, prop_h)
    doc = client.post(
        f"/protocols/{protocol['id']}/documents",
        files={"file": ("scan.png", b"\x89PNG data", "image/png")},
        headers=prop_h,
    ).json()
    r = client.get("/preview", params={"storage_path": doc["storage_path"]})
    assert r.status_code == 200
    assert r.json()["entries"][0]["name"] == "scan.png"
    r = client.get("/preview", params={"storage_path": doc["storage_path"], "auto": True})
    assert r.status_code == 200
    assert r.content == b"\x89PNG data"
    assert r.headers["content-type"] == "image/png"
    assert client.get("/preview", params={"storage_path": "protocols/x/none.zip"}).status_code == 404


def test_preview_non_latin_file_name(client, prop_h):
    protocol = _create(client, prop_h)
    doc = client.post(
        f"/protocols/{protocol['id']}/documents",
        files={"file": ("研究计划.pdf", PDF, "application/pdf")},
        headers=prop_h,
    ).json()
    r = client.get("/preview", params={"storage_path": doc["storage_path"], "auto": True})
    assert r.status_code == 200
    assert r.content == PDF
    disposition = r.headers["content-disposition"]
    assert "filename*=utf-8''%E7%A0%94%E7%A9%B6%E8%AE%A1%E5%88%92.pdf" in disposition
    assert disposition.isascii()


def test_preview_corrupt_archive_is_422(client, blobs):
    blobs.put("protocols/P1/broken.zip", b"PK\x03\x04garbage")
    r = client.get("/preview", params={"storage_path": "protocols/P1/broken.zip"})
    assert r.status_code == 422
    assert r.json()["error"] == "validation_failed"
    assert r.json()["fields"][0]["field"] == "storage_path"


def test_assessment_flow(client, prop_h, chair_h, rev_h):
    protocol = _accepted(client, prop_h, chair_h)
    pid = protocol["id"]
    client.post("/reviewers", json={"name": "Ana Reyes", "email": "ana@rec.test", "reviewer_id": "r1"},
                headers=chair_h)
    client.post(f"/protocols/{pid}/assignments", json={"slot": 2, "reviewer_id": "r1"}, headers=chair_h)

    form = client.get(f"/protocols/{pid}/assessments/informed-consent", headers=rev_h).json()
    assert form["status"] == "not-started"
    assert "recommendation_justification" in form["required_fields"]

    r = client.put(f"/protocols/{pid}/assessments/informed-consent", json={"form_data": {"q1": "yes"}},
                   headers=rev_h)
    assert r.status_code == 200
    assert r.json()["status"] == "draft"

    r = client.post(f"/protocols/{pid}/assessments/informed-consent/submit", json={"form_data": {}},
                    headers=rev_h)
    assert r.status_code == 422
    body = r.json()
    assert body["error"] == "validation_failed"
    assert {"field": "q2", "message": "This field is required"} in body["fields"]

    answers = {f"q{i}": "yes" for i in range(1, 18)}
    answers.update(
        study_site="Main campus",
        sponsor="None",
        recommendation="Approved",
        recommendation_justification="Clear consent language",
    )
    r = client.post(f"/protocols/{pid}/assessments/informed-consent/submit", json={"form_data": answers},
                    headers=rev_h)
    assert r.status_code == 200
    assert r.json()["status"] == "submitted"

    r = client.post(f"/protocols/{pid}/assessments/informed-consent/approve", params={"reviewer_id": "r1"},
                    headers=chair_h)
    assert r.status_code == 200
    assert r.json()["status"] == "approved"


def test_decision_and_audit_trail(client, prop_h, chair_h):
    protocol = _accepted(client, prop_h, chair_h)
    pid = protocol["id"]
    r = client.post(f"/protocols/{pid}/decision",
                    json={"decision_type": "approved", "meeting_reference": "003-02-2025"}, headers=chair_h)
    assert r.status_code == 201
    assert r.json()["version"] == 1
    assert client.get(f"/protocols/{pid}").json()["decision"]["decision_type"] == "approved"
    trail = client.get(f"/protocols/{pid}/audit_trail").json()
    assert trail["verification"]["valid"] is True
    assert [e["action_type"] for e in trail["entries"]][-1] == "decision_recorded"


def test_settings_init_is_idempotent(client):
    first = client.post("/settings/init", json={"user_id": "u1"}).json()
    second = client.post("/settings/init", json={"user_id": "u1"}).json()
    assert first["created"] == ["rec_settings/u1", "settings/u1"]
    assert second["created"] == []
    assert second["existing"] == ["rec_settings/u1", "settings/u1"]


def test_websocket_snapshot_and_update(client, store, proponent):
    """First message is the full snapshot; a write pushes a new full snapshot."""
    from recboard.services import protocol_service

    protocol_service.create_protocol(store, proponent, "Existing", "Ana Reyes")
    with client.websocket_connect("/ws/protocols") as ws:
        first = ws.receive_json()
        assert first["type"] == "snapshot"
        assert [p["title"] for p in first["records"]] == ["Existing"]

        protocol_service.create_protocol(store, Actor(id="prop-2", role="proponent"), "Second", "Ben Santos")
        second = ws.receive_json()
        assert second["type"] == "snapshot"
        assert sorted(p["title"] for p in second["records"]) == ["Existing", "Second"]
    assert len(store.hub) == 0
