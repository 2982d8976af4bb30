"""SOS API tests."""

import pytest


@pytest.fixture
def owner(client, make_user):
    """User with two trusted contacts. Returns (owner headers, contact ids, contact headers)."""
    uid, headers = make_user(full_name="Owner")
    c1, c1_headers = make_user()
    c2, c2_headers = make_user()
    for cid in (c1, c2):
        client.post("/users/trusted-contacts", headers=headers, json={"userId": cid})
    return uid, headers, (c1, c2), (c1_headers, c2_headers)


def test_activate_and_status(client, owner):
    uid, headers, contacts, _ = owner
    r = client.post(
        "/location/sos-activate",
        headers=headers,
        json={"location": {"latitude": 40.0, "longitude": -73.0}, "reason": "followed"},
    )
    assert r.status_code == 200
    body = r.json()
    assert body["contactsNotified"] == 2
    assert body["state"] == "active"
    assert body["locationAvailable"] is True
    assert body["dryRun"] is False
    assert body["failedContacts"] == []

    status = client.get("/location/sos-status", headers=headers).json()
    assert status["isActive"] is True
    assert status["incidentId"] == body["incidentId"]
    assert status["triggeredBy"] == "manual"


def test_repeat_activation_returns_409_with_incident(client, owner):
    _, headers, _, _ = owner
    first = client.post("/location/sos-activate", headers=headers, json={}).json()
    r = client.post("/location/sos-activate", headers=headers, json={})
    assert r.status_code == 409
    detail = r.json()["detail"]
    assert detail["error"] == "AlreadyActive"
    assert detail["incidentId"] == first["incidentId"]


def test_voice_detect_triggers_sos(client, owner):
    _, headers, _, _ = owner
    r = client.post("/location/sos-voice-detect", headers=headers, json={})
    assert r.status_code == 200
    incident_id = r.json()["incidentId"]
    history = client.get("/location/sos-history", headers=headers).json()
    assert history[0]["incidentId"] == incident_id
    assert history[0]["triggeredBy"] == "voice"


def test_timer_expiry_cannot_be_requested_by_client(client, owner):
    _, headers, _, _ = owner
    r = client.post("/location/sos-activate", headers=headers, json={"triggeredBy": "timer-expiry"})
    assert r.status_code == 422


def test_test_trigger_notifies_nobody(client, owner, notifier):
    _, headers, _, _ = owner
    r = client.post("/location/sos-activate", headers=headers, json={"triggeredBy": "test"})
    assert r.status_code == 200
    assert r.json()["dryRun"] is True
    assert r.json()["contactsNotified"] == 0
    assert notifier.sent == []


def test_cancel(client, owner):
    _, headers, _, _ = owner
    incident_id = client.post("/location/sos-activate", headers=headers, json={}).json()["incidentId"]
    r = client.post("/location/sos-cancel", headers=headers, json={"reason": "I'm fine"})
    assert r.status_code == 200
    assert r.json() == {"cancelled": True, "incidentId": incident_id}
    assert client.get("/location/sos-status", headers=headers).json()["isActive"] is False


def test_cancel_without_incident_is_404(client, owner):
    _, headers, _, _ = owner
    r = client.post("/location/sos-cancel", headers=headers)
    assert r.status_code == 404
    assert r.json()["detail"]["error"] == "NoActiveIncident"


def test_contact_sees_incoming_and_resolves(client, owner):
    _, headers, (c1, _), (c1_headers, _) = owner
    incident_id = client.post("/location/sos-activate", headers=headers, json={}).json()["incidentId"]

    incoming = client.get("/location/sos-incoming", headers=c1_headers).json()
    assert incoming[0]["incidentId"] == incident_id
    assert incoming[0]["ownerName"] == "Owner"
    assert incoming[0]["notificationStatus"] == "NOTIFIED"

    r = client.post(
        f"/location/sos/{incident_id}/resolve",
        headers=c1_headers,
        json={"acknowledgement": "On my way, found her"},
    )
    assert r.status_code == 200
    assert r.json()["state"] == "resolved"
    assert r.json()["resolvedBy"] == c1

    r = client.post(f"/location/sos/{incident_id}/resolve", headers=c1_headers)
    assert r.status_code == 409


def test_stranger_cannot_resolve(client, owner, make_user):
    _, headers, _, _ = owner
    _, stranger_headers = make_user()
    incident_id = client.post("/location/sos-activate", headers=headers, json={}).json()["incidentId"]
    r = client.post(f"/location/sos/{incident_id}/resolve", headers=stranger_headers)
    assert r.status_code == 403


def test_history_limit(client, owner):
    _, headers, _, _ = owner
    for _ in range(3):
        client.post("/location/sos-activate", headers=headers, json={})
        client.post("/location/sos-cancel", headers=headers)
    assert len(client.get("/location/sos-history", headers=headers).json()) == 3
    assert len(client.get("/location/sos-history", headers=headers, params={"limit": 2}).json()) == 2
    assert client.get("/location/sos-history", headers=headers, params={"limit": 101}).status_code == 422


def test_emergency_contacts_crud(client, make_user):
    _, headers = make_user()
    r = client.post(
        "/location/emergency-contacts",
        headers=headers,
        json={"name": "Mum", "phone": "+44 7700 900123", "isPrimary": True},
    )
    assert r.status_code == 201
    first = r.json()
    assert first["phone"] == "+447700900123"
    assert first["isPrimary"] is True

    r = client.post(
        "/location/emergency-contacts",
        headers=headers,
        json={"name": "Dad", "phone": "07700-900-456", "isPrimary": True},
    )
    second = r.json()
    listed = client.get("/location/emergency-contacts", headers=headers).json()
    assert [c["id"] for c in listed] == [second["id"], first["id"]]
    assert [c["isPrimary"] for c in listed] == [True, False]

    dup = client.post("/location/emergency-contacts", headers=headers, json={"name": "Again", "phone": "+447700900123"})
    assert dup.status_code == 400

    assert client.delete(f"/location/emergency-contacts/{first['id']}", headers=headers).status_code == 204
    assert client.delete(f"/location/emergency-contacts/{first['id']}", headers=headers).status_code == 404


def test_emergency_contact_bad_phone(client, make_user):
    _, headers = make_user()
    r = client.post("/location/emergency-contacts", headers=headers, json={"name": "X", "phone": "call-me-maybe"})
    assert r.status_code == 400


def test_admin_cancel_and_resolve(client, owner, make_user):
    uid, headers, _, _ = owner
    _, admin_headers = make_user(role="admin")
    _, plain_headers = make_user()

    client.post("/location/sos-activate", headers=headers, json={})
    assert client.post(f"/admin/sos/{uid}/cancel", headers=plain_headers).status_code == 403
    r = client.post(f"/admin/sos/{uid}/cancel", headers=admin_headers, json={"reason": "duplicate"})
    assert r.status_code == 200
    assert r.json()["state"] == "cancelled"

    incident_id = client.post("/location/sos-activate", headers=headers, json={}).json()["incidentId"]
    r = client.post(f"/admin/sos/incidents/{incident_id}/resolve", headers=admin_headers)
    assert r.json()["state"] == "resolved"
    assert client.get(f"/admin/sos/incidents/{incident_id}", headers=admin_headers).json()["state"] == "resolved"
    assert client.get("/admin/sos/incidents/9999", headers=admin_headers).status_code == 404
