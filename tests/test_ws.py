"""WebSocket endpoint tests."""

import pytest
from fastapi.websockets import WebSocketDisconnect


def _receive_until(ws, event, limit=5):
    for _ in range(limit):
        message = ws.receive_json()
        if message["event"] == event:
            return message["data"]
    raise AssertionError(f"no {event} event received")


def _token(headers):
    return headers["Authorization"].split(" ", 1)[1]


def test_snapshot_and_ping(client, make_user):
    _, headers = make_user()
    with client.websocket_connect(f"/ws?token={_token(headers)}") as ws:
        assert ws.receive_json() == {
            "event": "sos_status",
            "data": {"isActive": False, "state": "idle", "incidentId": None},
        }
        ws.send_text("ping")
        assert ws.receive_json() == {"event": "pong", "data": None}


def test_missing_token_rejected(client):
    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect("/ws"):
            pass
    assert exc.value.code == 4001


def test_invalid_token_rejected(client):
    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect("/ws?token=garbage"):
            pass
    assert exc.value.code == 4003


def test_snapshot_reflects_open_incident(client, engine, make_user):
    uid, headers = make_user()
    incident = engine.sos.activate(uid, "manual").incident
    with client.websocket_connect(f"/ws?token={_token(headers)}") as ws:
        data = _receive_until(ws, "sos_status")
        assert data["isActive"] is True
        assert data["incidentId"] == incident.incident_id


def test_contact_receives_sos_alert_over_socket(client, make_user):
    owner, owner_headers = make_user(full_name="Olga")
    contact, contact_headers = make_user()
    client.post("/users/trusted-contacts", headers=owner_headers, json={"userId": contact})

    with client.websocket_connect(f"/ws?token={_token(contact_headers)}") as ws:
        _receive_until(ws, "sos_status")
        r = client.post("/location/sos-activate", headers=owner_headers, json={})
        alert = _receive_until(ws, "sos_alert")
        assert alert["incidentId"] == r.json()["incidentId"]
        assert alert["name"] == "Olga"


def test_client_sos_activate_message(client, engine, make_user):
    uid, headers = make_user()
    with client.websocket_connect(f"/ws?token={_token(headers)}") as ws:
        _receive_until(ws, "sos_status")
        ws.send_json({"event": "sos_activate", "data": {"triggeredBy": "voice"}})
        reply = _receive_until(ws, "sos_activate_result")
        assert reply["ok"] is True
        assert reply["state"] == "active"

        ws.send_json({"event": "sos_activate", "data": {}})
        again = _receive_until(ws, "sos_activate_result")
        assert again["ok"] is False
        assert again["error"] == "AlreadyActive"
        assert again["incidentId"] == reply["incidentId"]

    assert engine.sos.current(uid).triggered_by == "voice"
