"""Proximity settings API tests."""


def test_defaults_created_on_first_read(client, make_user):
    uid, headers = make_user()
    r = client.get("/settings/proximity", headers=headers)
    assert r.status_code == 200
    body = r.json()
    assert body["userId"] == uid
    assert body["alertsEnabled"] is True
    assert body["radiusMeters"] == 5000
    assert body["alertFrequency"] == "immediate"
    assert body["onlyTrustedContacts"] is False
    assert body["nearbyRadiusMeters"] == 1000


def test_partial_update(client, make_user, engine):
    uid, headers = make_user()
    r = client.put(
        "/settings/proximity",
        headers=headers,
        json={"radiusMeters": 1500, "alertFrequency": "once", "anonymousMode": True},
    )
    assert r.status_code == 200
    body = r.json()
    assert body["radiusMeters"] == 1500
    assert body["alertFrequency"] == "once"
    assert body["anonymousMode"] is True
    assert body["soundEnabled"] is True

    prefs = engine.settings_store.get(uid)
    assert prefs.alert_frequency == "once"
    assert prefs.radius_meters == 1500


def test_invalid_values_rejected(client, make_user):
    _, headers = make_user()
    assert client.put("/settings/proximity", headers=headers, json={"alertFrequency": "hourly"}).status_code == 422
    assert client.put("/settings/proximity", headers=headers, json={"radiusMeters": 10}).status_code == 422
    assert client.put("/settings/proximity", headers=headers, json={"radiusMeters": 60000}).status_code == 422
