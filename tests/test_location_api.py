"""Location update and nearby users API."""

from datetime import timedelta

from sqlalchemy import select

from vicinity.core.clock import utcnow
from vicinity.models import UserLocation
from vicinity.services import proximity_monitor


def _update(client, headers, lat, lon, **extra):
    return client.post("/location/update", headers=headers, json={"latitude": lat, "longitude": lon, **extra})


def test_update_accepted(client, make_user, engine):
    uid, headers = make_user()
    r = _update(client, headers, 40.0, -73.0, isSharing=True, accuracy=12.5)
    assert r.status_code == 200
    assert r.json() == {"accepted": True}
    snap = engine.locations.get(uid)
    assert (snap.latitude, snap.longitude, snap.accuracy, snap.is_sharing) == (40.0, -73.0, 12.5, True)
    assert uid in engine.index


def test_update_keeps_sharing_flag_when_omitted(client, make_user, engine):
    uid, headers = make_user()
    _update(client, headers, 40.0, -73.0, isSharing=True)
    _update(client, headers, 40.001, -73.0)
    assert engine.locations.get(uid).is_sharing is True


def test_new_location_defaults_to_not_sharing(client, make_user, engine):
    uid, headers = make_user()
    _update(client, headers, 40.0, -73.0)
    assert engine.locations.get(uid).is_sharing is False
    assert uid not in engine.index


def test_update_rejects_bad_coordinates(client, make_user):
    _, headers = make_user()
    assert _update(client, headers, 91.0, 0.0).status_code == 422
    assert _update(client, headers, 0.0, -181.0).status_code == 422


def test_nearby_users_sorted_with_labels(client, make_user):
    me, headers = make_user()
    a, a_headers = make_user(username="a")
    b, b_headers = make_user(username="b")
    c, c_headers = make_user(username="c")
    _update(client, headers, 40.0, -73.0, isSharing=True)
    _update(client, b_headers, 40.009, -73.0, isSharing=True)  # ~1 km
    _update(client, a_headers, 40.002, -73.0, isSharing=True)  # ~222 m
    _update(client, c_headers, 40.003, -73.0, isSharing=False)

    r = client.get("/location/nearby-users", headers=headers)
    assert r.status_code == 200
    users = r.json()["nearbyUsers"]
    assert [u["userId"] for u in users] == [a, b]
    assert users[0]["distance"] == "222m"
    assert users[1]["distance"] == "1.0km"
    assert users[0]["username"] == "a"

    r = client.get("/location/nearby-users", headers=headers, params={"radius": 500})
    assert [u["userId"] for u in r.json()["nearbyUsers"]] == [a]


def test_nearby_users_without_location_is_empty(client, make_user):
    _, headers = make_user()
    r = client.get("/location/nearby-users", headers=headers)
    assert r.json() == {"nearbyUsers": []}


def test_nearby_users_works_without_sharing(client, make_user):
    me, headers = make_user()
    other, o_headers = make_user()
    _update(client, headers, 40.0, -73.0)
    _update(client, o_headers, 40.001, -73.0, isSharing=True)
    r = client.get("/location/nearby-users", headers=headers)
    assert [u["userId"] for u in r.json()["nearbyUsers"]] == [other]


def test_location_requires_auth(client):
    assert client.post("/location/update", json={"latitude": 0, "longitude": 0}).status_code == 401
    r = client.post(
        "/location/update",
        json={"latitude": 0, "longitude": 0},
        headers={"Authorization": "Bearer not-a-token"},
    )
    assert r.status_code == 401


def test_stale_location_reads_as_not_sharing(build, make_user, db):
    engine = build()
    uid, _ = make_user()
    engine.monitor.location_changed(uid, 40.0, -73.0, is_sharing=True)
    row = db.execute(select(UserLocation).where(UserLocation.user_id == uid)).scalar_one()
    row.updated_at = utcnow() - timedelta(minutes=30)
    db.commit()

    assert engine.locations.get(uid).is_sharing is False
    assert engine.monitor.expire_stale() == 1
    assert uid not in engine.index
    assert engine.locations.last_known(uid).is_sharing is False


def test_stale_neighbour_dropped_before_the_sweep(engine, make_user, session_for, monkeypatch):
    a, _ = make_user()
    b, _ = make_user()
    sa = session_for(a)
    engine.monitor.location_changed(a, 40.0, -73.0, is_sharing=True)
    engine.monitor.location_changed(b, 40.001, -73.0, is_sharing=True)
    assert [n.user_id for n in engine.monitor.nearby(a)] == [b]

    later = utcnow() + timedelta(minutes=engine.config.location_stale_minutes + 1)
    monkeypatch.setattr(proximity_monitor, "utcnow", lambda: later)

    assert engine.monitor.nearby(a) == []
    assert b not in engine.index
    engine.monitor.flush()
    assert sa.of("proximity_alert_received") == []


def test_location_shared_with_mutual_contacts(engine, make_user, session_for):
    a, _ = make_user()
    b, _ = make_user()
    engine.contacts.add(a, b)
    engine.contacts.add(b, a)
    sb = session_for(b)
    engine.monitor.location_changed(a, 40.0, -73.0, is_sharing=True)
    assert sb.of("location_updated")[0]["userId"] == a


def test_sharing_radius_sets_alert_radius(client, make_user):
    _, headers = make_user()
    assert _update(client, headers, 40.0, -73.0, sharingRadius=800).status_code == 200
    assert client.get("/settings/proximity", headers=headers).json()["radiusMeters"] == 800

    assert _update(client, headers, 40.0, -73.0).status_code == 200
    assert client.get("/settings/proximity", headers=headers).json()["radiusMeters"] == 800

    assert _update(client, headers, 40.0, -73.0, sharingRadius=10).status_code == 422
