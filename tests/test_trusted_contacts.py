"""Trusted contact registry and API."""

from concurrent.futures import ThreadPoolExecutor

import pytest

from vicinity.core.errors import InvalidContact, LimitExceeded, UserNotFound


def test_add_list_and_remove(engine, make_user):
    owner, _ = make_user()
    a, _ = make_user(username="alice", full_name="Alice")
    entries = engine.contacts.add(owner, a)
    assert [(e.contact_user_id, e.username, e.mutual) for e in entries] == [(a, "alice", False)]

    engine.contacts.add(a, owner)
    assert engine.contacts.list(owner)[0].mutual is True

    assert engine.contacts.remove(owner, a) == []
    assert engine.contacts.remove(owner, a) == []


def test_add_is_idempotent(engine, make_user):
    owner, _ = make_user()
    a, _ = make_user()
    engine.contacts.add(owner, a)
    engine.contacts.add(owner, a)
    assert engine.contacts.contact_ids(owner) == [a]


def test_sixth_contact_rejected(engine, make_user):
    owner, _ = make_user()
    others = [make_user()[0] for _ in range(6)]
    for uid in others[:5]:
        engine.contacts.add(owner, uid)
    with pytest.raises(LimitExceeded):
        engine.contacts.add(owner, others[5])
    assert engine.contacts.contact_ids(owner) == others[:5]
    # re-adding an existing contact at the cap is still fine
    engine.contacts.add(owner, others[0])


def test_self_and_unknown_contacts_rejected(engine, make_user):
    owner, _ = make_user()
    with pytest.raises(InvalidContact):
        engine.contacts.add(owner, owner)
    with pytest.raises(UserNotFound):
        engine.contacts.add(owner, 9999)


def test_concurrent_adds_never_exceed_limit(engine, make_user):
    owner, _ = make_user()
    others = [make_user()[0] for _ in range(10)]

    def attempt(uid):
        try:
            engine.contacts.add(owner, uid)
            return True
        except LimitExceeded:
            return False

    with ThreadPoolExecutor(max_workers=5) as pool:
        results = list(pool.map(attempt, others))

    assert results.count(True) == 5
    assert len(engine.contacts.contact_ids(owner)) == 5


def test_mutual_visibility_and_watchers(engine, make_user):
    a, _ = make_user()
    b, _ = make_user()
    c, _ = make_user()
    engine.contacts.add(a, b)
    engine.contacts.add(a, c)
    engine.contacts.add(b, a)
    assert engine.contacts.visible_contacts(a) == {b}
    assert engine.contacts.watchers_of(b) == {a}
    assert engine.contacts.location_watchers(a) == {b}
    assert engine.contacts.location_watchers(c) == set()


def test_api_add_and_list(client, make_user):
    owner, headers = make_user()
    friend, _ = make_user(username="bob", full_name="Bob")

    r = client.post("/users/trusted-contacts", headers=headers, json={"userId": friend})
    assert r.status_code == 200
    body = r.json()["trustedContacts"]
    assert body[0]["userId"] == friend
    assert body[0]["fullName"] == "Bob"

    r = client.get("/users/trusted-contacts", headers=headers)
    assert [c["userId"] for c in r.json()["trustedContacts"]] == [friend]

    r = client.delete(f"/users/trusted-contacts/{friend}", headers=headers)
    assert r.status_code == 200
    assert r.json()["trustedContacts"] == []


def test_api_limit_exceeded(client, make_user):
    owner, headers = make_user()
    for _ in range(5):
        uid, _ = make_user()
        assert client.post("/users/trusted-contacts", headers=headers, json={"userId": uid}).status_code == 200
    extra, _ = make_user()
    r = client.post("/users/trusted-contacts", headers=headers, json={"userId": extra})
    assert r.status_code == 400
    assert r.json()["detail"]["error"] == "LimitExceeded"
    assert r.json()["detail"]["message"] == "Maximum 5 trusted contacts allowed"


def test_api_rejects_self_and_unknown(client, make_user):
    owner, headers = make_user()
    r = client.post("/users/trusted-contacts", headers=headers, json={"userId": owner})
    assert r.status_code == 400
    assert r.json()["detail"]["error"] == "InvalidContact"
    r = client.post("/users/trusted-contacts", headers=headers, json={"userId": 4242})
    assert r.status_code == 404


def test_api_requires_auth(client):
    assert client.get("/users/trusted-contacts").status_code == 401
