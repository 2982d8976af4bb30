"""SOSStateMachine transitions, fan-out and concurrency."""

import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy import select

from vicinity.core.errors import (
    AlreadyActive,
    IncidentNotFound,
    InvalidTransition,
    NoActiveIncident,
    NotAuthorized,
)
from vicinity.models import SosNotification
from vicinity.services.emergency_contacts import add_emergency_contact
from vicinity.services.notifier import OfflineNotifier


@pytest.fixture
def owner_with_contacts(engine, make_user):
    owner, _ = make_user(full_name="Dana")
    c1, _ = make_user()
    c2, _ = make_user()
    engine.contacts.add(owner, c1)
    engine.contacts.add(owner, c2)
    return owner, c1, c2


def _statuses(db, incident_id):
    rows = db.execute(
        select(SosNotification).where(SosNotification.incident_id == incident_id).order_by(SosNotification.id)
    ).scalars()
    return {r.contact_user_id or f"ec{r.emergency_contact_id}": r.status for r in rows}


def test_activate_notifies_every_contact(engine, owner_with_contacts, session_for, notifier, db):
    owner, c1, c2 = owner_with_contacts
    s1 = session_for(c1)
    owner_session = session_for(owner)

    result = engine.sos.activate(owner, "manual", location=(40.0, -73.0), reason="help")

    inc = result.incident
    assert result.created is True
    assert result.partial_failure is None
    assert inc.state == "active"
    assert inc.contacts_notified == 2
    assert inc.location_available is True
    alert = s1.of("sos_alert")[0]
    assert alert["incidentId"] == inc.incident_id
    assert alert["name"] == "Dana"
    assert alert["location"] == {"latitude": 40.0, "longitude": -73.0}
    assert len(notifier.to(c2)) == 1
    assert owner_session.of("sos_status")[-1]["contactsNotified"] == 2
    assert _statuses(db, inc.incident_id) == {c1: "NOTIFIED", c2: "NOTIFIED"}


def test_second_activation_raises_already_active(engine, owner_with_contacts):
    owner, *_ = owner_with_contacts
    first = engine.sos.activate(owner, "manual")
    with pytest.raises(AlreadyActive) as exc:
        engine.sos.activate(owner, "voice")
    assert exc.value.incident_id == first.incident.incident_id
    assert exc.value.contacts_notified == 2


def test_concurrent_activations_open_one_incident(engine, owner_with_contacts, notifier):
    owner, c1, c2 = owner_with_contacts

    def attempt(_):
        try:
            return engine.sos.activate(owner, "manual").incident.incident_id
        except AlreadyActive as exc:
            return ("dup", exc.incident_id)

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(attempt, range(8)))

    created = [r for r in results if not isinstance(r, tuple)]
    dups = [r[1] for r in results if isinstance(r, tuple)]
    assert len(created) == 1
    assert set(dups) == {created[0]}
    assert len(engine.sos.history(owner)) == 1
    # each contact notified exactly once
    assert len(notifier.to(c1)) == 1
    assert len(notifier.to(c2)) == 1


def test_location_falls_back_to_last_known(engine, owner_with_contacts):
    owner, *_ = owner_with_contacts
    engine.locations.upsert(owner, 51.5, -0.12)
    inc = engine.sos.activate(owner, "manual").incident
    assert (inc.latitude, inc.longitude) == (51.5, -0.12)
    assert inc.location_available is True


def test_activation_without_any_location_still_proceeds(engine, owner_with_contacts):
    owner, *_ = owner_with_contacts
    inc = engine.sos.activate(owner, "manual").incident
    assert inc.state == "active"
    assert inc.location_available is False
    assert inc.latitude is None


def test_test_trigger_is_a_dry_run(engine, owner_with_contacts, session_for, notifier, db):
    owner, c1, c2 = owner_with_contacts
    s1 = session_for(c1)
    inc = engine.sos.activate(owner, "test").incident
    assert inc.dry_run is True
    assert inc.contacts_notified == 0
    assert s1.of("sos_alert") == []
    assert notifier.sent == []
    assert _statuses(db, inc.incident_id) == {c1: "SUPPRESSED", c2: "SUPPRESSED"}


def test_partial_notification_failure(engine, owner_with_contacts, session_for, notifier, db):
    owner, c1, c2 = owner_with_contacts
    notifier.failing.add(c2)  # no session and the gateway rejects c2

    result = engine.sos.activate(owner, "manual")

    assert result.incident.contacts_notified == 1
    assert result.partial_failure is not None
    assert result.partial_failure.failed == [c2]
    assert _statuses(db, result.incident.incident_id) == {c1: "NOTIFIED", c2: "FAILED"}


def test_realtime_alone_counts_as_delivered(engine, owner_with_contacts, session_for, notifier):
    owner, c1, c2 = owner_with_contacts
    session_for(c2)
    notifier.failing.update({c1, c2})
    result = engine.sos.activate(owner, "manual")
    assert result.incident.contacts_notified == 1
    assert result.partial_failure.failed == [c1]


def test_emergency_contacts_get_sms(engine, owner_with_contacts, notifier, db):
    owner, *_ = owner_with_contacts
    ec = add_emergency_contact(db, owner, "Mum", "+1 (555) 010-0199", is_primary=True)
    inc = engine.sos.activate(owner, "manual").incident
    sms = [m for m in notifier.sent if m.phone == "+15550100199"]
    assert len(sms) == 1
    assert sms[0].channels == ["sms"]
    assert _statuses(db, inc.incident_id)[f"ec{ec.id}"] == "NOTIFIED"


def test_cancel_notifies_reached_contacts(engine, owner_with_contacts, session_for):
    owner, c1, c2 = owner_with_contacts
    s1 = session_for(c1)
    inc = engine.sos.activate(owner, "manual").incident

    view = engine.sos.cancel(owner, owner, reason="false alarm")

    assert view.state == "cancelled"
    assert view.cancelled_by == owner
    assert s1.of("sos_cancelled")[0]["incidentId"] == inc.incident_id
    assert engine.sos.current(owner) is None
    assert engine.sos.status(owner) == {"isActive": False, "state": "idle", "incidentId": None}


def test_cancel_without_open_incident(engine, owner_with_contacts):
    owner, *_ = owner_with_contacts
    with pytest.raises(NoActiveIncident):
        engine.sos.cancel(owner, owner)


def test_only_owner_or_admin_can_cancel(engine, owner_with_contacts):
    owner, c1, _ = owner_with_contacts
    engine.sos.activate(owner, "manual")
    with pytest.raises(NotAuthorized):
        engine.sos.cancel(owner, c1)
    assert engine.sos.cancel(owner, c1, is_admin=True).state == "cancelled"


def test_new_incident_after_cancel(engine, owner_with_contacts):
    owner, *_ = owner_with_contacts
    first = engine.sos.activate(owner, "manual").incident
    engine.sos.cancel(owner, owner)
    second = engine.sos.activate(owner, "manual").incident
    assert second.incident_id != first.incident_id
    assert [v.incident_id for v in engine.sos.history(owner)] == [second.incident_id, first.incident_id]


def test_contact_resolves_and_acknowledges(engine, owner_with_contacts, session_for, db):
    owner, c1, c2 = owner_with_contacts
    s2 = session_for(c2)
    inc = engine.sos.activate(owner, "manual").incident

    view = engine.sos.resolve(inc.incident_id, c1, note="I'm with her")

    assert view.state == "resolved"
    assert view.resolved_by == c1
    assert view.resolution_note == "I'm with her"
    assert _statuses(db, inc.incident_id)[c1] == "ACKNOWLEDGED"
    assert s2.of("sos_resolved")[0]["resolvedBy"] == c1


def test_resolve_rules(engine, owner_with_contacts, make_user):
    owner, *_ = owner_with_contacts
    stranger, _ = make_user()
    inc = engine.sos.activate(owner, "manual").incident
    with pytest.raises(NotAuthorized):
        engine.sos.resolve(inc.incident_id, stranger)
    engine.sos.cancel(owner, owner)
    with pytest.raises(InvalidTransition):
        engine.sos.resolve(inc.incident_id, owner)
    with pytest.raises(IncidentNotFound):
        engine.sos.resolve(9999, owner)


def test_incoming_lists_incidents_for_contact(engine, owner_with_contacts):
    owner, c1, _ = owner_with_contacts
    inc = engine.sos.activate(owner, "manual").incident
    incoming = engine.sos.incoming(c1)
    assert [i.incident.incident_id for i in incoming] == [inc.incident_id]
    assert incoming[0].owner_name == "Dana"
    assert incoming[0].notification_status == "NOTIFIED"


def test_unknown_trigger_rejected(engine, owner_with_contacts):
    owner, *_ = owner_with_contacts
    with pytest.raises(ValueError):
        engine.sos.activate(owner, "telepathy")


def test_arming_countdown(build, make_user, notifier):
    engine = build(sos_arming_seconds=30)
    owner, _ = make_user()
    contact, _ = make_user()
    engine.contacts.add(owner, contact)

    first = engine.sos.activate(owner, "manual")
    assert first.incident.state == "arming"
    assert notifier.sent == []
    job_id = f"sos-arm:{first.incident.incident_id}"
    assert engine.scheduler.get_job(job_id) is not None

    again = engine.sos.activate(owner, "manual")
    assert again.created is False
    assert again.incident.incident_id == first.incident.incident_id

    promoted = engine.sos.promote(first.incident.incident_id)
    assert promoted.state == "active"
    assert promoted.contacts_notified == 1
    assert len(notifier.to(contact)) == 1
    # promoting twice is a no-op
    assert engine.sos.promote(first.incident.incident_id) is None


def test_cancel_while_arming_sends_nothing(build, make_user, notifier):
    engine = build(sos_arming_seconds=30)
    owner, _ = make_user()
    contact, _ = make_user()
    engine.contacts.add(owner, contact)

    inc = engine.sos.activate(owner, "manual").incident
    engine.sos.cancel(owner, owner)

    assert engine.scheduler.get_job(f"sos-arm:{inc.incident_id}") is None
    assert engine.sos.promote(inc.incident_id) is None
    assert notifier.sent == []


def test_restore_reschedules_arming_incidents(build, make_user):
    engine = build(sos_arming_seconds=30)
    owner, _ = make_user()
    inc = engine.sos.activate(owner, "manual").incident

    restarted = build(sos_arming_seconds=30)
    assert restarted.sos.restore() == 1
    assert restarted.scheduler.get_job(f"sos-arm:{inc.incident_id}") is not None


class GatedNotifier(OfflineNotifier):
    """Holds every send until the gate opens."""

    def __init__(self, gate: threading.Event) -> None:
        self.gate = gate
        self.sent = []

    def send(self, message):
        self.gate.wait(5)
        self.sent.append(message)


def test_activation_returns_before_offline_delivery(build, make_user, session_for, db):
    engine = build(notification_workers=2)
    gate = threading.Event()
    engine.dispatcher.notifier = GatedNotifier(gate)
    owner, _ = make_user()
    c1, _ = make_user()
    c2, _ = make_user()
    engine.contacts.add(owner, c1)
    engine.contacts.add(owner, c2)
    owner_session = session_for(owner, engine)

    started = time.monotonic()
    result = engine.sos.activate(owner, "manual")
    elapsed = time.monotonic() - started

    inc = result.incident
    assert elapsed < 1.0
    assert inc.state == "active"
    assert inc.contacts_notified == 0
    assert _statuses(db, inc.incident_id) == {c1: "PENDING", c2: "PENDING"}

    gate.set()
    engine.executor.shutdown(wait=True)

    db.expire_all()
    assert _statuses(db, inc.incident_id) == {c1: "NOTIFIED", c2: "NOTIFIED"}
    assert engine.sos.current(owner).contacts_notified == 2
    assert owner_session.of("sos_status")[-1]["contactsNotified"] == 2


def test_cancel_not_blocked_by_pending_offline_alerts(build, make_user):
    engine = build(notification_workers=2)
    gate = threading.Event()
    notifier = GatedNotifier(gate)
    engine.dispatcher.notifier = notifier
    owner, _ = make_user()
    contact, _ = make_user()
    engine.contacts.add(owner, contact)
    engine.sos.activate(owner, "manual")

    started = time.monotonic()
    view = engine.sos.cancel(owner, owner)

    assert time.monotonic() - started < 1.0
    assert view.state == "cancelled"
    gate.set()
    engine.executor.shutdown(wait=True)
    # the pending contact gets both the alert and the cancellation
    assert sorted(m.title for m in notifier.sent) == ["SOS alert", "SOS cancelled"]
    assert engine.sos.get(view.incident_id).state == "cancelled"
