"""AlertDispatcher fan-out and failure isolation."""

import time

import pytest

from vicinity.core.clock import utcnow
from vicinity.core.ws_manager import SessionHandle
from vicinity.services.dispatcher import (
    LocationUpdated,
    NearbyMessagePosted,
    ProximityAlert,
    SOSActivated,
)
from vicinity.services.notifier import OfflineNotifier
from vicinity.services.settings_service import update_settings


class BrokenSession(SessionHandle):
    def push(self, payload: str) -> None:
        raise RuntimeError("socket gone")


def test_proximity_alert_payload(engine, make_user, session_for):
    a, _ = make_user()
    b, _ = make_user(username="bee", full_name="Bee")
    s = session_for(a)
    report = engine.dispatcher.publish(
        ProximityAlert(recipient_id=a, nearby_user_id=b, distance_meters=1234.4, username="bee", full_name="Bee")
    )
    assert report.delivered == [a]
    assert s.of("proximity_alert_received") == [
        {"userId": b, "username": "bee", "fullName": "Bee", "distanceMeters": 1234.4, "distance": "1.2km"}
    ]


def test_proximity_alert_without_session_is_failed(engine, make_user):
    a, _ = make_user()
    report = engine.dispatcher.publish(ProximityAlert(recipient_id=a, nearby_user_id=2, distance_meters=10))
    assert report.failed == [a]


def test_broken_session_does_not_block_other_targets(engine, make_user, session_for, notifier):
    a, _ = make_user()
    b, _ = make_user()
    engine.connections.register(a, BrokenSession())
    sb = session_for(b)
    notifier.failing.add(a)

    report = engine.dispatcher.publish(
        SOSActivated(incident_id=1, user_id=99, display_name="X", triggered_by="manual", contact_ids=[a, b])
    )

    assert report.failed == [a]
    assert report.delivered == [b]
    assert report.partial is True
    assert len(sb.of("sos_alert")) == 1
    # the dead session was dropped
    assert engine.connections.is_connected(a) is False


def test_offline_channels_follow_contact_preferences(engine, make_user, notifier, db):
    a, _ = make_user()
    update_settings(db, a, {"notify_push": False, "notify_email": False})
    engine.dispatcher.publish(
        SOSActivated(incident_id=1, user_id=99, display_name="X", triggered_by="manual", contact_ids=[a])
    )
    assert notifier.to(a)[0].channels == ["sms"]


def test_contact_with_every_channel_off_and_no_session_fails(engine, make_user, notifier, db):
    a, _ = make_user()
    update_settings(db, a, {"notify_push": False, "notify_sms": False, "notify_email": False})
    report = engine.dispatcher.publish(
        SOSActivated(incident_id=1, user_id=99, display_name="X", triggered_by="manual", contact_ids=[a])
    )
    assert report.failed == [a]
    assert notifier.sent == []


def test_dry_run_suppresses_everything(engine, make_user, session_for, notifier):
    a, _ = make_user()
    s = session_for(a)
    report = engine.dispatcher.publish(
        SOSActivated(incident_id=1, user_id=99, display_name="X", triggered_by="test", contact_ids=[a], dry_run=True)
    )
    assert report.suppressed == [a]
    assert report.delivered == []
    assert s.events == []
    assert notifier.sent == []


def test_nearby_message_hides_anonymous_sender(engine, make_user, session_for):
    a, _ = make_user()
    s = session_for(a)
    engine.dispatcher.publish(
        NearbyMessagePosted(
            message_id=7,
            sender_id=42,
            sender_name="Anonymous",
            is_anonymous=True,
            text="road closed",
            media_ref=None,
            created_at=utcnow(),
            distances={a: 320.0},
        )
    )
    data = s.of("nearby_message_received")[0]
    assert data["senderId"] is None
    assert data["senderName"] == "Anonymous"
    assert data["distance"] == "320m"


def test_location_updated_goes_to_watchers(engine, make_user, session_for):
    a, _ = make_user()
    s = session_for(a)
    report = engine.dispatcher.publish(
        LocationUpdated(user_id=5, latitude=1.0, longitude=2.0, accuracy=None, updated_at=utcnow(), watcher_ids=[a])
    )
    assert report.delivered == [a]
    assert s.of("location_updated")[0]["userId"] == 5


def test_unknown_event_type_rejected(engine):
    with pytest.raises(TypeError):
        engine.dispatcher.publish(object())


class SlowNotifier(OfflineNotifier):
    def __init__(self, delay: float) -> None:
        self.delay = delay
        self.sent = []

    def send(self, message):
        time.sleep(self.delay)
        self.sent.append(message)


def test_realtime_leg_queues_offline_contacts(engine, make_user, session_for, notifier, db):
    a, _ = make_user()
    b, _ = make_user()
    c, _ = make_user()
    session_for(a)
    update_settings(db, c, {"notify_push": False, "notify_sms": False, "notify_email": False})
    event = SOSActivated(incident_id=1, user_id=99, display_name="X", triggered_by="manual", contact_ids=[a, b, c])

    report = engine.dispatcher.publish_realtime(event)

    assert report.realtime == {a}
    assert report.queued == [a, b]
    assert notifier.sent == []

    offline = engine.dispatcher.deliver_offline(event)
    assert offline.offline == {a, b}
    assert offline.failed == [c]


def test_offline_sends_past_the_deadline_are_skipped(engine, make_user):
    ids = [make_user()[0] for _ in range(3)]
    slow = SlowNotifier(0.2)
    engine.dispatcher.notifier = slow

    report = engine.dispatcher.deliver_offline(
        SOSActivated(incident_id=1, user_id=99, display_name="X", triggered_by="manual", contact_ids=ids),
        timeout=0.1,
    )

    assert len(slow.sent) == 1
    assert report.delivered == ids[:1]
    assert report.failed == ids[1:]
