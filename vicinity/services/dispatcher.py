"""Alert fan-out to real-time sessions and the offline notifier."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from vicinity.core.policies import (
    EVENT_LOCATION_UPDATED,
    EVENT_NEARBY_MESSAGE,
    EVENT_PROXIMITY_ALERT,
    EVENT_SOS_ALERT,
    EVENT_SOS_CANCELLED,
    EVENT_SOS_RESOLVED,
    EVENT_SOS_STATUS,
)
from vicinity.core.ws_manager import ConnectionManager
from vicinity.services.geo import format_distance
from vicinity.services.notifier import OfflineMessage, OfflineNotifier
from vicinity.services.settings_service import SettingsStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EmergencyRecipient:
    contact_id: int
    name: str
    phone: str


@dataclass(frozen=True)
class ProximityAlert:
    recipient_id: int
    nearby_user_id: int
    distance_meters: float
    username: str = ""
    full_name: str = ""


@dataclass(frozen=True)
class SOSActivated:
    incident_id: int
    user_id: int
    display_name: str
    triggered_by: str
    contact_ids: list[int]
    emergency_contacts: list[EmergencyRecipient] = field(default_factory=list)
    reason: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    dry_run: bool = False
    activated_at: datetime | None = None


@dataclass(frozen=True)
class SOSCancelled:
    incident_id: int
    user_id: int
    display_name: str
    contact_ids: list[int]
    emergency_contacts: list[EmergencyRecipient] = field(default_factory=list)
    cancelled_by: int | None = None
    reason: str | None = None


@dataclass(frozen=True)
class SOSResolved:
    incident_id: int
    user_id: int
    display_name: str
    contact_ids: list[int]
    resolved_by: int | None = None
    note: str | None = None


@dataclass(frozen=True)
class NearbyMessagePosted:
    message_id: int
    sender_id: int
    sender_name: str
    is_anonymous: bool
    text: str | None
    media_ref: str | None
    created_at: datetime
    distances: dict[int, float]  # recipient_id -> meters


@dataclass(frozen=True)
class LocationUpdated:
    user_id: int
    latitude: float
    longitude: float
    accuracy: float | None
    updated_at: datetime
    watcher_ids: list[int]


@dataclass
class DispatchReport:
    """Per-target outcome of one publish call."""

    targeted: list[int] = field(default_factory=list)
    delivered: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)
    suppressed: list[int] = field(default_factory=list)
    queued: list[int] = field(default_factory=list)
    realtime: set[int] = field(default_factory=set)
    offline: set[int] = field(default_factory=set)
    emergency_delivered: list[int] = field(default_factory=list)
    emergency_failed: list[int] = field(default_factory=list)

    @property
    def partial(self) -> bool:
        return bool(self.failed) and bool(self.delivered)


class AlertDispatcher:
    """Delivers engine events.

    Every target is isolated: a failing session or notifier call is logged
    and counted in the report, never raised to the publisher.
    """

    def __init__(
        self,
        connections: ConnectionManager,
        notifier: OfflineNotifier,
        settings_store: SettingsStore,
    ) -> None:
        self.connections = connections
        self.notifier = notifier
        self.settings_store = settings_store
        self._handlers = {
            ProximityAlert: self._proximity,
            SOSActivated: self._sos,
            SOSCancelled: self._sos,
            SOSResolved: self._sos_resolved,
            NearbyMessagePosted: self._nearby_message,
            LocationUpdated: self._location_updated,
        }

    def publish(self, event: Any) -> DispatchReport:
        handler = self._handlers.get(type(event))
        if handler is None:
            raise TypeError(f"Unsupported event type: {type(event).__name__}")
        return handler(event)

    def publish_realtime(self, event: SOSActivated | SOSCancelled) -> DispatchReport:
        """Real-time leg of an SOS event only.

        Contacts with offline channels enabled are listed in ``report.queued``
        for a later ``deliver_offline`` call.
        """
        return self._sos(event, realtime=True, offline=False)

    def deliver_offline(self, event: SOSActivated | SOSCancelled, timeout: float | None = None) -> DispatchReport:
        """Offline leg of an SOS event. Sends still pending after ``timeout`` seconds are skipped."""
        return self._sos(event, realtime=False, offline=True, timeout=timeout)

    def push_status(self, user_id: int, status: dict[str, Any]) -> int:
        return self._realtime(user_id, EVENT_SOS_STATUS, status)

    # ---------- channels ----------

    def _realtime(self, user_id: int, event: str, data: dict[str, Any]) -> int:
        try:
            return self.connections.send_to_user(user_id, event, data)
        except Exception:  # noqa: BLE001 - isolate per target
            logger.exception("Realtime push failed: user=%s event=%s", user_id, event)
            return 0

    def _offline(self, message: OfflineMessage, deadline: float | None = None) -> bool:
        if not message.channels:
            return False
        if deadline is not None and time.monotonic() >= deadline:
            logger.warning(
                "Offline notification skipped, deadline passed: user=%s phone=%s",
                message.recipient_user_id,
                message.phone,
            )
            return False
        try:
            self.notifier.send(message)
            return True
        except Exception as exc:  # noqa: BLE001 - isolate per target
            logger.warning(
                "Offline notification failed: user=%s phone=%s error=%s",
                message.recipient_user_id,
                message.phone,
                exc,
            )
            return False

    # ---------- handlers ----------

    def _proximity(self, ev: ProximityAlert) -> DispatchReport:
        data = {
            "userId": ev.nearby_user_id,
            "username": ev.username,
            "fullName": ev.full_name,
            "distanceMeters": round(ev.distance_meters, 1),
            "distance": format_distance(ev.distance_meters),
        }
        report = DispatchReport(targeted=[ev.recipient_id])
        if self._realtime(ev.recipient_id, EVENT_PROXIMITY_ALERT, data):
            report.delivered.append(ev.recipient_id)
            report.realtime.add(ev.recipient_id)
        else:
            report.failed.append(ev.recipient_id)
        return report

    @staticmethod
    def _sos_message(ev: SOSActivated | SOSCancelled) -> tuple[str, dict[str, Any], str, str]:
        if isinstance(ev, SOSCancelled):
            data = {
                "incidentId": ev.incident_id,
                "userId": ev.user_id,
                "name": ev.display_name,
                "cancelledBy": ev.cancelled_by,
                "reason": ev.reason,
            }
            body = f"{ev.display_name} cancelled their SOS alert and is safe."
            return EVENT_SOS_CANCELLED, data, "SOS cancelled", body

        data = {
            "incidentId": ev.incident_id,
            "userId": ev.user_id,
            "name": ev.display_name,
            "triggeredBy": ev.triggered_by,
            "reason": ev.reason,
            "location": (
                {"latitude": ev.latitude, "longitude": ev.longitude}
                if ev.latitude is not None and ev.longitude is not None
                else None
            ),
            "activatedAt": ev.activated_at.isoformat() if ev.activated_at else None,
        }
        where = ""
        if data["location"]:
            where = f" Location: https://maps.google.com/?q={ev.latitude},{ev.longitude}"
        body = f"EMERGENCY: {ev.display_name} needs help." + where
        return EVENT_SOS_ALERT, data, "SOS alert", body

    def _sos(
        self,
        ev: SOSActivated | SOSCancelled,
        realtime: bool = True,
        offline: bool = True,
        timeout: float | None = None,
    ) -> DispatchReport:
        if isinstance(ev, SOSActivated) and ev.dry_run:
            if realtime:
                logger.info("SOS test run: incident=%s contacts suppressed=%s", ev.incident_id, len(ev.contact_ids))
            return DispatchReport(targeted=list(ev.contact_ids), suppressed=list(ev.contact_ids))

        event, data, title, body = self._sos_message(ev)
        report = DispatchReport(targeted=list(ev.contact_ids))
        prefs = self.settings_store.get_many(list(ev.contact_ids))

        if realtime:
            for cid in ev.contact_ids:
                if self._realtime(cid, event, data) > 0:
                    report.realtime.add(cid)
                if not offline and prefs[cid].offline_channels:
                    report.queued.append(cid)

        if offline:
            deadline = time.monotonic() + timeout if timeout is not None else None
            for cid in ev.contact_ids:
                sent = self._offline(
                    OfflineMessage(
                        title=title,
                        body=body,
                        channels=prefs[cid].offline_channels,
                        recipient_user_id=cid,
                        data={"event": event, **data},
                    ),
                    deadline,
                )
                if sent:
                    report.offline.add(cid)
            for rec in ev.emergency_contacts:
                ok = self._offline(
                    OfflineMessage(title="SOS", body=body, channels=["sms"], phone=rec.phone, data=data),
                    deadline,
                )
                (report.emergency_delivered if ok else report.emergency_failed).append(rec.contact_id)

        for cid in ev.contact_ids:
            if cid in report.realtime or cid in report.offline:
                report.delivered.append(cid)
            else:
                report.failed.append(cid)

        if offline and isinstance(ev, SOSActivated) and report.partial:
            logger.warning(
                "SOS partial notification: incident=%s delivered=%s failed=%s",
                ev.incident_id,
                report.delivered,
                report.failed,
            )
        return report

    def _sos_resolved(self, ev: SOSResolved) -> DispatchReport:
        data = {
            "incidentId": ev.incident_id,
            "userId": ev.user_id,
            "name": ev.display_name,
            "resolvedBy": ev.resolved_by,
            "note": ev.note,
        }
        report = DispatchReport(targeted=list(ev.contact_ids))
        for cid in ev.contact_ids:
            if self._realtime(cid, EVENT_SOS_RESOLVED, data):
                report.delivered.append(cid)
                report.realtime.add(cid)
            else:
                report.failed.append(cid)
        return report

    def _nearby_message(self, ev: NearbyMessagePosted) -> DispatchReport:
        report = DispatchReport(targeted=list(ev.distances))
        for rid, meters in ev.distances.items():
            data = {
                "messageId": ev.message_id,
                "senderId": None if ev.is_anonymous else ev.sender_id,
                "senderName": ev.sender_name,
                "message": ev.text,
                "media": ev.media_ref,
                "distanceMeters": round(meters, 1),
                "distance": format_distance(meters),
                "createdAt": ev.created_at.isoformat(),
            }
            if self._realtime(rid, EVENT_NEARBY_MESSAGE, data):
                report.delivered.append(rid)
                report.realtime.add(rid)
            else:
                report.failed.append(rid)
        return report

    def _location_updated(self, ev: LocationUpdated) -> DispatchReport:
        data = {
            "userId": ev.user_id,
            "latitude": ev.latitude,
            "longitude": ev.longitude,
            "accuracy": ev.accuracy,
            "updatedAt": ev.updated_at.isoformat(),
        }
        report = DispatchReport(targeted=list(ev.watcher_ids))
        for wid in ev.watcher_ids:
            if self._realtime(wid, EVENT_LOCATION_UPDATED, data):
                report.delivered.append(wid)
            else:
                report.failed.append(wid)
        return report
