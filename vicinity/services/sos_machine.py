"""SOS incident lifecycle.

    idle --activate--> arming --timeout--> active --cancel--> cancelled
                         |                   \\--resolve--> resolved
                         \\--cancel--> cancelled

"idle" is the absence of an open (arming or active) incident. Transitions
for one user serialize on that user's lock; the unique ``open_user_id``
column backs the at-most-one-open-incident rule at the database level.
"""

from __future__ import annotations

import logging
from concurrent.futures import Executor, Future
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from apscheduler.jobstores.base import JobLookupError
from apscheduler.triggers.date import DateTrigger
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from vicinity.core.clock import as_utc, utcnow
from vicinity.core.errors import (
    AlreadyActive,
    IncidentNotFound,
    InvalidTransition,
    NoActiveIncident,
    NotAuthorized,
    PartialNotificationFailure,
)
from vicinity.core.locks import KeyedLocks
from vicinity.core.policies import (
    MAX_HISTORY_LIMIT,
    NOTIFY_ACKNOWLEDGED,
    NOTIFY_FAILED,
    NOTIFY_NOTIFIED,
    NOTIFY_PENDING,
    NOTIFY_SUPPRESSED,
    STATE_ACTIVE,
    STATE_ARMING,
    STATE_CANCELLED,
    STATE_IDLE,
    STATE_RESOLVED,
    TERMINAL_STATES,
    TRIGGER_TEST,
    TRIGGERS,
)
from vicinity.models.emergency_contact import EmergencyContact
from vicinity.models.sos_incident import SosIncident
from vicinity.models.sos_notification import SosNotification
from vicinity.services.directory import UserDirectory
from vicinity.services.dispatcher import (
    AlertDispatcher,
    DispatchReport,
    EmergencyRecipient,
    SOSActivated,
    SOSCancelled,
    SOSResolved,
)
from vicinity.services.emergency_contacts import list_emergency_contacts
from vicinity.services.location_store import LocationStore
from vicinity.services.trusted_contacts import TrustedContactRegistry
from vicinity.services.triggers import DistressTrigger

logger = logging.getLogger(__name__)
audit = logging.getLogger("vicinity.audit")

_REACHED = (NOTIFY_NOTIFIED, NOTIFY_ACKNOWLEDGED)
# cancellations also go to contacts whose offline alert may still land
_ALERTED = (NOTIFY_PENDING, NOTIFY_NOTIFIED, NOTIFY_ACKNOWLEDGED)


@dataclass(frozen=True)
class IncidentView:
    incident_id: int
    user_id: int
    state: str
    triggered_by: str
    reason: str | None
    dry_run: bool
    latitude: float | None
    longitude: float | None
    location_available: bool
    contacts_notified: int
    created_at: datetime
    arming_until: datetime | None
    activated_at: datetime | None
    cancelled_at: datetime | None
    cancelled_by: int | None
    resolved_at: datetime | None
    resolved_by: int | None
    resolution_note: str | None

    @property
    def is_open(self) -> bool:
        return self.state not in TERMINAL_STATES


@dataclass(frozen=True)
class ActivationResult:
    incident: IncidentView
    created: bool
    partial_failure: PartialNotificationFailure | None = None


@dataclass(frozen=True)
class IncomingIncident:
    incident: IncidentView
    owner_name: str
    notification_status: str


@dataclass(frozen=True)
class _OfflineJob:
    incident_id: int
    user_id: int
    event: SOSActivated | SOSCancelled


def _view(inc: SosIncident) -> IncidentView:
    return IncidentView(
        incident_id=inc.id,
        user_id=inc.user_id,
        state=inc.state,
        triggered_by=inc.triggered_by,
        reason=inc.reason,
        dry_run=inc.dry_run,
        latitude=inc.latitude,
        longitude=inc.longitude,
        location_available=inc.location_available,
        contacts_notified=inc.contacts_notified,
        created_at=as_utc(inc.created_at),
        arming_until=as_utc(inc.arming_until),
        activated_at=as_utc(inc.activated_at),
        cancelled_at=as_utc(inc.cancelled_at),
        cancelled_by=inc.cancelled_by,
        resolved_at=as_utc(inc.resolved_at),
        resolved_by=inc.resolved_by,
        resolution_note=inc.resolution_note,
    )


def status_payload(view: IncidentView | None) -> dict[str, Any]:
    """Snapshot pushed to the owner's sessions and returned by sos-status."""
    if view is None or not view.is_open:
        return {"isActive": False, "state": STATE_IDLE, "incidentId": None}
    return {
        "isActive": True,
        "state": view.state,
        "incidentId": view.incident_id,
        "triggeredBy": view.triggered_by,
        "dryRun": view.dry_run,
        "locationAvailable": view.location_available,
        "contactsNotified": view.contacts_notified,
        "createdAt": view.created_at.isoformat() if view.created_at else None,
        "activatedAt": view.activated_at.isoformat() if view.activated_at else None,
        "armingUntil": view.arming_until.isoformat() if view.arming_until else None,
    }


class SOSStateMachine:
    def __init__(
        self,
        session_factory: sessionmaker,
        locks: KeyedLocks,
        locations: LocationStore,
        contacts: TrustedContactRegistry,
        dispatcher: AlertDispatcher,
        directory: UserDirectory,
        scheduler=None,
        arming_seconds: int = 0,
        executor: Executor | None = None,
        offline_timeout: float | None = None,
    ) -> None:
        if arming_seconds > 0 and scheduler is None:
            raise ValueError("An arming countdown needs a scheduler")
        self._session_factory = session_factory
        self._locks = locks
        self.locations = locations
        self.contacts = contacts
        self.dispatcher = dispatcher
        self.directory = directory
        self.scheduler = scheduler
        self.arming_seconds = arming_seconds
        self.executor = executor
        self.offline_timeout = offline_timeout

    # ---------- queries ----------

    @staticmethod
    def _open(db: Session, user_id: int) -> SosIncident | None:
        return db.execute(
            select(SosIncident).where(SosIncident.open_user_id == user_id)
        ).scalar_one_or_none()

    def current(self, user_id: int) -> IncidentView | None:
        with self._session_factory() as db:
            inc = self._open(db, user_id)
            return _view(inc) if inc else None

    def status(self, user_id: int) -> dict[str, Any]:
        return status_payload(self.current(user_id))

    def get(self, incident_id: int) -> IncidentView:
        with self._session_factory() as db:
            inc = db.get(SosIncident, incident_id)
            if not inc:
                raise IncidentNotFound(f"Incident {incident_id} not found")
            return _view(inc)

    def history(self, user_id: int, limit: int = 20) -> list[IncidentView]:
        """User's incidents, newest first."""
        limit = max(1, min(limit, MAX_HISTORY_LIMIT))
        with self._session_factory() as db:
            rows = db.execute(
                select(SosIncident)
                .where(SosIncident.user_id == user_id)
                .order_by(SosIncident.created_at.desc(), SosIncident.id.desc())
                .limit(limit)
            ).scalars().all()
            return [_view(r) for r in rows]

    def incoming(self, contact_user_id: int, limit: int = 20) -> list[IncomingIncident]:
        """Incidents the user was notified about as a trusted contact, newest first."""
        limit = max(1, min(limit, MAX_HISTORY_LIMIT))
        with self._session_factory() as db:
            rows = db.execute(
                select(SosIncident, SosNotification.status)
                .join(SosNotification, SosNotification.incident_id == SosIncident.id)
                .where(
                    SosNotification.contact_user_id == contact_user_id,
                    SosNotification.status.in_(_REACHED),
                )
                .order_by(SosIncident.created_at.desc(), SosIncident.id.desc())
                .limit(limit)
            ).all()
            views = [(_view(inc), status) for inc, status in rows]
        names = self.directory.get_many(list({v.user_id for v, _ in views}))
        return [
            IncomingIncident(
                incident=v,
                owner_name=names[v.user_id].display_name if v.user_id in names else "",
                notification_status=status,
            )
            for v, status in views
        ]

    # ---------- transitions ----------

    def handle(self, trigger: DistressTrigger) -> ActivationResult:
        """Sink for DistressTriggerSource."""
        return self.activate(
            trigger.user_id,
            trigger.triggered_by,
            location=trigger.location,
            reason=trigger.reason,
            source=trigger.source,
        )

    def activate(
        self,
        user_id: int,
        triggered_by: str,
        location: tuple[float, float] | None = None,
        reason: str | None = None,
        source: str = "api",
    ) -> ActivationResult:
        """Open an incident for the user.

        A repeat call while arming returns the arming incident. A call while
        active raises AlreadyActive. Without an explicit location the last
        known position is used; with neither, the incident is recorded
        without one.
        """
        if triggered_by not in TRIGGERS:
            raise ValueError(f"Unknown trigger '{triggered_by}'")

        with self._locks.hold(user_id), self._session_factory() as db:
            existing = self._open(db, user_id)
            if existing:
                return self._repeat(existing, triggered_by, source)

            if location is None:
                snap = self.locations.last_known(user_id)
                if snap:
                    location = (snap.latitude, snap.longitude)
            if location is None:
                logger.warning("LocationUnavailable: SOS for user=%s proceeds without a location", user_id)

            now = utcnow()
            arming = self.arming_seconds > 0
            incident = SosIncident(
                user_id=user_id,
                open_user_id=user_id,
                state=STATE_ARMING if arming else STATE_ACTIVE,
                triggered_by=triggered_by,
                reason=reason,
                dry_run=triggered_by == TRIGGER_TEST,
                latitude=location[0] if location else None,
                longitude=location[1] if location else None,
                location_available=location is not None,
                contacts_notified=0,
                created_at=now,
                arming_until=now + timedelta(seconds=self.arming_seconds) if arming else None,
                activated_at=None if arming else now,
            )
            db.add(incident)
            try:
                db.commit()
            except IntegrityError:
                # another worker opened one first
                db.rollback()
                existing = self._open(db, user_id)
                if existing is None:
                    raise
                return self._repeat(existing, triggered_by, source)
            db.refresh(incident)

            audit.info(
                "sos.activate user=%s incident=%s trigger=%s source=%s state=%s location=%s dry_run=%s",
                user_id,
                incident.id,
                triggered_by,
                source,
                incident.state,
                incident.location_available,
                incident.dry_run,
            )

            job = None
            if arming:
                self._schedule_promotion(incident.id, incident.arming_until)
            else:
                job = self._notify(db, incident)
            view = _view(incident)

        self.dispatcher.push_status(user_id, status_payload(view))
        partial = None
        if job is not None:
            settled = self._run_offline(job)
            if settled is not None:
                view, partial = settled
        return ActivationResult(incident=view, created=True, partial_failure=partial)

    def _repeat(self, existing: SosIncident, triggered_by: str, source: str) -> ActivationResult:
        audit.info(
            "sos.activate.repeat user=%s incident=%s state=%s trigger=%s source=%s",
            existing.user_id,
            existing.id,
            existing.state,
            triggered_by,
            source,
        )
        if existing.state == STATE_ARMING:
            return ActivationResult(incident=_view(existing), created=False)
        raise AlreadyActive(existing.id, existing.contacts_notified)

    def promote(self, incident_id: int) -> IncidentView | None:
        """End of the arming countdown. No-op unless still arming."""
        with self._session_factory() as db:
            inc = db.get(SosIncident, incident_id)
            if not inc:
                return None
            user_id = inc.user_id

        with self._locks.hold(user_id), self._session_factory() as db:
            inc = db.get(SosIncident, incident_id)
            if not inc or inc.state != STATE_ARMING:
                return None
            inc.state = STATE_ACTIVE
            inc.activated_at = utcnow()
            db.commit()
            audit.info("sos.promote user=%s incident=%s", user_id, incident_id)
            job = self._notify(db, inc)
            view = _view(inc)

        self.dispatcher.push_status(user_id, status_payload(view))
        if job is not None:
            settled = self._run_offline(job)
            if settled is not None:
                view = settled[0]
        return view

    def cancel(
        self,
        user_id: int,
        actor_id: int,
        reason: str | None = None,
        is_admin: bool = False,
    ) -> IncidentView:
        """Cancel the user's open incident.

        From arming nothing was sent yet. From active, every contact that
        was reached gets a cancellation.
        """
        if actor_id != user_id and not is_admin:
            raise NotAuthorized("Only the owner or an administrator can cancel this SOS")

        with self._locks.hold(user_id), self._session_factory() as db:
            inc = self._open(db, user_id)
            if not inc:
                raise NoActiveIncident("No active SOS to cancel")
            was_arming = inc.state == STATE_ARMING
            inc.state = STATE_CANCELLED
            inc.open_user_id = None
            inc.cancelled_at = utcnow()
            inc.cancelled_by = actor_id
            if reason:
                inc.resolution_note = reason
            db.commit()
            view = _view(inc)
            audit.info(
                "sos.cancel user=%s incident=%s by=%s admin=%s from=%s",
                user_id,
                inc.id,
                actor_id,
                is_admin,
                STATE_ARMING if was_arming else STATE_ACTIVE,
            )

            job = None
            if was_arming:
                self._unschedule_promotion(inc.id)
            else:
                contact_ids, emergency = self._reached(db, inc.id, _ALERTED)
                if contact_ids or emergency:
                    event = SOSCancelled(
                        incident_id=inc.id,
                        user_id=user_id,
                        display_name=self.directory.display_name(user_id),
                        contact_ids=contact_ids,
                        emergency_contacts=emergency,
                        cancelled_by=actor_id,
                        reason=reason,
                    )
                    self.dispatcher.publish_realtime(event)
                    job = _OfflineJob(inc.id, user_id, event)

        self.dispatcher.push_status(user_id, status_payload(None))
        if job is not None:
            self._run_offline(job)
        return view

    def resolve(
        self,
        incident_id: int,
        actor_id: int,
        note: str | None = None,
        is_admin: bool = False,
    ) -> IncidentView:
        """Close an active incident on external acknowledgement.

        Allowed for the owner, an administrator, or a contact that was
        notified (recorded as that contact's acknowledgement).
        """
        with self._session_factory() as db:
            inc = db.get(SosIncident, incident_id)
            if not inc:
                raise IncidentNotFound(f"Incident {incident_id} not found")
            user_id = inc.user_id

        with self._locks.hold(user_id), self._session_factory() as db:
            inc = db.get(SosIncident, incident_id)
            if inc.state != STATE_ACTIVE:
                raise InvalidTransition(f"Cannot resolve an incident that is {inc.state}")

            ack = db.execute(
                select(SosNotification).where(
                    SosNotification.incident_id == incident_id,
                    SosNotification.contact_user_id == actor_id,
                    SosNotification.status.in_(_REACHED),
                )
            ).scalar_one_or_none()
            if actor_id != user_id and not is_admin and ack is None:
                raise NotAuthorized("Only the owner, an administrator or a notified contact can resolve")

            now = utcnow()
            if ack is not None:
                ack.status = NOTIFY_ACKNOWLEDGED
                ack.acknowledged_at = now
            inc.state = STATE_RESOLVED
            inc.open_user_id = None
            inc.resolved_at = now
            inc.resolved_by = actor_id
            inc.resolution_note = note
            db.commit()
            view = _view(inc)
            audit.info("sos.resolve user=%s incident=%s by=%s admin=%s", user_id, incident_id, actor_id, is_admin)

            contact_ids, _ = self._reached(db, incident_id)
            if contact_ids:
                self.dispatcher.publish(
                    SOSResolved(
                        incident_id=incident_id,
                        user_id=user_id,
                        display_name=self.directory.display_name(user_id),
                        contact_ids=contact_ids,
                        resolved_by=actor_id,
                        note=note,
                    )
                )

        self.dispatcher.push_status(user_id, status_payload(None))
        return view

    # ---------- fan-out ----------

    def _notify(self, db: Session, inc: SosIncident) -> _OfflineJob | None:
        """Real-time leg of an activation. Caller holds the user lock.

        Contacts reached live are NOTIFIED straight away, those waiting on
        push/SMS/email are PENDING until ``_settle``.
        """
        contact_ids = self.contacts.contact_ids(inc.user_id)
        emergency = [
            EmergencyRecipient(contact_id=c.id, name=c.name, phone=c.phone)
            for c in list_emergency_contacts(db, inc.user_id)
        ]
        event = SOSActivated(
            incident_id=inc.id,
            user_id=inc.user_id,
            display_name=self.directory.display_name(inc.user_id),
            triggered_by=inc.triggered_by,
            contact_ids=contact_ids,
            emergency_contacts=[] if inc.dry_run else emergency,
            reason=inc.reason,
            latitude=inc.latitude,
            longitude=inc.longitude,
            dry_run=inc.dry_run,
            activated_at=as_utc(inc.activated_at),
        )
        report = self.dispatcher.publish_realtime(event)
        self._record(db, inc, contact_ids, event.emergency_contacts, report)
        inc.contacts_notified = 0 if inc.dry_run else len(report.realtime)
        db.commit()

        audit.info(
            "sos.notify.realtime incident=%s targeted=%s realtime=%s queued=%s suppressed=%s sms=%s",
            inc.id,
            len(report.targeted),
            len(report.realtime),
            len(report.queued),
            len(report.suppressed),
            len(event.emergency_contacts),
        )
        if inc.dry_run:
            return None
        return _OfflineJob(inc.id, inc.user_id, event)

    def _run_offline(self, job: _OfflineJob) -> tuple[IncidentView, PartialNotificationFailure | None] | None:
        """Offline leg, on the executor when there is one, else inline.

        Returns the settled incident when it ran inline.
        """
        if self.executor is None:
            return self._deliver(job)
        future = self.executor.submit(self._deliver, job)
        future.add_done_callback(self._log_failure)
        return None

    @staticmethod
    def _log_failure(future: Future) -> None:
        exc = future.exception()
        if exc is not None:
            logger.error("Offline SOS delivery crashed", exc_info=exc)

    def _deliver(self, job: _OfflineJob) -> tuple[IncidentView, PartialNotificationFailure | None] | None:
        report = self.dispatcher.deliver_offline(job.event, timeout=self.offline_timeout)
        if isinstance(job.event, SOSCancelled):
            audit.info(
                "sos.cancel.offline incident=%s offline=%s sms=%s",
                job.incident_id,
                len(report.offline),
                len(report.emergency_delivered),
            )
            return None
        return self._settle(job, report)

    def _settle(
        self, job: _OfflineJob, report: DispatchReport
    ) -> tuple[IncidentView, PartialNotificationFailure | None]:
        """Fold offline outcomes into the notification rows and contactsNotified."""
        sms_ok = set(report.emergency_delivered)
        with self._locks.hold(job.user_id), self._session_factory() as db:
            inc = db.get(SosIncident, job.incident_id)
            rows = db.execute(
                select(SosNotification)
                .where(SosNotification.incident_id == job.incident_id)
                .order_by(SosNotification.id)
            ).scalars().all()
            for row in rows:
                if row.contact_user_id is not None:
                    if row.contact_user_id in report.offline:
                        row.offline_delivered = True
                        if row.status == NOTIFY_PENDING:
                            row.status = NOTIFY_NOTIFIED
                    elif row.status == NOTIFY_PENDING:
                        row.status = NOTIFY_FAILED
                elif row.status == NOTIFY_PENDING:
                    ok = row.emergency_contact_id in sms_ok
                    row.status = NOTIFY_NOTIFIED if ok else NOTIFY_FAILED
                    row.offline_delivered = ok
            contacts = [r for r in rows if r.contact_user_id is not None]
            delivered = [r.contact_user_id for r in contacts if r.status in _REACHED]
            failed = [r.contact_user_id for r in contacts if r.status == NOTIFY_FAILED]
            inc.contacts_notified = len(delivered)
            db.commit()
            view = _view(inc)

        audit.info(
            "sos.notify incident=%s targeted=%s delivered=%s failed=%s sms=%s",
            job.incident_id,
            len(contacts),
            len(delivered),
            len(failed),
            len(sms_ok),
        )
        if view.is_open:
            self.dispatcher.push_status(job.user_id, status_payload(view))
        if failed:
            partial = PartialNotificationFailure(job.incident_id, len(delivered), failed)
            audit.warning("sos.partial_failure %s", partial.message)
            return view, partial
        return view, None

    @staticmethod
    def _record(
        db: Session,
        inc: SosIncident,
        contact_ids: list[int],
        emergency: list[EmergencyRecipient],
        report: DispatchReport,
    ) -> None:
        queued = set(report.queued)
        for cid in contact_ids:
            if inc.dry_run:
                status = NOTIFY_SUPPRESSED
            elif cid in report.realtime:
                status = NOTIFY_NOTIFIED
            elif cid in queued:
                status = NOTIFY_PENDING
            else:
                status = NOTIFY_FAILED
            db.add(
                SosNotification(
                    incident_id=inc.id,
                    contact_user_id=cid,
                    status=status,
                    realtime_delivered=cid in report.realtime,
                )
            )
        for rec in emergency:
            db.add(
                SosNotification(
                    incident_id=inc.id,
                    emergency_contact_id=rec.contact_id,
                    status=NOTIFY_PENDING,
                )
            )

    @staticmethod
    def _reached(
        db: Session, incident_id: int, statuses: tuple[str, ...] = _REACHED
    ) -> tuple[list[int], list[EmergencyRecipient]]:
        """Contacts and emergency contacts whose notification is in ``statuses``."""
        rows = db.execute(
            select(SosNotification)
            .where(
                SosNotification.incident_id == incident_id,
                SosNotification.status.in_(statuses),
            )
            .order_by(SosNotification.id)
        ).scalars().all()
        contact_ids = [r.contact_user_id for r in rows if r.contact_user_id is not None]
        emergency_ids = [r.emergency_contact_id for r in rows if r.emergency_contact_id is not None]
        emergency = []
        if emergency_ids:
            for c in db.execute(select(EmergencyContact).where(EmergencyContact.id.in_(emergency_ids))).scalars():
                emergency.append(EmergencyRecipient(contact_id=c.id, name=c.name, phone=c.phone))
        return contact_ids, emergency

    # ---------- arming jobs ----------

    @staticmethod
    def _job_id(incident_id: int) -> str:
        return f"sos-arm:{incident_id}"

    def _schedule_promotion(self, incident_id: int, run_at: datetime) -> None:
        self.scheduler.add_job(
            self.promote,
            trigger=DateTrigger(run_date=run_at),
            args=[incident_id],
            id=self._job_id(incident_id),
            replace_existing=True,
            misfire_grace_time=None,
        )

    def _unschedule_promotion(self, incident_id: int) -> None:
        if self.scheduler is None:
            return
        try:
            self.scheduler.remove_job(self._job_id(incident_id))
        except JobLookupError:
            pass

    def restore(self) -> int:
        """Reschedule countdowns for incidents left arming by a restart."""
        with self._session_factory() as db:
            rows = db.execute(select(SosIncident).where(SosIncident.state == STATE_ARMING)).scalars().all()
            pending = [(r.id, as_utc(r.arming_until) or utcnow()) for r in rows]
        for incident_id, run_at in pending:
            if self.scheduler is None:
                self.promote(incident_id)
            else:
                self._schedule_promotion(incident_id, max(run_at, utcnow()))
        return len(pending)
