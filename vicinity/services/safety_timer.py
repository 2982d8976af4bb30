"""Safety check-in timers.

A user arms a timer and must check in before the deadline; if the deadline
passes first the watchdog opens an SOS with ``triggered_by="timer-expiry"``.
Expiry, check-in and cancel for one user serialize on the same per-user lock
as the SOS state machine, so whichever commits first wins and the other is a
no-op.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from apscheduler.jobstores.base import JobLookupError
from apscheduler.triggers.date import DateTrigger
from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from vicinity.core.clock import as_utc, utcnow
from vicinity.core.errors import AlreadyActive, InvalidDuration
from vicinity.core.locks import KeyedLocks
from vicinity.core.policies import (
    CHECKIN_CANCELLED,
    CHECKIN_CHECKED_IN,
    CHECKIN_EXPIRED,
    CHECKIN_REPLACED,
    MAX_TIMER_MINUTES,
    MIN_TIMER_MINUTES,
    TRIGGER_TIMER,
)
from vicinity.models.safety_checkin import SafetyCheckIn
from vicinity.services.sos_machine import SOSStateMachine

logger = logging.getLogger(__name__)
audit = logging.getLogger("vicinity.audit")


@dataclass(frozen=True)
class TimerView:
    checkin_id: int
    user_id: int
    duration_minutes: int
    deadline: datetime
    active: bool
    outcome: str | None
    incident_id: int | None
    created_at: datetime

    def remaining_seconds(self, now: datetime | None = None) -> int:
        if not self.active:
            return 0
        now = now or utcnow()
        return max(0, int((self.deadline - now).total_seconds()))


def _view(row: SafetyCheckIn) -> TimerView:
    return TimerView(
        checkin_id=row.id,
        user_id=row.user_id,
        duration_minutes=row.duration_minutes,
        deadline=as_utc(row.deadline),
        active=row.active,
        outcome=row.outcome,
        incident_id=row.incident_id,
        created_at=as_utc(row.created_at),
    )


def validate_duration(minutes: int) -> int:
    """Raise InvalidDuration outside 1 minute .. 24 hours."""
    if isinstance(minutes, bool) or not isinstance(minutes, int):
        raise InvalidDuration("Duration must be a whole number of minutes")
    if not MIN_TIMER_MINUTES <= minutes <= MAX_TIMER_MINUTES:
        raise InvalidDuration(
            f"Duration must be between {MIN_TIMER_MINUTES} and {MAX_TIMER_MINUTES} minutes"
        )
    return minutes


class SafetyTimerWatchdog:
    def __init__(
        self,
        session_factory: sessionmaker,
        locks: KeyedLocks,
        sos: SOSStateMachine,
        scheduler,
    ) -> None:
        self._session_factory = session_factory
        self._locks = locks
        self.sos = sos
        self.scheduler = scheduler

    @staticmethod
    def job_id(user_id: int) -> str:
        return f"safety:{user_id}"

    @staticmethod
    def _active(db: Session, user_id: int) -> SafetyCheckIn | None:
        return db.execute(
            select(SafetyCheckIn)
            .where(SafetyCheckIn.user_id == user_id, SafetyCheckIn.active.is_(True))
            .order_by(SafetyCheckIn.id.desc())
        ).scalars().first()

    def _schedule(self, user_id: int, checkin_id: int, run_at: datetime) -> None:
        self.scheduler.add_job(
            self.expire,
            trigger=DateTrigger(run_date=run_at),
            args=[user_id, checkin_id],
            id=self.job_id(user_id),
            replace_existing=True,
            misfire_grace_time=None,
        )

    def _unschedule(self, user_id: int) -> None:
        try:
            self.scheduler.remove_job(self.job_id(user_id))
        except JobLookupError:
            pass

    def arm(self, user_id: int, duration_minutes: int) -> TimerView:
        """Start a timer, replacing any timer already running."""
        validate_duration(duration_minutes)
        with self._locks.hold(user_id), self._session_factory() as db:
            now = utcnow()
            previous = self._active(db, user_id)
            if previous:
                previous.active = False
                previous.outcome = CHECKIN_REPLACED
                previous.closed_at = now
            row = SafetyCheckIn(
                user_id=user_id,
                duration_minutes=duration_minutes,
                deadline=now + timedelta(minutes=duration_minutes),
                active=True,
                created_at=now,
            )
            db.add(row)
            db.commit()
            db.refresh(row)
            view = _view(row)
            self._schedule(user_id, row.id, view.deadline)
        logger.info("Safety timer armed: user=%s minutes=%s deadline=%s", user_id, duration_minutes, view.deadline)
        return view

    def check_in(self, user_id: int) -> TimerView | None:
        """Stop the running timer. Returns None when nothing was running."""
        return self._close(user_id, CHECKIN_CHECKED_IN)

    def cancel(self, user_id: int) -> TimerView | None:
        return self._close(user_id, CHECKIN_CANCELLED)

    def _close(self, user_id: int, outcome: str) -> TimerView | None:
        with self._locks.hold(user_id), self._session_factory() as db:
            row = self._active(db, user_id)
            if not row:
                return None
            row.active = False
            row.outcome = outcome
            row.closed_at = utcnow()
            db.commit()
            self._unschedule(user_id)
            view = _view(row)
        logger.info("Safety timer closed: user=%s outcome=%s", user_id, outcome)
        return view

    def status(self, user_id: int) -> TimerView | None:
        with self._session_factory() as db:
            row = self._active(db, user_id)
            return _view(row) if row else None

    def expire(self, user_id: int, checkin_id: int) -> int | None:
        """Deadline callback. Returns the SOS incident id, or None if the timer was already closed."""
        with self._locks.hold(user_id), self._session_factory() as db:
            row = db.get(SafetyCheckIn, checkin_id)
            if not row or not row.active:
                return None
            row.active = False
            row.outcome = CHECKIN_EXPIRED
            row.closed_at = utcnow()
            db.commit()
            audit.info("safety.expired user=%s checkin=%s", user_id, checkin_id)

            try:
                result = self.sos.activate(
                    user_id,
                    TRIGGER_TIMER,
                    reason="Safety check-in missed",
                    source="scheduler",
                )
                incident_id = result.incident.incident_id
            except AlreadyActive as exc:
                logger.info(
                    "Safety timer expired while SOS already active: user=%s incident=%s",
                    user_id,
                    exc.incident_id,
                )
                incident_id = exc.incident_id
            row.incident_id = incident_id
            db.commit()
            return incident_id

    def restore(self) -> int:
        """Reschedule timers persisted before a restart. Overdue ones fire now."""
        with self._session_factory() as db:
            rows = db.execute(select(SafetyCheckIn).where(SafetyCheckIn.active.is_(True))).scalars().all()
            pending = [(r.user_id, r.id, as_utc(r.deadline)) for r in rows]
        now = utcnow()
        for user_id, checkin_id, deadline in pending:
            self._schedule(user_id, checkin_id, max(deadline, now))
        return len(pending)
