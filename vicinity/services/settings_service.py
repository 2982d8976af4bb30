"""Proximity settings read/write."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from vicinity.core.policies import ALERT_FREQUENCIES, MAX_RADIUS_M, MIN_RADIUS_M
from vicinity.models.proximity_settings import ProximitySettings


@dataclass(frozen=True)
class ProximityPreferences:
    """Detached copy of a user's settings, defaults applied when no row exists."""

    user_id: int
    alerts_enabled: bool = True
    radius_meters: int = 5000
    alert_frequency: str = "immediate"
    only_trusted_contacts: bool = False
    sound_enabled: bool = True
    vibration_enabled: bool = True
    show_on_map: bool = True
    nearby_radius_meters: int = 1000
    anonymous_mode: bool = False
    notify_push: bool = True
    notify_sms: bool = True
    notify_email: bool = True

    @property
    def offline_channels(self) -> list[str]:
        channels = []
        if self.notify_push:
            channels.append("push")
        if self.notify_sms:
            channels.append("sms")
        if self.notify_email:
            channels.append("email")
        return channels


def _preferences(row: ProximitySettings) -> ProximityPreferences:
    return ProximityPreferences(
        user_id=row.user_id,
        alerts_enabled=row.alerts_enabled,
        radius_meters=row.radius_meters,
        alert_frequency=row.alert_frequency,
        only_trusted_contacts=row.only_trusted_contacts,
        sound_enabled=row.sound_enabled,
        vibration_enabled=row.vibration_enabled,
        show_on_map=row.show_on_map,
        nearby_radius_meters=row.nearby_radius_meters,
        anonymous_mode=row.anonymous_mode,
        notify_push=row.notify_push,
        notify_sms=row.notify_sms,
        notify_email=row.notify_email,
    )


def get_or_create_settings(db: Session, user_id: int) -> ProximitySettings:
    """Fetch the user's settings row, creating it with defaults on first access."""
    row = db.execute(
        select(ProximitySettings).where(ProximitySettings.user_id == user_id)
    ).scalar_one_or_none()
    if not row:
        row = ProximitySettings(user_id=user_id)
        db.add(row)
        db.commit()
        db.refresh(row)
    return row


def update_settings(db: Session, user_id: int, changes: dict[str, Any]) -> ProximitySettings:
    """Apply a partial update. Raises ValueError on out-of-range values."""
    if "radius_meters" in changes and changes["radius_meters"] is not None:
        radius = changes["radius_meters"]
        if not MIN_RADIUS_M <= radius <= MAX_RADIUS_M:
            raise ValueError(f"radius must be between {MIN_RADIUS_M} and {MAX_RADIUS_M} meters")
    if "alert_frequency" in changes and changes["alert_frequency"] is not None:
        if changes["alert_frequency"] not in ALERT_FREQUENCIES:
            raise ValueError(f"alert frequency must be one of {', '.join(ALERT_FREQUENCIES)}")

    row = get_or_create_settings(db, user_id)
    for field, value in changes.items():
        if value is not None and hasattr(row, field):
            setattr(row, field, value)
    db.commit()
    db.refresh(row)
    return row


class SettingsStore:
    """Session-owning reader used by long-lived engine components."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def get(self, user_id: int) -> ProximityPreferences:
        with self._session_factory() as db:
            row = db.execute(
                select(ProximitySettings).where(ProximitySettings.user_id == user_id)
            ).scalar_one_or_none()
            return _preferences(row) if row else ProximityPreferences(user_id=user_id)

    def get_many(self, user_ids: list[int]) -> dict[int, ProximityPreferences]:
        if not user_ids:
            return {}
        with self._session_factory() as db:
            rows = db.execute(
                select(ProximitySettings).where(ProximitySettings.user_id.in_(user_ids))
            ).scalars().all()
            found = {r.user_id: _preferences(r) for r in rows}
        return {uid: found.get(uid, ProximityPreferences(user_id=uid)) for uid in user_ids}

    def alert_frequency(self, user_id: int) -> str:
        return self.get(user_id).alert_frequency
