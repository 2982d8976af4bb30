"""Latest known position and sharing flag per user."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.orm import sessionmaker

from vicinity.core.clock import as_utc, utcnow
from vicinity.models.user_location import UserLocation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LocationSnapshot:
    """Immutable copy of a UserLocation row."""

    user_id: int
    latitude: float
    longitude: float
    accuracy: float | None
    is_sharing: bool
    updated_at: datetime

    def is_stale(self, now: datetime, window: timedelta) -> bool:
        return now - self.updated_at > window


def _snapshot(row: UserLocation) -> LocationSnapshot:
    return LocationSnapshot(
        user_id=row.user_id,
        latitude=row.latitude,
        longitude=row.longitude,
        accuracy=row.accuracy,
        is_sharing=row.is_sharing,
        updated_at=as_utc(row.updated_at),
    )


class LocationStore:
    """Owns the user_locations table.

    A record older than ``stale_after`` reads as not sharing even before the
    periodic sweep flips the stored flag.
    """

    def __init__(self, session_factory: sessionmaker, stale_after: timedelta) -> None:
        self._session_factory = session_factory
        self.stale_after = stale_after

    def upsert(
        self,
        user_id: int,
        latitude: float,
        longitude: float,
        *,
        accuracy: float | None = None,
        is_sharing: bool | None = None,
    ) -> LocationSnapshot:
        """Record a position. ``is_sharing=None`` keeps the previous flag."""
        with self._session_factory() as db:
            row = db.execute(
                select(UserLocation).where(UserLocation.user_id == user_id)
            ).scalar_one_or_none()
            now = utcnow()
            if row:
                row.latitude = latitude
                row.longitude = longitude
                row.accuracy = accuracy
                if is_sharing is not None:
                    row.is_sharing = is_sharing
                row.updated_at = now
            else:
                row = UserLocation(
                    user_id=user_id,
                    latitude=latitude,
                    longitude=longitude,
                    accuracy=accuracy,
                    is_sharing=bool(is_sharing),
                    updated_at=now,
                )
                db.add(row)
            db.commit()
            db.refresh(row)
            return _snapshot(row)

    def set_sharing(self, user_id: int, is_sharing: bool) -> LocationSnapshot | None:
        with self._session_factory() as db:
            row = db.execute(
                select(UserLocation).where(UserLocation.user_id == user_id)
            ).scalar_one_or_none()
            if not row:
                return None
            row.is_sharing = is_sharing
            db.commit()
            db.refresh(row)
            return _snapshot(row)

    def get(self, user_id: int) -> LocationSnapshot | None:
        """Current record with staleness applied to ``is_sharing``."""
        snap = self.last_known(user_id)
        if snap and snap.is_sharing and snap.is_stale(utcnow(), self.stale_after):
            return LocationSnapshot(
                user_id=snap.user_id,
                latitude=snap.latitude,
                longitude=snap.longitude,
                accuracy=snap.accuracy,
                is_sharing=False,
                updated_at=snap.updated_at,
            )
        return snap

    def last_known(self, user_id: int) -> LocationSnapshot | None:
        """Raw last position, regardless of sharing or age."""
        with self._session_factory() as db:
            row = db.execute(
                select(UserLocation).where(UserLocation.user_id == user_id)
            ).scalar_one_or_none()
            return _snapshot(row) if row else None

    def load_sharing(self) -> list[LocationSnapshot]:
        """All fresh, sharing records. Used to warm the proximity index."""
        cutoff = utcnow() - self.stale_after
        with self._session_factory() as db:
            rows = db.execute(
                select(UserLocation).where(
                    UserLocation.is_sharing.is_(True),
                    UserLocation.updated_at >= cutoff,
                )
            ).scalars().all()
            return [_snapshot(r) for r in rows]

    def expire_stale(self) -> list[int]:
        """Flip sharing off for records past the staleness window."""
        cutoff = utcnow() - self.stale_after
        with self._session_factory() as db:
            user_ids = list(
                db.execute(
                    select(UserLocation.user_id).where(
                        UserLocation.is_sharing.is_(True),
                        UserLocation.updated_at < cutoff,
                    )
                ).scalars().all()
            )
            if user_ids:
                db.execute(
                    update(UserLocation)
                    .where(UserLocation.user_id.in_(user_ids))
                    .values(is_sharing=False)
                )
                db.commit()
                logger.info("Location sharing expired: users=%s", user_ids)
            return user_ids
