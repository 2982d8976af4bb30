"""Location updates and the background proximity recompute."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime

from vicinity.core.clock import utcnow
from vicinity.core.policies import FREQ_PERIODIC
from vicinity.services.directory import UserDirectory
from vicinity.services.dispatcher import AlertDispatcher, LocationUpdated, ProximityAlert
from vicinity.services.location_store import LocationSnapshot, LocationStore
from vicinity.services.proximity_index import NearbyMatch, ProximityIndex
from vicinity.services.rate_limiter import AlertRateLimiter
from vicinity.services.settings_service import SettingsStore
from vicinity.services.trusted_contacts import TrustedContactRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NearbyUser:
    user_id: int
    distance_meters: float
    username: str
    full_name: str


class ProximityMonitor:
    """Feeds location updates into the index and turns movement into alerts.

    Updates only mark the mover dirty. ``flush`` (run on a short interval by
    the scheduler) recomputes proximity for everyone who could have gained or
    lost a neighbour: the movers plus users within the maximum radius of
    their old and new positions.
    """

    def __init__(
        self,
        locations: LocationStore,
        index: ProximityIndex,
        limiter: AlertRateLimiter,
        settings_store: SettingsStore,
        contacts: TrustedContactRegistry,
        directory: UserDirectory,
        dispatcher: AlertDispatcher,
        max_radius_m: int = 50000,
    ) -> None:
        self.locations = locations
        self.index = index
        self.limiter = limiter
        self.settings_store = settings_store
        self.contacts = contacts
        self.directory = directory
        self.dispatcher = dispatcher
        self.max_radius_m = max_radius_m
        self._lock = threading.Lock()
        # mover -> position before the move (None if not indexed before)
        self._dirty: dict[int, tuple[float, float] | None] = {}
        self._periodic: set[int] = set()
        # indexed user -> updated_at of the position in the index
        self._seen: dict[int, datetime] = {}

    def warm(self) -> int:
        """Load fresh sharing locations into the index."""
        snaps = self.locations.load_sharing()
        for snap in snaps:
            self.index.upsert(snap.user_id, snap.latitude, snap.longitude, True)
            self._seen[snap.user_id] = snap.updated_at
        logger.info("Proximity index warmed: users=%s", len(snaps))
        return len(snaps)

    def _mark(self, user_id: int, previous: tuple[float, float] | None) -> None:
        with self._lock:
            if user_id not in self._dirty:
                self._dirty[user_id] = previous

    def location_changed(
        self,
        user_id: int,
        latitude: float,
        longitude: float,
        accuracy: float | None = None,
        is_sharing: bool | None = None,
    ) -> LocationSnapshot:
        previous = self.index.position(user_id)
        snap = self.locations.upsert(
            user_id,
            latitude,
            longitude,
            accuracy=accuracy,
            is_sharing=is_sharing,
        )
        self.index.upsert(user_id, snap.latitude, snap.longitude, snap.is_sharing)
        self._mark(user_id, previous)
        with self._lock:
            if snap.is_sharing:
                self._seen[user_id] = snap.updated_at
            else:
                self._seen.pop(user_id, None)

        if snap.is_sharing:
            watchers = self.contacts.location_watchers(user_id)
            if watchers:
                self.dispatcher.publish(
                    LocationUpdated(
                        user_id=user_id,
                        latitude=snap.latitude,
                        longitude=snap.longitude,
                        accuracy=snap.accuracy,
                        updated_at=snap.updated_at,
                        watcher_ids=sorted(watchers),
                    )
                )
        return snap

    def stop_sharing(self, user_id: int) -> None:
        previous = self.index.position(user_id)
        self.locations.set_sharing(user_id, False)
        with self._lock:
            self._seen.pop(user_id, None)
        if self.index.remove(user_id):
            self._mark(user_id, previous)

    def expire_stale(self) -> int:
        """Drop users whose location went stale from the index."""
        expired = self.locations.expire_stale()
        for uid in expired:
            previous = self.index.position(uid)
            with self._lock:
                self._seen.pop(uid, None)
            if self.index.remove(uid):
                self._mark(uid, previous)
        return len(expired)

    def _fresh(self, matches: list[NearbyMatch]) -> list[NearbyMatch]:
        """Drop matches whose position went stale and evict them from the index."""
        cutoff = utcnow() - self.locations.stale_after
        with self._lock:
            stale = {m.user_id for m in matches if m.user_id in self._seen and self._seen[m.user_id] < cutoff}
        if not stale:
            return matches
        for uid in stale:
            previous = self.index.position(uid)
            with self._lock:
                self._seen.pop(uid, None)
            if self.index.remove(uid):
                self._mark(uid, previous)
        logger.debug("Stale positions evicted: users=%s", len(stale))
        return [m for m in matches if m.user_id not in stale]

    def _affected(self, dirty: dict[int, tuple[float, float] | None]) -> set[int]:
        affected: set[int] = set()
        for uid, previous in dirty.items():
            points = [p for p in (previous, self.index.position(uid)) if p is not None]
            if self.index.position(uid) is not None:
                affected.add(uid)
            for lat, lon in points:
                affected.update(m.user_id for m in self.index.within(lat, lon, self.max_radius_m))
        return affected

    def flush(self) -> int:
        """Recompute proximity for affected users. Returns alerts dispatched."""
        with self._lock:
            dirty, self._dirty = self._dirty, {}
            periodic = set(self._periodic)
        if not dirty and not periodic:
            return 0

        watchers = self._affected(dirty) | {uid for uid in periodic if uid in self.index}
        if not watchers:
            return 0
        prefs = self.settings_store.get_many(sorted(watchers))

        sent = 0
        for wid in sorted(watchers):
            p = prefs[wid]
            if not p.alerts_enabled:
                continue
            matches = self._fresh(self.index.query(wid, p.radius_meters))
            with self._lock:
                if p.alert_frequency == FREQ_PERIODIC and matches:
                    self._periodic.add(wid)
                else:
                    self._periodic.discard(wid)

            selected = self.limiter.select(wid, [m.user_id for m in matches])
            if not selected:
                continue
            by_id = {m.user_id: m for m in matches}
            profiles = self.directory.get_many(selected)
            trusted = set(self.contacts.contact_ids(wid))
            for cid in selected:
                profile = profiles.get(cid)
                self.dispatcher.publish(
                    ProximityAlert(
                        recipient_id=wid,
                        nearby_user_id=cid,
                        distance_meters=by_id[cid].distance_meters,
                        username=profile.username if profile else "",
                        full_name=profile.full_name if profile else "",
                    )
                )
                if cid in trusted:
                    self.contacts.touch_nearby(wid, cid)
                sent += 1
        if sent:
            logger.debug("Proximity flush: watchers=%s alerts=%s", len(watchers), sent)
        return sent

    def nearby(self, user_id: int, radius_meters: int | None = None) -> list[NearbyUser]:
        """Who is near the user right now. Works without the user sharing."""
        at = self.index.position(user_id)
        if at is None:
            snap = self.locations.last_known(user_id)
            if snap is None:
                return []
            at = (snap.latitude, snap.longitude)
        if radius_meters is None:
            radius_meters = self.settings_store.get(user_id).radius_meters
        radius_meters = min(radius_meters, self.max_radius_m)

        matches = self._fresh(self.index.query(user_id, radius_meters, at=at))
        profiles = self.directory.get_many([m.user_id for m in matches])
        return [
            NearbyUser(
                user_id=m.user_id,
                distance_meters=m.distance_meters,
                username=profiles[m.user_id].username if m.user_id in profiles else "",
                full_name=profiles[m.user_id].full_name if m.user_id in profiles else "",
            )
            for m in matches
        ]
