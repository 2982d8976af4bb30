"""Grid-bucketed spatial index over sharing users."""

from __future__ import annotations

import math
import threading
from collections.abc import Iterable
from dataclasses import dataclass

from vicinity.services.geo import degrees_for_meters, haversine_m
from vicinity.services.relationships import RelationshipDirectory
from vicinity.services.settings_service import SettingsStore
from vicinity.services.trusted_contacts import TrustedContactRegistry

Cell = tuple[int, int]


@dataclass(frozen=True)
class NearbyMatch:
    user_id: int
    distance_meters: float


class ProximityAudience:
    """Who an origin user is allowed to see.

    Blocked relations are hidden in both directions. When the origin has
    ``only_trusted_contacts`` set, results are restricted to its visible
    trusted contacts.
    """

    def __init__(
        self,
        relationships: RelationshipDirectory,
        contacts: TrustedContactRegistry,
        settings_store: SettingsStore,
    ) -> None:
        self.relationships = relationships
        self.contacts = contacts
        self.settings_store = settings_store

    def excluded(self, origin_id: int) -> set[int]:
        return self.relationships.blocked_with(origin_id)

    def allowed(self, origin_id: int) -> set[int] | None:
        """Allow-list for the origin, or None when unrestricted."""
        if self.settings_store.get(origin_id).only_trusted_contacts:
            return self.contacts.visible_contacts(origin_id)
        return None


class ProximityIndex:
    """In-memory index of users currently sharing their location.

    Writers take a short lock to move a user between cells. Readers copy the
    candidate points under the same lock and compute distances outside it,
    so queries never observe a half-applied move and never block writers for
    the length of a scan.
    """

    def __init__(self, cell_degrees: float = 0.01, audience: ProximityAudience | None = None) -> None:
        if cell_degrees <= 0:
            raise ValueError("cell_degrees must be positive")
        self.cell_degrees = cell_degrees
        self.audience = audience
        self._lock = threading.Lock()
        self._points: dict[int, tuple[float, float]] = {}
        self._cells: dict[Cell, set[int]] = {}

    def _cell(self, lat: float, lon: float) -> Cell:
        return (math.floor(lat / self.cell_degrees), math.floor(lon / self.cell_degrees))

    def upsert(self, user_id: int, lat: float, lon: float, sharing: bool = True) -> None:
        if not sharing:
            self.remove(user_id)
            return
        new_cell = self._cell(lat, lon)
        with self._lock:
            old = self._points.get(user_id)
            if old is not None:
                old_cell = self._cell(*old)
                if old_cell != new_cell:
                    self._discard(old_cell, user_id)
            self._points[user_id] = (lat, lon)
            self._cells.setdefault(new_cell, set()).add(user_id)

    def remove(self, user_id: int) -> bool:
        with self._lock:
            old = self._points.pop(user_id, None)
            if old is None:
                return False
            self._discard(self._cell(*old), user_id)
            return True

    def _discard(self, cell: Cell, user_id: int) -> None:
        members = self._cells.get(cell)
        if members is not None:
            members.discard(user_id)
            if not members:
                del self._cells[cell]

    def position(self, user_id: int) -> tuple[float, float] | None:
        with self._lock:
            return self._points.get(user_id)

    def __contains__(self, user_id: int) -> bool:
        with self._lock:
            return user_id in self._points

    def __len__(self) -> int:
        with self._lock:
            return len(self._points)

    def _candidates(self, lat: float, lon: float, radius_m: float) -> list[tuple[int, float, float]]:
        dlat, dlon = degrees_for_meters(radius_m, lat)
        lat_lo, lat_hi = lat - dlat, lat + dlat
        lon_lo, lon_hi = lon - dlon, lon + dlon
        wraps = lat_lo < -90 or lat_hi > 90 or lon_lo < -180 or lon_hi > 180 or math.isinf(dlon)

        with self._lock:
            if not wraps:
                i_lo, j_lo = self._cell(lat_lo, lon_lo)
                i_hi, j_hi = self._cell(lat_hi, lon_hi)
                span = (i_hi - i_lo + 1) * (j_hi - j_lo + 1)
            if wraps or span > len(self._cells):
                # cheaper to walk every populated cell
                return [(uid, p[0], p[1]) for uid, p in self._points.items()]
            out: list[tuple[int, float, float]] = []
            for i in range(i_lo, i_hi + 1):
                for j in range(j_lo, j_hi + 1):
                    for uid in self._cells.get((i, j), ()):
                        p = self._points[uid]
                        out.append((uid, p[0], p[1]))
            return out

    def within(
        self,
        lat: float,
        lon: float,
        radius_m: float,
        exclude: Iterable[int] = (),
    ) -> list[NearbyMatch]:
        """Pure geometry: sharing users within ``radius_m`` of a point."""
        if radius_m < 0:
            return []
        skip = set(exclude)
        matches = []
        for uid, plat, plon in self._candidates(lat, lon, radius_m):
            if uid in skip:
                continue
            d = haversine_m(lat, lon, plat, plon)
            if d <= radius_m:
                matches.append(NearbyMatch(user_id=uid, distance_meters=d))
        matches.sort(key=lambda m: (m.distance_meters, m.user_id))
        return matches

    def query(
        self,
        origin_user_id: int,
        radius_m: float,
        at: tuple[float, float] | None = None,
    ) -> list[NearbyMatch]:
        """Users near the origin, nearest first.

        The origin's indexed position is used unless ``at`` is given (a user
        may look around without sharing). Excludes the origin and anyone not
        sharing, and applies the audience rules when an audience is
        configured. Empty when the origin has no position.
        """
        origin = at if at is not None else self.position(origin_user_id)
        if origin is None:
            return []
        exclude = {origin_user_id}
        allowed = None
        if self.audience is not None:
            exclude |= self.audience.excluded(origin_user_id)
            allowed = self.audience.allowed(origin_user_id)
        matches = self.within(origin[0], origin[1], radius_m, exclude=exclude)
        if allowed is not None:
            matches = [m for m in matches if m.user_id in allowed]
        return matches
