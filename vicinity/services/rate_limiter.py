"""Proximity alert rate limiting.

Three policies, chosen per user by their ``alert_frequency`` setting:

- ``immediate``: at most one alert per (user, candidate) pair per cooldown.
- ``periodic``: at most one alert per user per interval, for a candidate
  picked at random among those currently nearby.
- ``once``: one alert per pair for as long as the candidate stays in radius.
  Leaving the radius re-arms the pair.

State is in memory and evicted after ``ttl_seconds`` of inactivity.
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from vicinity.core.locks import KeyedLocks
from vicinity.core.policies import FREQ_ONCE, FREQ_PERIODIC

logger = logging.getLogger(__name__)


@dataclass
class _UserAlertState:
    touched: float
    pair_last: dict[int, float] = field(default_factory=dict)
    once_sent: set[int] = field(default_factory=set)
    in_radius: set[int] = field(default_factory=set)
    last_periodic: float | None = None


class AlertRateLimiter:
    def __init__(
        self,
        frequency_for: Callable[[int], str],
        cooldown_seconds: float = 60.0,
        periodic_seconds: float = 15.0,
        ttl_seconds: float = 3600.0,
        clock: Callable[[], float] = time.monotonic,
        rng: random.Random | None = None,
    ) -> None:
        self._frequency_for = frequency_for
        self.cooldown_seconds = cooldown_seconds
        self.periodic_seconds = periodic_seconds
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._rng = rng or random.Random()
        self._locks = KeyedLocks()
        self._states: dict[int, _UserAlertState] = {}

    def _state(self, user_id: int, now: float) -> _UserAlertState:
        state = self._states.get(user_id)
        if state is None:
            state = self._states.setdefault(user_id, _UserAlertState(touched=now))
        state.touched = now
        return state

    def should_alert(self, user_id: int, candidate_id: int) -> bool:
        """Check and record a single alert for a candidate known to be in radius."""
        frequency = self._frequency_for(user_id)
        with self._locks.hold(user_id):
            now = self._clock()
            state = self._state(user_id, now)
            state.in_radius.add(candidate_id)
            if frequency == FREQ_ONCE:
                if candidate_id in state.once_sent:
                    return False
                state.once_sent.add(candidate_id)
                return True
            if frequency == FREQ_PERIODIC:
                if state.last_periodic is not None and now - state.last_periodic < self.periodic_seconds:
                    return False
                state.last_periodic = now
                return True
            last = state.pair_last.get(candidate_id)
            if last is not None and now - last < self.cooldown_seconds:
                return False
            state.pair_last[candidate_id] = now
            return True

    def select(self, user_id: int, nearby_ids: Iterable[int]) -> list[int]:
        """Candidates to alert ``user_id`` about, given everyone currently nearby.

        Also records departures: a candidate missing from ``nearby_ids`` is
        treated as having left the radius.
        """
        nearby = list(dict.fromkeys(nearby_ids))
        frequency = self._frequency_for(user_id)
        with self._locks.hold(user_id):
            now = self._clock()
            state = self._state(user_id, now)
            current = set(nearby)
            for gone in state.in_radius - current:
                state.once_sent.discard(gone)
            state.in_radius = current
            if not nearby:
                return []

            if frequency == FREQ_ONCE:
                fresh = [c for c in nearby if c not in state.once_sent]
                state.once_sent.update(fresh)
                return fresh

            if frequency == FREQ_PERIODIC:
                if state.last_periodic is not None and now - state.last_periodic < self.periodic_seconds:
                    return []
                state.last_periodic = now
                return [self._rng.choice(sorted(nearby))]

            chosen = []
            for c in nearby:
                last = state.pair_last.get(c)
                if last is None or now - last >= self.cooldown_seconds:
                    state.pair_last[c] = now
                    chosen.append(c)
            return chosen

    def departed(self, user_id: int, candidate_id: int) -> None:
        with self._locks.hold(user_id):
            state = self._states.get(user_id)
            if state:
                state.in_radius.discard(candidate_id)
                state.once_sent.discard(candidate_id)

    def forget(self, user_id: int) -> None:
        with self._locks.hold(user_id):
            self._states.pop(user_id, None)

    def evict_expired(self) -> int:
        """Drop per-user state idle for longer than the TTL."""
        now = self._clock()
        cutoff = now - self.ttl_seconds
        stale = [uid for uid, s in list(self._states.items()) if s.touched < cutoff]
        for uid in stale:
            with self._locks.hold(uid):
                state = self._states.get(uid)
                if state and state.touched < cutoff:
                    del self._states[uid]
        if stale:
            logger.debug("Alert state evicted: users=%s", len(stale))
        return len(stale)

    def tracked_users(self) -> int:
        return len(self._states)
