"""Distress trigger contract.

Any detector (SOS button, on-device voice keyword spotting, hangout audio
monitor, safety timer) reduces to a discrete ``DistressTrigger``. Detection
internals stay on the client; the server only sees the event.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from vicinity.core.policies import TRIGGERS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DistressTrigger:
    user_id: int
    triggered_by: str
    reason: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    source: str = "api"  # api | ws | scheduler

    def __post_init__(self) -> None:
        if self.triggered_by not in TRIGGERS:
            raise ValueError(f"Unknown trigger '{self.triggered_by}'")
        if (self.latitude is None) != (self.longitude is None):
            raise ValueError("latitude and longitude must be given together")

    @property
    def location(self) -> tuple[float, float] | None:
        if self.latitude is None or self.longitude is None:
            return None
        return (self.latitude, self.longitude)


class DistressTriggerSource:
    """Feeds triggers into a sink (the SOS state machine's ``handle``)."""

    def __init__(self, name: str, sink: Callable[[DistressTrigger], object]) -> None:
        self.name = name
        self._sink = sink

    def emit(self, trigger: DistressTrigger):
        logger.debug("Distress trigger from %s: user=%s kind=%s", self.name, trigger.user_id, trigger.triggered_by)
        return self._sink(trigger)
