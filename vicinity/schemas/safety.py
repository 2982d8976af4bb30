"""Safety check-in timer schemas."""

from datetime import datetime

from pydantic import Field

from vicinity.schemas.base import BaseSchema


class SafetyTimerCreate(BaseSchema):
    duration_minutes: int = Field(alias="durationMinutes")


class SafetyTimerOut(BaseSchema):
    checkin_id: int = Field(alias="checkinId")
    active: bool
    duration_minutes: int = Field(alias="durationMinutes")
    deadline: datetime
    remaining_seconds: int = Field(alias="remainingSeconds")
    outcome: str | None
    incident_id: int | None = Field(alias="incidentId")


class SafetyTimerState(BaseSchema):
    active: bool
    timer: SafetyTimerOut | None = None
