"""SOS schemas."""

from datetime import datetime

from pydantic import Field

from vicinity.schemas.base import BaseSchema, GeoPoint


class SosActivateRequest(BaseSchema):
    location: GeoPoint | None = None
    triggered_by: str = Field(default="manual", alias="triggeredBy", pattern="^(manual|voice|test)$")
    reason: str | None = Field(default=None, max_length=500)


class SosVoiceDetectRequest(BaseSchema):
    reason: str = Field(default="Voice distress keyword detected", max_length=500)
    location: GeoPoint | None = None


class SosActivateResponse(BaseSchema):
    incident_id: int = Field(alias="incidentId")
    contacts_notified: int = Field(alias="contactsNotified")
    state: str
    location_available: bool = Field(alias="locationAvailable")
    dry_run: bool = Field(alias="dryRun")
    created: bool
    failed_contacts: list[int] = Field(default_factory=list, alias="failedContacts")


class SosCancelRequest(BaseSchema):
    reason: str | None = Field(default=None, max_length=500)


class SosCancelResponse(BaseSchema):
    cancelled: bool = True
    incident_id: int = Field(alias="incidentId")


class SosResolveRequest(BaseSchema):
    acknowledgement: str | None = Field(default=None, max_length=500)


class IncidentOut(BaseSchema):
    incident_id: int = Field(alias="incidentId")
    user_id: int = Field(alias="userId")
    state: str
    triggered_by: str = Field(alias="triggeredBy")
    reason: str | None
    dry_run: bool = Field(alias="dryRun")
    latitude: float | None
    longitude: float | None
    location_available: bool = Field(alias="locationAvailable")
    contacts_notified: int = Field(alias="contactsNotified")
    created_at: datetime = Field(alias="createdAt")
    activated_at: datetime | None = Field(alias="activatedAt")
    cancelled_at: datetime | None = Field(alias="cancelledAt")
    cancelled_by: int | None = Field(alias="cancelledBy")
    resolved_at: datetime | None = Field(alias="resolvedAt")
    resolved_by: int | None = Field(alias="resolvedBy")
    resolution_note: str | None = Field(alias="resolutionNote")


class IncomingIncidentOut(IncidentOut):
    owner_name: str = Field(alias="ownerName")
    notification_status: str = Field(alias="notificationStatus")


class EmergencyContactCreate(BaseSchema):
    name: str = Field(min_length=1, max_length=120)
    phone: str = Field(min_length=10, max_length=20)
    relationship: str | None = Field(default=None, max_length=50)
    is_primary: bool = Field(default=False, alias="isPrimary")


class EmergencyContactOut(BaseSchema):
    id: int
    name: str
    phone: str
    relationship: str | None
    is_primary: bool = Field(alias="isPrimary")
