"""Proximity settings schemas."""

from datetime import datetime

from pydantic import Field

from vicinity.schemas.base import BaseSchema


class ProximitySettingsUpdate(BaseSchema):
    alerts_enabled: bool | None = Field(default=None, alias="alertsEnabled")
    radius_meters: int | None = Field(default=None, alias="radiusMeters", ge=50, le=50000)
    alert_frequency: str | None = Field(default=None, alias="alertFrequency", pattern="^(immediate|periodic|once)$")
    only_trusted_contacts: bool | None = Field(default=None, alias="onlyTrustedContacts")
    sound_enabled: bool | None = Field(default=None, alias="soundEnabled")
    vibration_enabled: bool | None = Field(default=None, alias="vibrationEnabled")
    show_on_map: bool | None = Field(default=None, alias="showOnMap")
    nearby_radius_meters: int | None = Field(default=None, alias="nearbyRadiusMeters", ge=1, le=5000)
    anonymous_mode: bool | None = Field(default=None, alias="anonymousMode")
    voice_detection_enabled: bool | None = Field(default=None, alias="voiceDetectionEnabled")
    auto_send_on_distress: bool | None = Field(default=None, alias="autoSendOnDistress")
    background_monitoring: bool | None = Field(default=None, alias="backgroundMonitoring")
    notify_push: bool | None = Field(default=None, alias="notifyPush")
    notify_sms: bool | None = Field(default=None, alias="notifySms")
    notify_email: bool | None = Field(default=None, alias="notifyEmail")


class ProximitySettingsOut(BaseSchema):
    user_id: int = Field(alias="userId")
    alerts_enabled: bool = Field(alias="alertsEnabled")
    radius_meters: int = Field(alias="radiusMeters")
    alert_frequency: str = Field(alias="alertFrequency")
    only_trusted_contacts: bool = Field(alias="onlyTrustedContacts")
    sound_enabled: bool = Field(alias="soundEnabled")
    vibration_enabled: bool = Field(alias="vibrationEnabled")
    show_on_map: bool = Field(alias="showOnMap")
    nearby_radius_meters: int = Field(alias="nearbyRadiusMeters")
    anonymous_mode: bool = Field(alias="anonymousMode")
    voice_detection_enabled: bool = Field(alias="voiceDetectionEnabled")
    auto_send_on_distress: bool = Field(alias="autoSendOnDistress")
    background_monitoring: bool = Field(alias="backgroundMonitoring")
    notify_push: bool = Field(alias="notifyPush")
    notify_sms: bool = Field(alias="notifySms")
    notify_email: bool = Field(alias="notifyEmail")
    updated_at: datetime = Field(alias="updatedAt")
