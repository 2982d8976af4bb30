"""SQLAlchemy models."""

from __future__ import annotations

from vicinity.models.emergency_contact import EmergencyContact
from vicinity.models.nearby_message import NearbyMessage
from vicinity.models.proximity_settings import ProximitySettings
from vicinity.models.saved_place import SavedPlace
from vicinity.models.safety_checkin import SafetyCheckIn
from vicinity.models.sos_incident import SosIncident
from vicinity.models.sos_notification import SosNotification
from vicinity.models.trusted_contact import TrustedContact
from vicinity.models.user import User
from vicinity.models.user_location import UserLocation
from vicinity.models.user_relation import UserRelation

__all__ = [
    "User",
    "EmergencyContact",
    "NearbyMessage",
    "ProximitySettings",
    "SavedPlace",
    "SafetyCheckIn",
    "SosIncident",
    "SosNotification",
    "TrustedContact",
    "UserLocation",
    "UserRelation",
]
