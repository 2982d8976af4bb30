"""Domain errors raised by the engine services.

Routes translate these into HTTPException using ``status_code``.
"""

from __future__ import annotations


class EngineError(Exception):
    """Base class for engine errors."""

    status_code = 400
    code = "EngineError"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.code)
        self.message = message or self.code

    def to_detail(self) -> dict:
        return {"error": self.code, "message": self.message}


class AlreadyActive(EngineError):
    """An SOS incident is already active for this user."""

    status_code = 409
    code = "AlreadyActive"

    def __init__(self, incident_id: int, contacts_notified: int) -> None:
        super().__init__(f"SOS incident {incident_id} is already active")
        self.incident_id = incident_id
        self.contacts_notified = contacts_notified

    def to_detail(self) -> dict:
        return {
            "error": self.code,
            "message": self.message,
            "incidentId": self.incident_id,
            "contactsNotified": self.contacts_notified,
        }


class LimitExceeded(EngineError):
    code = "LimitExceeded"


class InvalidDuration(EngineError):
    code = "InvalidDuration"


class LocationUnavailable(EngineError):
    code = "LocationUnavailable"


class InvalidContact(EngineError):
    code = "InvalidContact"


class UserNotFound(EngineError):
    status_code = 404
    code = "UserNotFound"


class NoActiveIncident(EngineError):
    status_code = 404
    code = "NoActiveIncident"


class IncidentNotFound(EngineError):
    status_code = 404
    code = "IncidentNotFound"


class NotAuthorized(EngineError):
    status_code = 403
    code = "NotAuthorized"


class InvalidTransition(EngineError):
    status_code = 409
    code = "InvalidTransition"


class NotificationError(Exception):
    """Raised by an offline notifier when a message could not be handed off."""


class PartialNotificationFailure(EngineError):
    """Some, but not all, contacts were reached.

    Never raised out of an activation; the dispatcher reports it and the
    incident records the reduced contacts_notified.
    """

    status_code = 207
    code = "PartialNotificationFailure"

    def __init__(self, incident_id: int, delivered: int, failed: list[int]) -> None:
        super().__init__(
            f"incident {incident_id}: {delivered} contacts reached, {len(failed)} failed"
        )
        self.incident_id = incident_id
        self.delivered = delivered
        self.failed = failed
