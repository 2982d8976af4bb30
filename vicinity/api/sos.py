"""SOS API."""

from __future__ import annotations

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from vicinity.core.deps import get_current_user, get_engine, http_error
from vicinity.core.errors import EngineError
from vicinity.core.policies import TRIGGER_VOICE
from vicinity.db.session import get_db
from vicinity.models.user import User
from vicinity.schemas.sos import (
    EmergencyContactCreate,
    EmergencyContactOut,
    IncidentOut,
    IncomingIncidentOut,
    SosActivateRequest,
    SosActivateResponse,
    SosCancelRequest,
    SosCancelResponse,
    SosResolveRequest,
    SosVoiceDetectRequest,
)
from vicinity.services.emergency_contacts import (
    add_emergency_contact,
    list_emergency_contacts,
    remove_emergency_contact,
)
from vicinity.services.engine import Engine
from vicinity.services.sos_machine import ActivationResult
from vicinity.services.triggers import DistressTrigger

router = APIRouter(prefix="/location", tags=["sos"])


def _activation_response(result: ActivationResult) -> SosActivateResponse:
    inc = result.incident
    return SosActivateResponse(
        incident_id=inc.incident_id,
        contacts_notified=inc.contacts_notified,
        state=inc.state,
        location_available=inc.location_available,
        dry_run=inc.dry_run,
        created=result.created,
        failed_contacts=result.partial_failure.failed if result.partial_failure else [],
    )


def _emit(engine: Engine, trigger: DistressTrigger) -> SosActivateResponse:
    try:
        result = engine.distress.emit(trigger)
    except EngineError as e:
        raise http_error(e)
    return _activation_response(result)


@router.post("/sos-activate", response_model=SosActivateResponse)
def activate_sos(
    data: SosActivateRequest,
    engine: Engine = Depends(get_engine),
    current_user: User = Depends(get_current_user),
):
    """Open an SOS incident and notify trusted contacts.

    409 with the existing incident id when one is already active.
    triggeredBy=test runs the full flow without notifying anyone.
    """
    loc = data.location
    return _emit(
        engine,
        DistressTrigger(
            user_id=current_user.id,
            triggered_by=data.triggered_by,
            reason=data.reason,
            latitude=loc.latitude if loc else None,
            longitude=loc.longitude if loc else None,
        ),
    )


@router.post("/sos-voice-detect", response_model=SosActivateResponse)
def voice_detect(
    data: SosVoiceDetectRequest,
    engine: Engine = Depends(get_engine),
    current_user: User = Depends(get_current_user),
):
    """Client-side voice detection fired. Same as sos-activate with triggeredBy=voice."""
    loc = data.location
    return _emit(
        engine,
        DistressTrigger(
            user_id=current_user.id,
            triggered_by=TRIGGER_VOICE,
            reason=data.reason,
            latitude=loc.latitude if loc else None,
            longitude=loc.longitude if loc else None,
        ),
    )


@router.post("/sos-cancel", response_model=SosCancelResponse)
def cancel_sos(
    data: SosCancelRequest | None = Body(default=None),
    engine: Engine = Depends(get_engine),
    current_user: User = Depends(get_current_user),
):
    """Cancel the caller's open SOS. Contacts that were alerted get sos_cancelled."""
    reason = data.reason if data else None
    try:
        view = engine.sos.cancel(current_user.id, current_user.id, reason=reason)
    except EngineError as e:
        raise http_error(e)
    return SosCancelResponse(cancelled=True, incident_id=view.incident_id)


@router.get("/sos-status")
def sos_status(
    engine: Engine = Depends(get_engine),
    current_user: User = Depends(get_current_user),
):
    """Authoritative SOS state for the caller."""
    return engine.sos.status(current_user.id)


@router.get("/sos-history", response_model=list[IncidentOut])
def sos_history(
    limit: int = Query(default=20, ge=1, le=100),
    engine: Engine = Depends(get_engine),
    current_user: User = Depends(get_current_user),
):
    """Caller's incidents, newest first."""
    return [IncidentOut.model_validate(v) for v in engine.sos.history(current_user.id, limit)]


@router.get("/sos-incoming", response_model=list[IncomingIncidentOut])
def sos_incoming(
    limit: int = Query(default=20, ge=1, le=100),
    engine: Engine = Depends(get_engine),
    current_user: User = Depends(get_current_user),
):
    """Incidents where the caller was alerted as a trusted contact."""
    out = []
    for item in engine.sos.incoming(current_user.id, limit):
        base = IncidentOut.model_validate(item.incident).model_dump()
        out.append(
            IncomingIncidentOut(
                **base,
                owner_name=item.owner_name,
                notification_status=item.notification_status,
            )
        )
    return out


@router.post("/sos/{incident_id}/resolve", response_model=IncidentOut)
def resolve_sos(
    incident_id: int,
    data: SosResolveRequest | None = Body(default=None),
    engine: Engine = Depends(get_engine),
    current_user: User = Depends(get_current_user),
):
    """Resolve an active incident. Owner or a contact that was alerted."""
    note = data.acknowledgement if data else None
    try:
        view = engine.sos.resolve(incident_id, current_user.id, note=note)
    except EngineError as e:
        raise http_error(e)
    return IncidentOut.model_validate(view)


# ---------- Emergency (SMS) contacts ----------


@router.get("/emergency-contacts", response_model=list[EmergencyContactOut])
def get_emergency_contacts(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Off-platform contacts texted on SOS, primary first."""
    return list_emergency_contacts(db, current_user.id)


@router.post("/emergency-contacts", response_model=EmergencyContactOut, status_code=status.HTTP_201_CREATED)
def create_emergency_contact(
    data: EmergencyContactCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        return add_emergency_contact(
            db,
            current_user.id,
            data.name,
            data.phone,
            relationship=data.relationship,
            is_primary=data.is_primary,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.delete("/emergency-contacts/{contact_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_emergency_contact(
    contact_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        remove_emergency_contact(db, current_user.id, contact_id)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
