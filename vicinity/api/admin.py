"""Administrator overrides for SOS incidents."""

from fastapi import APIRouter, Body, Depends

from vicinity.core.deps import get_engine, http_error, require_admin
from vicinity.core.errors import EngineError
from vicinity.models.user import User
from vicinity.schemas.sos import IncidentOut, SosCancelRequest, SosResolveRequest
from vicinity.services.engine import Engine

router = APIRouter(prefix="/admin/sos", tags=["admin"])


@router.post("/{user_id}/cancel", response_model=IncidentOut)
def admin_cancel(
    user_id: int,
    data: SosCancelRequest | None = Body(default=None),
    engine: Engine = Depends(get_engine),
    admin: User = Depends(require_admin),
):
    """Cancel a user's open SOS on their behalf."""
    try:
        view = engine.sos.cancel(user_id, admin.id, reason=data.reason if data else None, is_admin=True)
    except EngineError as e:
        raise http_error(e)
    return IncidentOut.model_validate(view)


@router.post("/incidents/{incident_id}/resolve", response_model=IncidentOut)
def admin_resolve(
    incident_id: int,
    data: SosResolveRequest | None = Body(default=None),
    engine: Engine = Depends(get_engine),
    admin: User = Depends(require_admin),
):
    try:
        view = engine.sos.resolve(
            incident_id,
            admin.id,
            note=data.acknowledgement if data else None,
            is_admin=True,
        )
    except EngineError as e:
        raise http_error(e)
    return IncidentOut.model_validate(view)


@router.get("/incidents/{incident_id}", response_model=IncidentOut)
def admin_get(
    incident_id: int,
    engine: Engine = Depends(get_engine),
    admin: User = Depends(require_admin),
):
    try:
        return IncidentOut.model_validate(engine.sos.get(incident_id))
    except EngineError as e:
        raise http_error(e)
