"""Proximity settings API."""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from vicinity.core.deps import get_current_user
from vicinity.db.session import get_db
from vicinity.models.user import User
from vicinity.schemas.settings import ProximitySettingsOut, ProximitySettingsUpdate
from vicinity.services.settings_service import get_or_create_settings, update_settings

router = APIRouter(prefix="/settings", tags=["settings"])


@router.get("/proximity", response_model=ProximitySettingsOut)
def get_proximity_settings(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Get current user's proximity settings. Creates defaults if none exist."""
    return get_or_create_settings(db, current_user.id)


@router.put("/proximity", response_model=ProximitySettingsOut)
def update_proximity_settings(
    data: ProximitySettingsUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Update proximity settings (partial update)."""
    try:
        return update_settings(db, current_user.id, data.model_dump(exclude_unset=True))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
