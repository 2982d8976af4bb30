"""Location sharing, nearby users, nearby messages and saved places API."""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from vicinity.core.deps import get_current_user, get_engine, http_error
from vicinity.core.errors import LocationUnavailable
from vicinity.db.session import get_db
from vicinity.models.user import User
from vicinity.schemas.location import (
    AcceptedResponse,
    LocationUpdate,
    NearbyMessageCreate,
    NearbyMessageOut,
    NearbyMessagePostResponse,
    NearbyMessagesResponse,
    NearbyUserOut,
    NearbyUsersResponse,
    SavedPlaceCreate,
    SavedPlaceOut,
    SavedPlacesResponse,
)
from vicinity.services.engine import Engine
from vicinity.services.geo import format_distance
from vicinity.services.saved_places import list_saved_places, remove_saved_place, save_place
from vicinity.services.settings_service import update_settings

router = APIRouter(prefix="/location", tags=["location"])


@router.post("/update", response_model=AcceptedResponse)
def update_location(
    data: LocationUpdate,
    db: Session = Depends(get_db),
    engine: Engine = Depends(get_engine),
    current_user: User = Depends(get_current_user),
):
    """Record the caller's position. Omitting isSharing keeps the previous choice.

    sharingRadius, when given, becomes the caller's proximity alert radius.
    """
    if data.sharing_radius is not None:
        update_settings(db, current_user.id, {"radius_meters": data.sharing_radius})
    engine.monitor.location_changed(
        current_user.id,
        data.latitude,
        data.longitude,
        accuracy=data.accuracy,
        is_sharing=data.is_sharing,
    )
    return AcceptedResponse(accepted=True)


@router.get("/nearby-users", response_model=NearbyUsersResponse)
def nearby_users(
    radius: int | None = Query(default=None, ge=1, le=50000),
    engine: Engine = Depends(get_engine),
    current_user: User = Depends(get_current_user),
):
    """Sharing users within radius (meters), nearest first. Empty if the caller has no location."""
    found = engine.monitor.nearby(current_user.id, radius)
    return NearbyUsersResponse(
        nearby_users=[
            NearbyUserOut(
                user_id=n.user_id,
                distance_meters=round(n.distance_meters, 1),
                distance=format_distance(n.distance_meters),
                username=n.username,
                full_name=n.full_name,
            )
            for n in found
        ]
    )


@router.post("/nearby-message", response_model=NearbyMessagePostResponse)
def post_nearby_message(
    data: NearbyMessageCreate,
    engine: Engine = Depends(get_engine),
    current_user: User = Depends(get_current_user),
):
    """Broadcast a short message to users around the caller."""
    try:
        result = engine.nearby.post(
            current_user.id,
            data.message,
            data.radius,
            visibility=data.visibility,
            anonymous=data.anonymous,
            media_ref=data.media,
        )
    except LocationUnavailable as e:
        raise http_error(e)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return NearbyMessagePostResponse(
        recipients=result.recipients,
        message_id=result.message_id,
        expires_at=result.expires_at,
    )


@router.get("/nearby-messages", response_model=NearbyMessagesResponse)
def list_nearby_messages(
    radius: int | None = Query(default=None, ge=1, le=5000),
    engine: Engine = Depends(get_engine),
    current_user: User = Depends(get_current_user),
):
    """Unexpired nearby messages visible to the caller, newest first."""
    views = engine.nearby.recent(current_user.id, radius)
    return NearbyMessagesResponse(
        messages=[
            NearbyMessageOut(
                message_id=v.message_id,
                sender_id=v.sender_id,
                sender_name=v.sender_name,
                message=v.text,
                media=v.media_ref,
                radius=v.radius_meters,
                visibility=v.visibility,
                distance_meters=round(v.distance_meters, 1),
                distance=format_distance(v.distance_meters),
                created_at=v.created_at,
                expires_at=v.expires_at,
                is_own=v.is_own,
            )
            for v in views
        ]
    )


# ---------- Saved places ----------


@router.get("/saved-places", response_model=SavedPlacesResponse)
def get_saved_places(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    places = list_saved_places(db, current_user.id)
    return SavedPlacesResponse(places=[SavedPlaceOut.model_validate(p) for p in places])


@router.post("/saved-places", response_model=SavedPlaceOut, status_code=status.HTTP_201_CREATED)
def create_saved_place(
    data: SavedPlaceCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        place = save_place(
            db,
            current_user.id,
            data.name,
            data.latitude,
            data.longitude,
            kind=data.type,
            address=data.address,
            notes=data.notes,
            category=data.category,
            rating=data.rating,
            price_level=data.price_level,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return SavedPlaceOut.model_validate(place)


@router.delete("/saved-places/{place_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_saved_place(
    place_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        remove_saved_place(db, current_user.id, place_id)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
