"""Saved places library."""

from sqlalchemy import select
from sqlalchemy.orm import Session

from vicinity.core.policies import PLACE_KINDS
from vicinity.models.saved_place import SavedPlace


def list_saved_places(db: Session, user_id: int) -> list[SavedPlace]:
    """Newest first."""
    result = db.execute(
        select(SavedPlace)
        .where(SavedPlace.user_id == user_id)
        .order_by(SavedPlace.saved_at.desc(), SavedPlace.id.desc())
    )
    return list(result.scalars().all())


def save_place(
    db: Session,
    user_id: int,
    name: str,
    latitude: float,
    longitude: float,
    kind: str = "place",
    address: str | None = None,
    notes: str | None = None,
    category: str | None = None,
    rating: float | None = None,
    price_level: int | None = None,
) -> SavedPlace:
    name = name.strip()
    if not name:
        raise ValueError("Name is required")
    if kind not in PLACE_KINDS:
        raise ValueError(f"Place type must be one of {', '.join(PLACE_KINDS)}")
    place = SavedPlace(
        user_id=user_id,
        name=name,
        latitude=latitude,
        longitude=longitude,
        kind=kind,
        address=address,
        notes=notes,
        category=category,
        rating=rating,
        price_level=price_level,
    )
    db.add(place)
    db.commit()
    db.refresh(place)
    return place


def remove_saved_place(db: Session, user_id: int, place_id: int) -> None:
    place = db.get(SavedPlace, place_id)
    if not place or place.user_id != user_id:
        raise ValueError("Saved place not found")
    db.delete(place)
    db.commit()
