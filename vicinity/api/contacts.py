"""Trusted contacts API."""

from fastapi import APIRouter, Depends

from vicinity.core.deps import get_current_user, get_engine, http_error
from vicinity.core.errors import EngineError
from vicinity.models.user import User
from vicinity.schemas.contacts import TrustedContactAdd, TrustedContactOut, TrustedContactsResponse
from vicinity.services.engine import Engine
from vicinity.services.trusted_contacts import ContactEntry

router = APIRouter(prefix="/users/trusted-contacts", tags=["trusted-contacts"])


def _response(entries: list[ContactEntry]) -> TrustedContactsResponse:
    return TrustedContactsResponse(
        trusted_contacts=[
            TrustedContactOut(
                user_id=e.contact_user_id,
                username=e.username,
                full_name=e.full_name,
                added_at=e.added_at,
                last_nearby_at=e.last_nearby_at,
                mutual=e.mutual,
            )
            for e in entries
        ]
    )


@router.get("", response_model=TrustedContactsResponse)
def list_contacts(
    engine: Engine = Depends(get_engine),
    current_user: User = Depends(get_current_user),
):
    return _response(engine.contacts.list(current_user.id))


@router.post("", response_model=TrustedContactsResponse)
def add_contact(
    data: TrustedContactAdd,
    engine: Engine = Depends(get_engine),
    current_user: User = Depends(get_current_user),
):
    """Add a trusted contact (max 5). Adding an existing contact is a no-op."""
    try:
        entries = engine.contacts.add(current_user.id, data.user_id)
    except EngineError as e:
        raise http_error(e)
    return _response(entries)


@router.delete("/{contact_user_id}", response_model=TrustedContactsResponse)
def remove_contact(
    contact_user_id: int,
    engine: Engine = Depends(get_engine),
    current_user: User = Depends(get_current_user),
):
    return _response(engine.contacts.remove(current_user.id, contact_user_id))
