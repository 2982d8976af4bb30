"""Emergency (off-platform, SMS) contacts."""

import re

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from vicinity.models.emergency_contact import EmergencyContact

_PHONE_DIGITS = re.compile(r"^\d{10,15}$")


def normalize_phone(phone: str) -> str:
    """Strip formatting. Raises ValueError unless 10-15 digits remain."""
    digits = re.sub(r"[\s\-().]", "", phone or "")
    plus = digits.startswith("+")
    if plus:
        digits = digits[1:]
    if not _PHONE_DIGITS.match(digits):
        raise ValueError("Phone number must contain 10 to 15 digits")
    return ("+" if plus else "") + digits


def list_emergency_contacts(db: Session, owner_id: int) -> list[EmergencyContact]:
    """Primary contact first, then by creation order."""
    result = db.execute(
        select(EmergencyContact)
        .where(EmergencyContact.owner_id == owner_id)
        .order_by(EmergencyContact.is_primary.desc(), EmergencyContact.id)
    )
    return list(result.scalars().all())


def add_emergency_contact(
    db: Session,
    owner_id: int,
    name: str,
    phone: str,
    relationship: str | None = None,
    is_primary: bool = False,
) -> EmergencyContact:
    """Add a contact. Marking it primary clears the flag on the others."""
    phone = normalize_phone(phone)
    name = name.strip()
    if not name:
        raise ValueError("Name is required")

    existing = db.execute(
        select(EmergencyContact).where(
            EmergencyContact.owner_id == owner_id,
            EmergencyContact.phone == phone,
        )
    ).scalar_one_or_none()
    if existing:
        raise ValueError("An emergency contact with this phone number already exists")

    if is_primary:
        db.execute(
            update(EmergencyContact)
            .where(EmergencyContact.owner_id == owner_id)
            .values(is_primary=False)
        )
    contact = EmergencyContact(
        owner_id=owner_id,
        name=name,
        phone=phone,
        relationship=relationship,
        is_primary=is_primary,
    )
    db.add(contact)
    db.commit()
    db.refresh(contact)
    return contact


def remove_emergency_contact(db: Session, owner_id: int, contact_id: int) -> None:
    contact = db.get(EmergencyContact, contact_id)
    if not contact or contact.owner_id != owner_id:
        raise ValueError("Emergency contact not found")
    db.delete(contact)
    db.commit()
