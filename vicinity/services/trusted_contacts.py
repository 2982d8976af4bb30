"""Trusted contact registry."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from vicinity.core.clock import as_utc, utcnow
from vicinity.core.errors import InvalidContact, LimitExceeded, UserNotFound
from vicinity.core.locks import KeyedLocks
from vicinity.core.policies import MAX_TRUSTED_CONTACTS
from vicinity.models.trusted_contact import TrustedContact
from vicinity.models.user import User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ContactEntry:
    contact_user_id: int
    username: str
    full_name: str
    added_at: datetime
    last_nearby_at: datetime | None
    mutual: bool


class TrustedContactRegistry:
    """Bounded per-owner list of trusted contacts.

    The list is directed: owner -> contact. SOS notification goes to the
    owner's list as-is. Proximity visibility can additionally require the
    contact to list the owner back (``require_mutual``).
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        limit: int = MAX_TRUSTED_CONTACTS,
        require_mutual: bool = True,
    ) -> None:
        self._session_factory = session_factory
        self.limit = limit
        self.require_mutual = require_mutual
        self._locks = KeyedLocks()

    def add(self, owner_id: int, contact_user_id: int) -> list[ContactEntry]:
        """Add a contact. Re-adding an existing contact is a no-op."""
        if owner_id == contact_user_id:
            raise InvalidContact("You cannot add yourself as a trusted contact")

        with self._locks.hold(owner_id), self._session_factory() as db:
            contact = db.get(User, contact_user_id)
            if not contact or not contact.is_active:
                raise UserNotFound(f"User {contact_user_id} not found")

            existing = db.execute(
                select(TrustedContact).where(
                    TrustedContact.owner_id == owner_id,
                    TrustedContact.contact_user_id == contact_user_id,
                )
            ).scalar_one_or_none()
            if existing:
                return self._entries(db, owner_id)

            count = db.execute(
                select(func.count()).select_from(TrustedContact).where(TrustedContact.owner_id == owner_id)
            ).scalar_one()
            if count >= self.limit:
                raise LimitExceeded(f"Maximum {self.limit} trusted contacts allowed")

            db.add(TrustedContact(owner_id=owner_id, contact_user_id=contact_user_id, added_at=utcnow()))
            try:
                db.commit()
            except IntegrityError:
                # concurrent add of the same pair from another worker
                db.rollback()
            logger.info("Trusted contact added: owner=%s contact=%s", owner_id, contact_user_id)
            return self._entries(db, owner_id)

    def remove(self, owner_id: int, contact_user_id: int) -> list[ContactEntry]:
        with self._locks.hold(owner_id), self._session_factory() as db:
            row = db.execute(
                select(TrustedContact).where(
                    TrustedContact.owner_id == owner_id,
                    TrustedContact.contact_user_id == contact_user_id,
                )
            ).scalar_one_or_none()
            if row:
                db.delete(row)
                db.commit()
                logger.info("Trusted contact removed: owner=%s contact=%s", owner_id, contact_user_id)
            return self._entries(db, owner_id)

    def list(self, owner_id: int) -> list[ContactEntry]:
        with self._session_factory() as db:
            return self._entries(db, owner_id)

    def contact_ids(self, owner_id: int) -> list[int]:
        """Contacts eligible for SOS notification, oldest first."""
        with self._session_factory() as db:
            return list(
                db.execute(
                    select(TrustedContact.contact_user_id)
                    .where(TrustedContact.owner_id == owner_id)
                    .order_by(TrustedContact.added_at, TrustedContact.id)
                ).scalars().all()
            )

    def watchers_of(self, user_id: int) -> set[int]:
        """Owners who list ``user_id`` as a trusted contact."""
        with self._session_factory() as db:
            return set(
                db.execute(
                    select(TrustedContact.owner_id).where(TrustedContact.contact_user_id == user_id)
                ).scalars().all()
            )

    def visible_contacts(self, owner_id: int) -> set[int]:
        """Contacts ``owner_id`` may see on a trusted-only proximity query."""
        listed = set(self.contact_ids(owner_id))
        if not self.require_mutual:
            return listed
        return listed & self.watchers_of(owner_id)

    def location_watchers(self, user_id: int) -> set[int]:
        """Owners allowed to follow ``user_id``'s live location."""
        watchers = self.watchers_of(user_id)
        if not self.require_mutual:
            return watchers
        return watchers & set(self.contact_ids(user_id))

    def touch_nearby(self, owner_id: int, contact_user_id: int) -> None:
        with self._session_factory() as db:
            row = db.execute(
                select(TrustedContact).where(
                    TrustedContact.owner_id == owner_id,
                    TrustedContact.contact_user_id == contact_user_id,
                )
            ).scalar_one_or_none()
            if row:
                row.last_nearby_at = utcnow()
                db.commit()

    def _entries(self, db: Session, owner_id: int) -> list[ContactEntry]:
        rows = db.execute(
            select(TrustedContact, User)
            .join(User, User.id == TrustedContact.contact_user_id)
            .where(TrustedContact.owner_id == owner_id)
            .order_by(TrustedContact.added_at, TrustedContact.id)
        ).all()
        back = set(
            db.execute(
                select(TrustedContact.owner_id).where(TrustedContact.contact_user_id == owner_id)
            ).scalars().all()
        )
        return [
            ContactEntry(
                contact_user_id=link.contact_user_id,
                username=user.username,
                full_name=user.full_name,
                added_at=as_utc(link.added_at),
                last_nearby_at=as_utc(link.last_nearby_at),
                mutual=link.contact_user_id in back,
            )
            for link, user in rows
        ]
