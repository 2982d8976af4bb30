"""Trusted contact model."""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from vicinity.core.clock import utcnow
from vicinity.db.base import Base


class TrustedContact(Base):
    """Directed link: owner trusts contact. At most five per owner."""

    __tablename__ = "trusted_contacts"
    __table_args__ = (
        UniqueConstraint("owner_id", "contact_user_id", name="uq_trusted_contact_owner_contact"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    owner_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    contact_user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    added_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    last_nearby_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
