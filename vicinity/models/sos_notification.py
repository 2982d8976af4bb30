"""Per-contact delivery record for an SOS incident."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from vicinity.core.clock import utcnow
from vicinity.db.base import Base


class SosNotification(Base):
    """Exactly one of contact_user_id / emergency_contact_id is set."""

    __tablename__ = "sos_notifications"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    incident_id: Mapped[int] = mapped_column(ForeignKey("sos_incidents.id", ondelete="CASCADE"), nullable=False, index=True)
    contact_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True)
    emergency_contact_id: Mapped[int | None] = mapped_column(
        ForeignKey("emergency_contacts.id", ondelete="SET NULL"), nullable=True
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False)  # PENDING | NOTIFIED | FAILED | SUPPRESSED | ACKNOWLEDGED
    realtime_delivered: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    offline_delivered: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    notified_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    acknowledged_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
