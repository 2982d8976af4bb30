"""SOS incident model."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from vicinity.core.clock import utcnow
from vicinity.db.base import Base


class SosIncident(Base):
    """Emergency incident. Rows are never deleted; terminal rows are frozen."""

    __tablename__ = "sos_incidents"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    # Equals user_id while arming/active, NULL once terminal. Unique, so the
    # database rejects a second open incident for the same user.
    open_user_id: Mapped[int | None] = mapped_column(Integer, unique=True, nullable=True)
    state: Mapped[str] = mapped_column(String(20), nullable=False)  # arming | active | cancelled | resolved
    triggered_by: Mapped[str] = mapped_column(String(20), nullable=False)  # manual | voice | timer-expiry | test
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    dry_run: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    location_available: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    contacts_notified: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    arming_until: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    activated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    resolved_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    resolution_note: Mapped[str | None] = mapped_column(Text, nullable=True)
