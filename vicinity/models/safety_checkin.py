"""Safety check-in timer model."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from vicinity.core.clock import utcnow
from vicinity.db.base import Base


class SafetyCheckIn(Base):
    """A deadline the user must check in before. One active row per user."""

    __tablename__ = "safety_checkins"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    deadline: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    outcome: Mapped[str | None] = mapped_column(String(20), nullable=True)  # CHECKED_IN | CANCELLED | EXPIRED | REPLACED
    incident_id: Mapped[int | None] = mapped_column(ForeignKey("sos_incidents.id", ondelete="SET NULL"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
