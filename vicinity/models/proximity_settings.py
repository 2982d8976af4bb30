"""Per-user proximity, nearby messaging and SOS preferences."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from vicinity.db.base import Base


class ProximitySettings(Base):
    __tablename__ = "proximity_settings"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)

    # Proximity alerts
    alerts_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    radius_meters: Mapped[int] = mapped_column(Integer, nullable=False, default=5000)
    alert_frequency: Mapped[str] = mapped_column(String(20), nullable=False, default="immediate")  # immediate | periodic | once
    only_trusted_contacts: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    sound_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    vibration_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    show_on_map: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Nearby messaging
    nearby_radius_meters: Mapped[int] = mapped_column(Integer, nullable=False, default=1000)
    anonymous_mode: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # SOS protection (client-side detectors; stored for sync only)
    voice_detection_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    auto_send_on_distress: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    background_monitoring: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Offline channels used when this user is notified as a contact
    notify_push: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notify_sms: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notify_email: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
