"""Ephemeral, radius-scoped broadcast messages."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import delete, select
from sqlalchemy.orm import sessionmaker

from vicinity.core.clock import as_utc, utcnow
from vicinity.core.errors import LocationUnavailable
from vicinity.core.policies import (
    MAX_NEARBY_MESSAGE_LENGTH,
    VIS_CLOSE_FRIENDS,
    VIS_FOLLOWERS,
    VIS_PRIVATE,
    VIS_PUBLIC,
    VISIBILITIES,
)
from vicinity.models.nearby_message import NearbyMessage
from vicinity.services.directory import UserDirectory
from vicinity.services.dispatcher import AlertDispatcher, NearbyMessagePosted
from vicinity.services.geo import haversine_m
from vicinity.services.location_store import LocationStore
from vicinity.services.proximity_index import ProximityIndex
from vicinity.services.relationships import RelationshipDirectory
from vicinity.services.settings_service import SettingsStore
from vicinity.services.trusted_contacts import TrustedContactRegistry

logger = logging.getLogger(__name__)

ANONYMOUS_NAME = "Anonymous"


@dataclass(frozen=True)
class PostResult:
    message_id: int
    recipients: int
    expires_at: datetime


@dataclass(frozen=True)
class NearbyMessageView:
    message_id: int
    sender_id: int | None  # None for anonymous messages from other users
    sender_name: str
    text: str | None
    media_ref: str | None
    radius_meters: int
    visibility: str
    distance_meters: float
    created_at: datetime
    expires_at: datetime
    is_own: bool


class NearbyBroadcastChannel:
    """Messages are visible to users within the smaller of the sender's
    radius and the reader's radius, subject to the message's visibility.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        locations: LocationStore,
        index: ProximityIndex,
        relationships: RelationshipDirectory,
        contacts: TrustedContactRegistry,
        settings_store: SettingsStore,
        directory: UserDirectory,
        dispatcher: AlertDispatcher,
        retention: timedelta = timedelta(minutes=60),
        max_radius_m: int = 5000,
    ) -> None:
        self._session_factory = session_factory
        self.locations = locations
        self.index = index
        self.relationships = relationships
        self.contacts = contacts
        self.settings_store = settings_store
        self.directory = directory
        self.dispatcher = dispatcher
        self.retention = retention
        self.max_radius_m = max_radius_m

    def _audience(self, sender_id: int, visibility: str) -> set[int] | None:
        """Allow-list for a visibility, or None for public."""
        if visibility == VIS_PUBLIC:
            return None
        if visibility == VIS_FOLLOWERS:
            return self.relationships.followers_of(sender_id)
        if visibility == VIS_CLOSE_FRIENDS:
            return self.relationships.close_friends_of(sender_id)
        if visibility == VIS_PRIVATE:
            # private = the sender's trusted contacts
            return set(self.contacts.contact_ids(sender_id))
        raise ValueError(f"Unknown visibility '{visibility}'")

    def post(
        self,
        sender_id: int,
        text: str | None,
        radius_meters: int,
        visibility: str = VIS_PUBLIC,
        anonymous: bool | None = None,
        media_ref: str | None = None,
    ) -> PostResult:
        text = (text or "").strip() or None
        if text is None and not media_ref:
            raise ValueError("Message text or media is required")
        if text and len(text) > MAX_NEARBY_MESSAGE_LENGTH:
            raise ValueError(f"Message must be at most {MAX_NEARBY_MESSAGE_LENGTH} characters")
        if not 1 <= radius_meters <= self.max_radius_m:
            raise ValueError(f"Radius must be between 1 and {self.max_radius_m} meters")
        if visibility not in VISIBILITIES:
            raise ValueError(f"Visibility must be one of {', '.join(VISIBILITIES)}")

        origin = self.locations.last_known(sender_id)
        if origin is None:
            raise LocationUnavailable("Your location is not available")
        if anonymous is None:
            anonymous = self.settings_store.get(sender_id).anonymous_mode

        now = utcnow()
        with self._session_factory() as db:
            msg = NearbyMessage(
                sender_id=sender_id,
                text=text,
                media_ref=media_ref,
                latitude=origin.latitude,
                longitude=origin.longitude,
                radius_meters=radius_meters,
                visibility=visibility,
                is_anonymous=anonymous,
                created_at=now,
                expires_at=now + self.retention,
            )
            db.add(msg)
            db.commit()
            db.refresh(msg)
            message_id = msg.id
            expires_at = as_utc(msg.expires_at)

        blocked = self.relationships.blocked_with(sender_id)
        allowed = self._audience(sender_id, visibility)
        distances = {
            m.user_id: m.distance_meters
            for m in self.index.within(origin.latitude, origin.longitude, radius_meters, exclude={sender_id})
            if m.user_id not in blocked and (allowed is None or m.user_id in allowed)
        }
        sender_name = ANONYMOUS_NAME if anonymous else self.directory.display_name(sender_id)
        self.dispatcher.publish(
            NearbyMessagePosted(
                message_id=message_id,
                sender_id=sender_id,
                sender_name=sender_name,
                is_anonymous=anonymous,
                text=text,
                media_ref=media_ref,
                created_at=now,
                distances=distances,
            )
        )
        logger.info(
            "Nearby message posted: id=%s sender=%s radius=%s visibility=%s recipients=%s",
            message_id,
            sender_id,
            radius_meters,
            visibility,
            len(distances),
        )
        return PostResult(message_id=message_id, recipients=len(distances), expires_at=expires_at)

    def recent(self, viewer_id: int, radius_meters: int | None = None) -> list[NearbyMessageView]:
        """Unexpired messages the viewer can see from where they are, newest first."""
        here = self.locations.last_known(viewer_id)
        if here is None:
            return []
        if radius_meters is None:
            radius_meters = self.settings_store.get(viewer_id).nearby_radius_meters
        radius_meters = min(radius_meters, self.max_radius_m)

        with self._session_factory() as db:
            rows = db.execute(
                select(NearbyMessage)
                .where(NearbyMessage.expires_at > utcnow())
                .order_by(NearbyMessage.created_at.desc(), NearbyMessage.id.desc())
            ).scalars().all()
            messages = list(rows)
            db.expunge_all()

        blocked = self.relationships.blocked_with(viewer_id)
        audiences: dict[tuple[int, str], set[int] | None] = {}
        sender_ids = list({m.sender_id for m in messages})
        names = self.directory.get_many(sender_ids)

        out = []
        for msg in messages:
            own = msg.sender_id == viewer_id
            if not own:
                if msg.sender_id in blocked:
                    continue
                key = (msg.sender_id, msg.visibility)
                if key not in audiences:
                    audiences[key] = self._audience(msg.sender_id, msg.visibility)
                allowed = audiences[key]
                if allowed is not None and viewer_id not in allowed:
                    continue
            d = haversine_m(here.latitude, here.longitude, msg.latitude, msg.longitude)
            if not own and d > min(radius_meters, msg.radius_meters):
                continue
            hidden = msg.is_anonymous and not own
            profile = names.get(msg.sender_id)
            out.append(
                NearbyMessageView(
                    message_id=msg.id,
                    sender_id=None if hidden else msg.sender_id,
                    sender_name=ANONYMOUS_NAME if hidden else (profile.display_name if profile else ""),
                    text=msg.text,
                    media_ref=msg.media_ref,
                    radius_meters=msg.radius_meters,
                    visibility=msg.visibility,
                    distance_meters=d,
                    created_at=as_utc(msg.created_at),
                    expires_at=as_utc(msg.expires_at),
                    is_own=own,
                )
            )
        return out

    def purge_expired(self) -> int:
        with self._session_factory() as db:
            result = db.execute(delete(NearbyMessage).where(NearbyMessage.expires_at <= utcnow()))
            db.commit()
        if result.rowcount:
            logger.info("Nearby messages purged: count=%s", result.rowcount)
        return result.rowcount or 0
