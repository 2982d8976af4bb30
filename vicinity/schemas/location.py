"""Location, nearby users and nearby message schemas."""

from datetime import datetime

from pydantic import AliasChoices, Field, field_validator

from vicinity.schemas.base import BaseSchema


class LocationUpdate(BaseSchema):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    is_sharing: bool | None = Field(default=None, alias="isSharing")
    accuracy: float | None = Field(default=None, ge=0)
    sharing_radius: int | None = Field(default=None, alias="sharingRadius", ge=50, le=50000)


class AcceptedResponse(BaseSchema):
    accepted: bool = True


class NearbyUserOut(BaseSchema):
    user_id: int = Field(alias="userId")
    distance_meters: float = Field(alias="distanceMeters")
    distance: str
    username: str
    full_name: str = Field(alias="fullName")


class NearbyUsersResponse(BaseSchema):
    nearby_users: list[NearbyUserOut] = Field(alias="nearbyUsers")


class NearbyMessageCreate(BaseSchema):
    message: str | None = Field(default=None, max_length=500)
    radius: int = Field(default=1000, ge=1)
    anonymous: bool | None = None
    visibility: str = Field(default="public", pattern="^(public|followers|close_friends|private)$")
    media: str | None = Field(default=None, max_length=500)

    @field_validator("message")
    @classmethod
    def strip_message(cls, v: str | None) -> str | None:
        if v is None:
            return v
        return v.strip() or None


class NearbyMessagePostResponse(BaseSchema):
    recipients: int
    message_id: int = Field(alias="messageId")
    expires_at: datetime = Field(alias="expiresAt")


class NearbyMessageOut(BaseSchema):
    message_id: int = Field(alias="messageId")
    sender_id: int | None = Field(alias="senderId")
    sender_name: str = Field(alias="senderName")
    message: str | None
    media: str | None
    radius: int
    visibility: str
    distance_meters: float = Field(alias="distanceMeters")
    distance: str
    created_at: datetime = Field(alias="createdAt")
    expires_at: datetime = Field(alias="expiresAt")
    is_own: bool = Field(alias="isOwn")


class NearbyMessagesResponse(BaseSchema):
    messages: list[NearbyMessageOut]


class SavedPlaceCreate(BaseSchema):
    name: str = Field(min_length=1, max_length=120)
    address: str | None = Field(default=None, max_length=255)
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    type: str = Field(default="place", pattern="^(place|route|guide)$")
    notes: str | None = Field(default=None, max_length=2000)
    category: str | None = Field(default=None, max_length=50)
    rating: float | None = Field(default=None, ge=0, le=5)
    price_level: int | None = Field(default=None, alias="priceLevel", ge=0, le=4)


class SavedPlaceOut(BaseSchema):
    id: int
    name: str
    address: str | None
    latitude: float
    longitude: float
    type: str = Field(validation_alias=AliasChoices("kind", "type"))
    notes: str | None
    category: str | None
    rating: float | None
    price_level: int | None = Field(alias="priceLevel")
    saved_at: datetime = Field(alias="savedAt")


class SavedPlacesResponse(BaseSchema):
    places: list[SavedPlaceOut]
