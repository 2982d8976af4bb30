"""Trusted contact schemas."""

from datetime import datetime

from pydantic import Field

from vicinity.schemas.base import BaseSchema


class TrustedContactAdd(BaseSchema):
    user_id: int = Field(alias="userId")


class TrustedContactOut(BaseSchema):
    user_id: int = Field(alias="userId")
    username: str
    full_name: str = Field(alias="fullName")
    added_at: datetime = Field(alias="addedAt")
    last_nearby_at: datetime | None = Field(alias="lastNearbyAt")
    mutual: bool


class TrustedContactsResponse(BaseSchema):
    trusted_contacts: list[TrustedContactOut] = Field(alias="trustedContacts")
