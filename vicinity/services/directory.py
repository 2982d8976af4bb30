"""User profile lookups."""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from vicinity.models.user import User


@dataclass(frozen=True)
class Profile:
    user_id: int
    username: str
    full_name: str
    role: str
    is_active: bool = True

    @property
    def display_name(self) -> str:
        return self.full_name or self.username


class UserDirectory:
    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def get(self, user_id: int) -> Profile | None:
        with self._session_factory() as db:
            user = db.get(User, user_id)
            if not user:
                return None
            return Profile(user.id, user.username, user.full_name, user.role, user.is_active)

    def get_many(self, user_ids: list[int]) -> dict[int, Profile]:
        if not user_ids:
            return {}
        with self._session_factory() as db:
            users = db.execute(select(User).where(User.id.in_(user_ids))).scalars().all()
            return {u.id: Profile(u.id, u.username, u.full_name, u.role, u.is_active) for u in users}

    def display_name(self, user_id: int) -> str:
        profile = self.get(user_id)
        return profile.display_name if profile else f"user {user_id}"
