"""Read-only view over the social graph projection."""

from __future__ import annotations

from sqlalchemy import or_, select
from sqlalchemy.orm import sessionmaker

from vicinity.core.policies import REL_BLOCK, REL_CLOSE_FRIEND, REL_FOLLOW
from vicinity.models.user_relation import UserRelation


class RelationshipDirectory:
    """Block / follow / close-friend lookups. Blocks apply in both directions."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def blocked_with(self, user_id: int) -> set[int]:
        """Users that blocked ``user_id`` or that ``user_id`` blocked."""
        with self._session_factory() as db:
            rows = db.execute(
                select(UserRelation.user_id, UserRelation.other_user_id).where(
                    UserRelation.kind == REL_BLOCK,
                    or_(UserRelation.user_id == user_id, UserRelation.other_user_id == user_id),
                )
            ).all()
        return {b if a == user_id else a for a, b in rows}

    def followers_of(self, user_id: int) -> set[int]:
        with self._session_factory() as db:
            rows = db.execute(
                select(UserRelation.user_id).where(
                    UserRelation.kind == REL_FOLLOW,
                    UserRelation.other_user_id == user_id,
                )
            ).scalars().all()
        return set(rows)

    def close_friends_of(self, user_id: int) -> set[int]:
        """Users ``user_id`` has put on their close-friends list."""
        with self._session_factory() as db:
            rows = db.execute(
                select(UserRelation.other_user_id).where(
                    UserRelation.kind == REL_CLOSE_FRIEND,
                    UserRelation.user_id == user_id,
                )
            ).scalars().all()
        return set(rows)
