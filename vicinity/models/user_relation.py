"""Social graph projection (block / follow / close friend)."""

from sqlalchemy import ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from vicinity.db.base import Base


class UserRelation(Base):
    """user_id -> other_user_id edge of the given kind."""

    __tablename__ = "user_relations"
    __table_args__ = (
        UniqueConstraint("user_id", "other_user_id", "kind", name="uq_user_relation"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    other_user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    kind: Mapped[str] = mapped_column(String(20), nullable=False)  # BLOCK | FOLLOW | CLOSE_FRIEND
