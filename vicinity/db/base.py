"""Declarative base shared by every vicinity table.

Alembic's env imports ``vicinity.models`` so the metadata below is complete
before migrations or ``create_all`` run.
"""

from __future__ import annotations

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass
