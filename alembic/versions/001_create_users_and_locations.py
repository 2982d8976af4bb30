"""Create users, user_relations, user_locations, proximity_settings, trusted_contacts.

Revision ID: 001
Revises:
Create Date: 2026-09-28

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("username", sa.String(50), nullable=False),
        sa.Column("full_name", sa.String(120), nullable=False, server_default=""),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(20), nullable=True),
        sa.Column("role", sa.String(20), nullable=False, server_default="user"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("username"),
    )

    op.create_table(
        "user_relations",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("other_user_id", sa.Integer(), nullable=False),
        sa.Column("kind", sa.String(20), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["other_user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "other_user_id", "kind", name="uq_user_relation"),
    )
    op.create_index(op.f("ix_user_relations_user_id"), "user_relations", ["user_id"], unique=False)
    op.create_index(op.f("ix_user_relations_other_user_id"), "user_relations", ["other_user_id"], unique=False)

    op.create_table(
        "user_locations",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("latitude", sa.Float(), nullable=False),
        sa.Column("longitude", sa.Float(), nullable=False),
        sa.Column("accuracy", sa.Float(), nullable=True),
        sa.Column("is_sharing", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id"),
    )

    op.create_table(
        "proximity_settings",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("alerts_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("radius_meters", sa.Integer(), nullable=False, server_default="5000"),
        sa.Column("alert_frequency", sa.String(20), nullable=False, server_default="immediate"),
        sa.Column("only_trusted_contacts", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("sound_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("vibration_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("show_on_map", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("nearby_radius_meters", sa.Integer(), nullable=False, server_default="1000"),
        sa.Column("anonymous_mode", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("voice_detection_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("auto_send_on_distress", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("background_monitoring", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("notify_push", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("notify_sms", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("notify_email", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id"),
    )

    op.create_table(
        "trusted_contacts",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("owner_id", sa.Integer(), nullable=False),
        sa.Column("contact_user_id", sa.Integer(), nullable=False),
        sa.Column("added_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("last_nearby_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["owner_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["contact_user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("owner_id", "contact_user_id", name="uq_trusted_contact_owner_contact"),
    )
    op.create_index(op.f("ix_trusted_contacts_owner_id"), "trusted_contacts", ["owner_id"], unique=False)
    op.create_index(op.f("ix_trusted_contacts_contact_user_id"), "trusted_contacts", ["contact_user_id"], unique=False)


def downgrade() -> None:
    op.drop_index(op.f("ix_trusted_contacts_contact_user_id"), table_name="trusted_contacts")
    op.drop_index(op.f("ix_trusted_contacts_owner_id"), table_name="trusted_contacts")
    op.drop_table("trusted_contacts")
    op.drop_table("proximity_settings")
    op.drop_table("user_locations")
    op.drop_index(op.f("ix_user_relations_other_user_id"), table_name="user_relations")
    op.drop_index(op.f("ix_user_relations_user_id"), table_name="user_relations")
    op.drop_table("user_relations")
    op.drop_table("users")
