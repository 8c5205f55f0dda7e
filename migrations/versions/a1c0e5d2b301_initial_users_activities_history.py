"""initial_users_activities_history

Base schema: users, activities (core columns) and edit_history.

Revision ID: a1c0e5d2b301
Revises:
Create Date: 2026-10-01 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "a1c0e5d2b301"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "users" not in existing_tables:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("username", sa.String(length=100), nullable=False),
            sa.Column("password_hash", sa.String(length=256), nullable=False),
            sa.Column("email", sa.String(length=255), nullable=True),
            sa.Column("role", sa.String(length=20), nullable=False, server_default="client"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.CheckConstraint("role IN ('admin', 'client')", name="ck_users_role"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("username"),
        )

    if "activities" not in existing_tables:
        op.create_table(
            "activities",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("activity_name", sa.String(length=300), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("gxp_scope", sa.String(length=3), nullable=False),
            sa.Column("priority", sa.String(length=20), nullable=False),
            sa.Column("risk_level", sa.String(length=20), nullable=False),
            sa.Column("activity_date", sa.Date(), nullable=False),
            sa.Column("sprint", sa.Integer(), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="Planned"),
            sa.Column("created_by", sa.Integer(), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["created_by"], ["users.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_activities_date", "activities", ["activity_date"])
        op.create_index("ix_activities_sprint", "activities", ["sprint"])
        op.create_index("ix_activities_created_by", "activities", ["created_by"])

    if "edit_history" not in existing_tables:
        op.create_table(
            "edit_history",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("activity_id", sa.Integer(), nullable=False),
            sa.Column("edited_by", sa.Integer(), nullable=True),
            sa.Column("edited_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("field_changed", sa.String(length=30), nullable=True),
            sa.Column("old_value", sa.Text(), nullable=True),
            sa.Column("new_value", sa.Text(), nullable=True),
            sa.Column("change_description", sa.Text(), nullable=True),
            sa.ForeignKeyConstraint(["activity_id"], ["activities.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["edited_by"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_edit_history_activity", "edit_history", ["activity_id"])
        op.create_index("ix_edit_history_edited_at", "edit_history", ["edited_at"])


def downgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "edit_history" in existing_tables:
        op.drop_index("ix_edit_history_edited_at", table_name="edit_history")
        op.drop_index("ix_edit_history_activity", table_name="edit_history")
        op.drop_table("edit_history")
    if "activities" in existing_tables:
        op.drop_index("ix_activities_created_by", table_name="activities")
        op.drop_index("ix_activities_sprint", table_name="activities")
        op.drop_index("ix_activities_date", table_name="activities")
        op.drop_table("activities")
    if "users" in existing_tables:
        op.drop_table("users")
