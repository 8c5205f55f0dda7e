"""collaboration_tables

Comments, attachments, in-app notifications, activity templates and
activity dependencies.

Revision ID: c3e2a7f4d523
Revises: b2d1f6e3c412
Create Date: 2026-10-06 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "c3e2a7f4d523"
down_revision = "b2d1f6e3c412"
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "comments" not in existing_tables:
        op.create_table(
            "comments",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("activity_id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("comment_text", sa.Text(), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["activity_id"], ["activities.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_comments_activity_id", "comments", ["activity_id"])

    if "attachments" not in existing_tables:
        op.create_table(
            "attachments",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("activity_id", sa.Integer(), nullable=False),
            sa.Column("filename", sa.String(length=300), nullable=False),
            sa.Column("original_name", sa.String(length=300), nullable=False),
            sa.Column("file_size", sa.Integer(), nullable=True),
            sa.Column("mime_type", sa.String(length=150), nullable=True),
            sa.Column("uploaded_by", sa.Integer(), nullable=True),
            sa.Column("uploaded_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["activity_id"], ["activities.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["uploaded_by"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_attachments_activity_id", "attachments", ["activity_id"])

    if "notifications" not in existing_tables:
        op.create_table(
            "notifications",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("activity_id", sa.Integer(), nullable=True),
            sa.Column("type", sa.String(length=30), nullable=False, server_default="system"),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("message", sa.Text(), nullable=True),
            sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["activity_id"], ["activities.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_notifications_user_id", "notifications", ["user_id"])

    if "activity_templates" not in existing_tables:
        op.create_table(
            "activity_templates",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("template_name", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("gxp_scope", sa.String(length=3), nullable=True),
            sa.Column("priority", sa.String(length=20), nullable=True),
            sa.Column("risk_level", sa.String(length=20), nullable=True),
            sa.Column("department", sa.String(length=60), nullable=True),
            sa.Column("it_type", sa.String(length=20), nullable=True),
            sa.Column("gxp_impact", sa.String(length=20), nullable=True),
            sa.Column("business_benefit", sa.Text(), nullable=True),
            sa.Column("created_by", sa.Integer(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["created_by"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )

    if "activity_dependencies" not in existing_tables:
        op.create_table(
            "activity_dependencies",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("activity_id", sa.Integer(), nullable=False),
            sa.Column("depends_on_activity_id", sa.Integer(), nullable=False),
            sa.Column("dependency_type", sa.String(length=30), nullable=True, server_default="blocks"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["activity_id"], ["activities.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["depends_on_activity_id"], ["activities.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_activity_dependencies_activity_id", "activity_dependencies", ["activity_id"])


def downgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    for table in ("activity_dependencies", "activity_templates", "notifications", "attachments", "comments"):
        if table in existing_tables:
            op.drop_table(table)
