"""activity_ownership_and_portfolio_columns

Add ownership, backup, portfolio (department / IT type / GxP impact / TCO),
sharing, archiving, progress and dedup columns to `activities`, and
`notify_email` to `users`. Only columns missing from the live table are
added, so databases created by db.create_all() are left untouched.

Revision ID: b2d1f6e3c412
Revises: a1c0e5d2b301
Create Date: 2026-10-03 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "b2d1f6e3c412"
down_revision = "a1c0e5d2b301"
branch_labels = None
depends_on = None


def _activity_columns():
    return [
        sa.Column("activity_year", sa.Integer(), nullable=True),
        sa.Column("owner_id", sa.Integer(),
                  sa.ForeignKey("users.id", name="fk_activities_owner_id", ondelete="SET NULL"),
                  nullable=True),
        sa.Column("owner_name", sa.String(length=150), nullable=True),
        sa.Column("backup_person", sa.Integer(),
                  sa.ForeignKey("users.id", name="fk_activities_backup_person", ondelete="SET NULL"),
                  nullable=True),
        sa.Column("department", sa.String(length=60), nullable=True),
        sa.Column("it_type", sa.String(length=20), nullable=True),
        sa.Column("gxp_impact", sa.String(length=20), nullable=True),
        sa.Column("business_benefit", sa.Text(), nullable=True),
        sa.Column("tco_value", sa.Numeric(15, 2), nullable=True),
        sa.Column("is_shared", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_archived", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("progress_percentage", sa.Integer(), nullable=True, server_default="0"),
        sa.Column("unique_identifier", sa.String(length=500), nullable=True),
        sa.Column("last_edited_by", sa.Integer(),
                  sa.ForeignKey("users.id", name="fk_activities_last_edited_by", ondelete="SET NULL"),
                  nullable=True),
        sa.Column("last_edited_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)

    activity_cols = {c["name"] for c in inspector.get_columns("activities")}
    missing = [c for c in _activity_columns() if c.name not in activity_cols]
    if missing:
        with op.batch_alter_table("activities") as batch:
            for column in missing:
                batch.add_column(column)
            if "unique_identifier" not in activity_cols:
                batch.create_unique_constraint("uq_activities_unique_identifier", ["unique_identifier"])

    existing_indexes = {ix["name"] for ix in inspector.get_indexes("activities")}
    if "ix_activities_owner_id" not in existing_indexes:
        op.create_index("ix_activities_owner_id", "activities", ["owner_id"])

    user_cols = {c["name"] for c in inspector.get_columns("users")}
    if "notify_email" not in user_cols:
        with op.batch_alter_table("users") as batch:
            batch.add_column(sa.Column("notify_email", sa.String(length=255), nullable=True))


def downgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)

    user_cols = {c["name"] for c in inspector.get_columns("users")}
    if "notify_email" in user_cols:
        with op.batch_alter_table("users") as batch:
            batch.drop_column("notify_email")

    existing_indexes = {ix["name"] for ix in inspector.get_indexes("activities")}
    if "ix_activities_owner_id" in existing_indexes:
        op.drop_index("ix_activities_owner_id", table_name="activities")

    activity_cols = {c["name"] for c in inspector.get_columns("activities")}
    present = [c.name for c in _activity_columns() if c.name in activity_cols]
    if present:
        with op.batch_alter_table("activities") as batch:
            for name in present:
                batch.drop_column(name)
