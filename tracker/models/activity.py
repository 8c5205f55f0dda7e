"""
Activity Tracker
Activity domain model.

Models:
    - Activity: trackable IT work item with compliance / risk metadata
    - EditHistory: append-only audit trail, one row per lifecycle event

Helpers:
    - calculate_sprint: quarter bucket (1-4) for a date
    - make_unique_identifier: (name, date, creator) dedup key
"""

import re
from datetime import date, datetime, timezone

from sqlalchemy.orm import validates

from tracker.models import db


# ── Constants ────────────────────────────────────────────────────────────────

GXP_SCOPES = ("Yes", "No")
PRIORITIES = ("Critical", "High", "Medium", "Low")
RISK_LEVELS = ("High", "Medium", "Low")
STATUSES = ("Planned", "In Progress", "Completed", "Cancelled", "On Hold")
DEPARTMENTS = (
    "Corp IT Cybersecurity",
    "Corp IT Helpdesk",
    "Corp IT Compliance",
    "Corp IT Application Solutions",
    "Corp IT Business Technology",
    "Corp IT OctaERP Solution",
    "Local IT",
)
IT_TYPES = ("Corp IT", "Local IT")
GXP_IMPACTS = ("GxP", "non-GxP", "indirect GxP")

# Statuses that still need attention (reminder jobs)
OPEN_STATUSES = ("Planned", "In Progress")

HISTORY_KINDS = {"created", "updated", "archived", "unarchived"}


def calculate_sprint(value: date) -> int:
    """Quarter of the year: months 1-3 → 1, 4-6 → 2, 7-9 → 3, 10-12 → 4."""
    return (value.month - 1) // 3 + 1


def make_unique_identifier(name: str, value: date, creator_id: int) -> str:
    slug = re.sub(r"\s+", "_", name.strip().lower())
    return f"{slug}_{value.isoformat()}_{creator_id}"


def _in(column, values):
    quoted = ", ".join(f"'{v}'" for v in values)
    return f"{column} IN ({quoted})"


class Activity(db.Model):
    """
    Central entity of the tracker.

    ``sprint`` and ``activity_year`` are derived from ``activity_date``;
    use :meth:`set_date` rather than assigning them directly.
    """

    __tablename__ = "activities"
    __table_args__ = (
        db.CheckConstraint(_in("gxp_scope", GXP_SCOPES), name="ck_activities_gxp_scope"),
        db.CheckConstraint(_in("priority", PRIORITIES), name="ck_activities_priority"),
        db.CheckConstraint(_in("risk_level", RISK_LEVELS), name="ck_activities_risk_level"),
        db.CheckConstraint(_in("status", STATUSES), name="ck_activities_status"),
        db.Index("ix_activities_date", "activity_date"),
        db.Index("ix_activities_sprint", "sprint"),
    )

    id = db.Column(db.Integer, primary_key=True)
    activity_name = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text)
    gxp_scope = db.Column(db.String(3), nullable=False)
    priority = db.Column(db.String(20), nullable=False)
    risk_level = db.Column(db.String(20), nullable=False)
    activity_date = db.Column(db.Date, nullable=False)
    sprint = db.Column(db.Integer, nullable=False)
    activity_year = db.Column(db.Integer)
    status = db.Column(db.String(20), nullable=False, default="Planned")

    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), index=True)
    owner_name = db.Column(db.String(150))
    backup_person = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"))

    department = db.Column(db.String(60))
    it_type = db.Column(db.String(20))
    gxp_impact = db.Column(db.String(20))
    business_benefit = db.Column(db.Text)
    tco_value = db.Column(db.Numeric(15, 2))

    is_shared = db.Column(db.Boolean, nullable=False, default=False)
    is_archived = db.Column(db.Boolean, nullable=False, default=False)
    progress_percentage = db.Column(db.Integer, default=0)
    unique_identifier = db.Column(db.String(500), unique=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    last_edited_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"))
    last_edited_at = db.Column(db.DateTime(timezone=True))

    creator = db.relationship("User", foreign_keys=[created_by])
    owner = db.relationship("User", foreign_keys=[owner_id])
    backup = db.relationship("User", foreign_keys=[backup_person])
    last_editor = db.relationship("User", foreign_keys=[last_edited_by])

    history = db.relationship(
        "EditHistory", back_populates="activity", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
    )

    def set_date(self, value: date):
        self.activity_date = value
        self.sprint = calculate_sprint(value)
        self.activity_year = value.year

    def to_dict(self):
        return {
            "id": self.id,
            "activity_name": self.activity_name,
            "description": self.description,
            "gxp_scope": self.gxp_scope,
            "priority": self.priority,
            "risk_level": self.risk_level,
            "activity_date": self.activity_date.isoformat() if self.activity_date else None,
            "sprint": self.sprint,
            "activity_year": self.activity_year,
            "status": self.status,
            "created_by": self.created_by,
            "owner_id": self.owner_id,
            "owner_name": self.owner_name,
            "backup_person": self.backup_person,
            "department": self.department,
            "it_type": self.it_type,
            "gxp_impact": self.gxp_impact,
            "business_benefit": self.business_benefit,
            "tco_value": float(self.tco_value) if self.tco_value is not None else None,
            "is_shared": bool(self.is_shared),
            "is_archived": bool(self.is_archived),
            "progress_percentage": self.progress_percentage or 0,
            "unique_identifier": self.unique_identifier,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "last_edited_by": self.last_edited_by,
            "last_edited_at": self.last_edited_at.isoformat() if self.last_edited_at else None,
            # Resolved display names
            "created_by_name": self.creator.username if self.creator else None,
            "last_edited_by_name": self.last_editor.username if self.last_editor else None,
            "backup_person_name": self.backup.username if self.backup else None,
            "owner_name_display": self.owner.username if self.owner else None,
        }

    def __repr__(self):
        return f"<Activity {self.id}: {self.activity_name[:40]} ({self.activity_date})>"


class EditHistory(db.Model):
    """
    Append-only audit row. One per create / update / archive event,
    never one per field.
    """

    __tablename__ = "edit_history"
    __table_args__ = (
        db.Index("ix_edit_history_activity", "activity_id"),
        db.Index("ix_edit_history_edited_at", "edited_at"),
    )

    id = db.Column(db.Integer, primary_key=True)
    activity_id = db.Column(
        db.Integer, db.ForeignKey("activities.id", ondelete="CASCADE"), nullable=False,
    )
    edited_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"))
    edited_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    field_changed = db.Column(db.String(30))
    old_value = db.Column(db.Text)
    new_value = db.Column(db.Text)
    change_description = db.Column(db.Text)

    activity = db.relationship("Activity", back_populates="history")
    editor = db.relationship("User")

    @validates("field_changed")
    def _check_kind(self, key, value):
        if value not in HISTORY_KINDS:
            raise ValueError(f"Unknown history kind: {value!r}")
        return value

    def to_dict(self, include_activity_name=False):
        d = {
            "id": self.id,
            "activity_id": self.activity_id,
            "edited_by": self.edited_by,
            "edited_by_name": self.editor.username if self.editor else None,
            "edited_at": self.edited_at.isoformat() if self.edited_at else None,
            "field_changed": self.field_changed,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "change_description": self.change_description,
        }
        if include_activity_name:
            d["activity_name"] = self.activity.activity_name if self.activity else None
        return d
