"""
Activity Tracker
User domain model.

Models:
    - User: login account with one of two fixed roles (admin, client)
"""

from datetime import datetime, timezone
from enum import Enum

from tracker.models import db


# ── Constants ────────────────────────────────────────────────────────────────

MAIN_ADMIN_ID = 1


class Role(str, Enum):
    ADMIN = "admin"
    CLIENT = "client"

    @classmethod
    def values(cls):
        return {r.value for r in cls}


class User(db.Model):
    """Application user. ``role`` gates admin-only endpoints."""

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(100), unique=True, nullable=False)
    password_hash = db.Column(db.String(256), nullable=False)
    email = db.Column(db.String(255))
    role = db.Column(db.String(20), nullable=False, default=Role.CLIENT.value)
    notify_email = db.Column(db.String(255))
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        db.CheckConstraint("role IN ('admin', 'client')", name="ck_users_role"),
    )

    def to_dict(self, include_created=False):
        d = {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "role": self.role,
            "notify_email": self.notify_email,
        }
        if include_created:
            d["created_at"] = self.created_at.isoformat() if self.created_at else None
        return d

    def __repr__(self):
        return f"<User {self.id}: {self.username} ({self.role})>"
