"""
Activity Tracker
Collaboration models.

Models:
    - Comment: free-text remark on an activity
    - Attachment: uploaded file metadata (bytes live in UPLOAD_FOLDER)
    - ActivityDependency: directed edge "activity depends on other activity"
    - ActivityTemplate: reusable set of default field values
"""

from datetime import datetime, timezone

from tracker.models import db


DEFAULT_DEPENDENCY_TYPE = "blocks"


class Comment(db.Model):
    __tablename__ = "comments"

    id = db.Column(db.Integer, primary_key=True)
    activity_id = db.Column(
        db.Integer, db.ForeignKey("activities.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    comment_text = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    author = db.relationship("User")

    def to_dict(self):
        return {
            "id": self.id,
            "activity_id": self.activity_id,
            "user_id": self.user_id,
            "username": self.author.username if self.author else None,
            "comment_text": self.comment_text,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class Attachment(db.Model):
    """Metadata for a stored file. ``filename`` is the on-disk name."""

    __tablename__ = "attachments"

    id = db.Column(db.Integer, primary_key=True)
    activity_id = db.Column(
        db.Integer, db.ForeignKey("activities.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    filename = db.Column(db.String(300), nullable=False)
    original_name = db.Column(db.String(300), nullable=False)
    file_size = db.Column(db.Integer)
    mime_type = db.Column(db.String(150))
    uploaded_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"))
    uploaded_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    uploader = db.relationship("User")

    def to_dict(self):
        return {
            "id": self.id,
            "activity_id": self.activity_id,
            "filename": self.filename,
            "original_name": self.original_name,
            "file_size": self.file_size,
            "mime_type": self.mime_type,
            "uploaded_by": self.uploaded_by,
            "uploaded_by_name": self.uploader.username if self.uploader else None,
            "uploaded_at": self.uploaded_at.isoformat() if self.uploaded_at else None,
        }


class ActivityDependency(db.Model):
    """``activity_id`` depends on ``depends_on_activity_id``. No cycle checks."""

    __tablename__ = "activity_dependencies"

    id = db.Column(db.Integer, primary_key=True)
    activity_id = db.Column(
        db.Integer, db.ForeignKey("activities.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    depends_on_activity_id = db.Column(
        db.Integer, db.ForeignKey("activities.id", ondelete="CASCADE"), nullable=False,
    )
    dependency_type = db.Column(db.String(30), default=DEFAULT_DEPENDENCY_TYPE)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    depends_on = db.relationship("Activity", foreign_keys=[depends_on_activity_id])

    def to_dict(self):
        return {
            "id": self.id,
            "activity_id": self.activity_id,
            "depends_on_activity_id": self.depends_on_activity_id,
            "dependency_type": self.dependency_type,
            "depends_on_name": self.depends_on.activity_name if self.depends_on else None,
            "depends_on_status": self.depends_on.status if self.depends_on else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class ActivityTemplate(db.Model):
    __tablename__ = "activity_templates"

    id = db.Column(db.Integer, primary_key=True)
    template_name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    gxp_scope = db.Column(db.String(3))
    priority = db.Column(db.String(20))
    risk_level = db.Column(db.String(20))
    department = db.Column(db.String(60))
    it_type = db.Column(db.String(20))
    gxp_impact = db.Column(db.String(20))
    business_benefit = db.Column(db.Text)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"))
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    creator = db.relationship("User")

    FIELDS = ("template_name", "description", "gxp_scope", "priority", "risk_level",
              "department", "it_type", "gxp_impact", "business_benefit")

    def to_dict(self):
        d = {f: getattr(self, f) for f in self.FIELDS}
        d.update({
            "id": self.id,
            "created_by": self.created_by,
            "created_by_name": self.creator.username if self.creator else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        })
        return d
