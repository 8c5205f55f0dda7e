"""
Activity Tracker
Scheduling models.

Models:
    - ScheduledJob: persisted schedule registry (run history + config)
    - EmailLog: outbound email audit trail
"""

from datetime import datetime, timezone

from tracker.models import db


# ── Constants ────────────────────────────────────────────────────────────────

EMAIL_STATUSES = {"queued", "sent", "failed"}
RUN_STATUSES = {"success", "failed", "skipped"}


class ScheduledJob(db.Model):
    """
    Registry of background jobs run by SchedulerService.

    ``schedule_config`` holds ``{"hour": int, "minute": int}`` plus an
    optional ``day_of_week`` (0 = Monday).
    """

    __tablename__ = "scheduled_jobs"

    id = db.Column(db.Integer, primary_key=True)
    job_name = db.Column(db.String(100), unique=True, nullable=False)
    description = db.Column(db.String(500), default="")
    schedule_config = db.Column(db.JSON, default=dict)
    is_enabled = db.Column(db.Boolean, default=True)

    # Execution tracking
    last_run_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_status = db.Column(db.String(20), nullable=True)
    last_duration_ms = db.Column(db.Integer, nullable=True)
    last_result = db.Column(db.JSON, nullable=True)
    last_error = db.Column(db.Text, nullable=True)
    run_count = db.Column(db.Integer, default=0)

    created_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc))

    def record_run(self, *, status="success", duration_ms=0, result=None, error=None):
        """Record a job execution."""
        self.last_run_at = datetime.now(timezone.utc)
        self.last_status = status
        self.last_duration_ms = duration_ms
        self.last_result = result
        self.last_error = str(error) if error else None
        self.run_count = (self.run_count or 0) + 1

    def to_dict(self):
        return {
            "id": self.id,
            "job_name": self.job_name,
            "description": self.description,
            "schedule_config": self.schedule_config,
            "is_enabled": self.is_enabled,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "last_status": self.last_status,
            "last_duration_ms": self.last_duration_ms,
            "last_result": self.last_result,
            "last_error": self.last_error,
            "run_count": self.run_count or 0,
        }

    def __repr__(self):
        return f"<ScheduledJob {self.job_name}>"


class EmailLog(db.Model):
    """Every email the tracker sends (or logs in test mode) gets a row here."""

    __tablename__ = "email_logs"

    id = db.Column(db.Integer, primary_key=True)
    recipient = db.Column(db.String(255), nullable=False, index=True)
    subject = db.Column(db.String(500), nullable=False)
    template_name = db.Column(db.String(50), nullable=True)
    status = db.Column(db.String(20), default="queued")
    error_message = db.Column(db.Text, nullable=True)
    activity_id = db.Column(db.Integer, db.ForeignKey("activities.id", ondelete="SET NULL"),
                            nullable=True)

    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "recipient": self.recipient,
            "subject": self.subject,
            "template_name": self.template_name,
            "status": self.status,
            "error_message": self.error_message,
            "activity_id": self.activity_id,
            "sent_at": self.sent_at.isoformat() if self.sent_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<EmailLog {self.id}: {self.subject[:40]} → {self.recipient}>"
