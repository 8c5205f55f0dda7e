"""
Activity Tracker
Email Service.

Sends activity emails from named templates. When SMTP is not configured
(``MAIL_SERVER`` unset) emails are logged but not sent (dev/test mode).
Every email, sent or not, is recorded in EmailLog.

Configuration (env vars):
    MAIL_SERVER     SMTP host (default: None → log-only mode)
    MAIL_PORT       SMTP port (default: 587)
    MAIL_USE_TLS    Use TLS (default: true)
    MAIL_USERNAME   SMTP username
    MAIL_PASSWORD   SMTP password
    MAIL_DEFAULT_SENDER  Default from address
"""

from __future__ import annotations

import html
import logging
import smtplib
import threading
from datetime import datetime, timezone
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from tracker.models import db
from tracker.models.activity import Activity
from tracker.models.scheduling import EmailLog

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  Email Templates
# ═══════════════════════════════════════════════════════════════════════════

_ACTIVITY_HTML = """
<div style="font-family: Arial, sans-serif; padding: 20px; background-color: #f5f5f5;">
    <div style="max-width: 600px; margin: 0 auto; background-color: white; padding: 30px; border-radius: 10px;">
        <h2 style="color: #333; margin-bottom: 20px;">Activity Notification</h2>
        <p style="font-size: 16px; color: #555;">{lead}</p>
        <div style="background-color: #f8f9fa; padding: 20px; border-radius: 5px; margin: 20px 0;">
            <h3 style="margin-top: 0; color: #333;">{activity_name}</h3>
            <p style="margin: 10px 0;"><strong>Date:</strong> {activity_date}</p>
            {detail_rows}
        </div>
        <p style="font-size: 14px; color: #777; margin-top: 30px;">
            This is an automated notification from the Activity Tracker system.
        </p>
    </div>
</div>
"""

_TEMPLATES: dict[str, dict[str, str]] = {
    "reminder": {
        "subject": 'Reminder: Activity "{activity_name}" starts in 3 days',
        "lead": "This is a reminder that your activity is scheduled to start in 3 days.",
    },
    "assignment": {
        "subject": 'New Activity Assigned: "{activity_name}"',
        "lead": "You have been assigned as the owner of a new activity.",
    },
    "backup_assignment": {
        "subject": 'Backup Person for Activity: "{activity_name}"',
        "lead": "You have been assigned as the backup person for an activity.",
    },
    "weekly": {
        "subject": 'Weekly Reminder: Upcoming Activity "{activity_name}"',
        "lead": "This is your weekly reminder about an upcoming activity.",
    },
    "test": {
        "subject": "Activity Tracker test email",
        "lead": "Email notifications are working. No action is required.",
    },
}

EMAIL_KINDS = frozenset(_TEMPLATES)


def _detail_rows(activity) -> str:
    rows = []
    for label, attr in (("Priority", "priority"), ("Status", "status"), ("Department", "department")):
        value = getattr(activity, attr, None)
        if value:
            rows.append(
                f'<p style="margin: 10px 0;"><strong>{label}:</strong> {html.escape(str(value))}</p>'
            )
    return "\n            ".join(rows)


class EmailService:
    """
    Email sending service with template support.

    In development/test mode (no MAIL_SERVER configured), emails are
    logged to the database but not actually sent via SMTP.
    """

    # Background delivery threads started by send_activity_emails_later
    _workers: list[threading.Thread] = []

    @staticmethod
    def is_configured() -> bool:
        """Check if SMTP is configured."""
        return bool(current_app.config.get("MAIL_SERVER"))

    @staticmethod
    def get_template(kind: str) -> dict[str, str] | None:
        return _TEMPLATES.get(kind)

    @classmethod
    def send(
        cls,
        *,
        to_email: str,
        subject: str,
        html_body: str,
        template_name: str | None = None,
        activity_id: int | None = None,
    ) -> EmailLog:
        """
        Send an email and log it.

        If SMTP is not configured, the email is logged with status='sent'
        to simulate sending without actual delivery. SMTP failures are
        recorded with status='failed' and never raised.

        Returns:
            The EmailLog record for this email (flushed, not committed).
        """
        log = EmailLog(
            recipient=to_email,
            subject=subject,
            template_name=template_name,
            status="queued",
            activity_id=activity_id,
        )
        db.session.add(log)
        db.session.flush()

        if not cls.is_configured():
            # Dev/test mode: log only
            log.status = "sent"
            log.sent_at = datetime.now(timezone.utc)
            logger.info(
                "Email (test mode): to=%s subject='%s' template=%s",
                to_email, subject, template_name,
            )
            return log

        try:
            cls._send_smtp(to_email=to_email, subject=subject, html_body=html_body)
            log.status = "sent"
            log.sent_at = datetime.now(timezone.utc)
            logger.info("Email sent: to=%s subject='%s'", to_email, subject)
        except (smtplib.SMTPException, OSError) as exc:
            log.status = "failed"
            log.error_message = str(exc)[:1000]
            logger.error("Email failed: to=%s error=%s", to_email, exc)

        return log

    @classmethod
    def send_activity_email(cls, to_email: str, activity, kind: str = "reminder") -> EmailLog | None:
        """
        Render the ``kind`` template for ``activity`` and send it.

        Kinds: reminder, assignment, backup_assignment, weekly.
        """
        template = cls.get_template(kind)
        if not template:
            logger.warning("Email template not found: %s", kind)
            return None

        context: dict[str, Any] = {
            "activity_name": activity.activity_name,
            "activity_date": activity.activity_date.isoformat() if activity.activity_date else "",
        }
        subject = template["subject"].format_map(_SafeDict(context))
        html_body = _ACTIVITY_HTML.format_map(_SafeDict(
            lead=template["lead"],
            activity_name=html.escape(context["activity_name"]),
            activity_date=context["activity_date"],
            detail_rows=_detail_rows(activity),
        ))

        return cls.send(
            to_email=to_email,
            subject=subject,
            html_body=html_body,
            template_name=kind,
            activity_id=activity.id,
        )

    @classmethod
    def send_activity_emails_later(
        cls, activity_id: int, messages: list[tuple[str, str]]
    ) -> threading.Thread | None:
        """
        Deliver ``(address, kind)`` emails for an activity off the request path.

        With EMAIL_ASYNC off (tests, CLI) delivery happens inline and None
        is returned. Otherwise a daemon thread does the work under its own
        app context and is returned. The activity must already be committed.
        """
        if not messages:
            return None

        app = current_app._get_current_object()
        if not app.config.get("EMAIL_ASYNC", True):
            cls._deliver(activity_id, messages)
            return None

        worker = threading.Thread(
            target=cls._deliver_in_context,
            args=(app, activity_id, list(messages)),
            name=f"email-activity-{activity_id}",
            daemon=True,
        )
        cls._workers = [t for t in cls._workers if t.is_alive()]
        cls._workers.append(worker)
        worker.start()
        return worker

    @classmethod
    def wait_for_pending(cls, timeout: float | None = None) -> None:
        """Join background delivery threads (shutdown hooks and tests)."""
        for worker in list(cls._workers):
            worker.join(timeout)
        cls._workers = [t for t in cls._workers if t.is_alive()]

    @classmethod
    def _deliver_in_context(cls, app, activity_id: int, messages: list[tuple[str, str]]) -> None:
        with app.app_context():
            try:
                cls._deliver(activity_id, messages)
            except Exception:
                logger.exception("Background email delivery crashed for activity %s", activity_id)

    @classmethod
    def _deliver(cls, activity_id: int, messages: list[tuple[str, str]]) -> None:
        activity = db.session.get(Activity, activity_id)
        if activity is None:
            logger.warning("Email skipped: activity %s no longer exists", activity_id)
            return
        for address, kind in messages:
            try:
                cls.send_activity_email(address, activity, kind)
                db.session.commit()
            except SQLAlchemyError:
                db.session.rollback()
                logger.exception("Email log write failed: activity=%s to=%s", activity_id, address)

    @classmethod
    def send_test_email(cls, to_email: str) -> EmailLog:
        template = _TEMPLATES["test"]
        html_body = _ACTIVITY_HTML.format_map(_SafeDict(
            lead=template["lead"],
            activity_name="Test Activity",
            activity_date=datetime.now(timezone.utc).date().isoformat(),
            detail_rows="",
        ))
        return cls.send(
            to_email=to_email,
            subject=template["subject"],
            html_body=html_body,
            template_name="test",
        )

    @staticmethod
    def _send_smtp(*, to_email: str, subject: str, html_body: str) -> None:
        """Actually send via SMTP."""
        cfg = current_app.config
        server = cfg.get("MAIL_SERVER")
        port = cfg.get("MAIL_PORT", 587)
        use_tls = cfg.get("MAIL_USE_TLS", True)
        username = cfg.get("MAIL_USERNAME")
        password = cfg.get("MAIL_PASSWORD")
        sender = cfg.get("MAIL_DEFAULT_SENDER", f"noreply@{server}")

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f"Activity Tracker <{sender}>"
        msg["To"] = to_email
        msg.attach(MIMEText(html_body, "html"))

        with smtplib.SMTP(server, port, timeout=30) as smtp:
            if use_tls:
                smtp.starttls()
            if username and password:
                smtp.login(username, password)
            smtp.send_message(msg)


class _SafeDict(dict):
    """Dict that returns {key} for missing keys instead of raising."""

    def __missing__(self, key):
        return f"{{{key}}}"
