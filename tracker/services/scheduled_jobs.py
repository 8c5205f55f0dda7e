"""
Activity Tracker
Scheduled Jobs.

Concrete job implementations that run on a schedule.

Jobs:
    - daily_reminders: activities exactly 3 days out → reminder email to creator
    - weekly_reminders: activities 7 to 14 days out → weekly email to creator
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Any

from tracker.models import db
from tracker.models.activity import OPEN_STATUSES, Activity
from tracker.models.user import User
from tracker.services.email_service import EmailService
from tracker.services.scheduler_service import register_job

logger = logging.getLogger(__name__)

REMINDER_DAYS_AHEAD = 3
WEEKLY_WINDOW = (7, 14)


def _upcoming(start: date, end: date):
    """Open activities dated in [start, end] whose creator has a notify email."""
    return (
        db.session.query(Activity, User.notify_email)
        .join(User, Activity.created_by == User.id)
        .filter(
            Activity.activity_date >= start,
            Activity.activity_date <= end,
            Activity.status.in_(OPEN_STATUSES),
            Activity.is_archived.is_(False),
            User.notify_email.isnot(None),
            User.notify_email != "",
        )
        .order_by(Activity.activity_date, Activity.id)
        .all()
    )


def _send_all(rows, kind: str) -> dict[str, Any]:
    results = {"matched": len(rows), "sent": 0, "failed": 0}
    for activity, email in rows:
        log = EmailService.send_activity_email(email, activity, kind)
        if log is not None and log.status == "sent":
            results["sent"] += 1
        else:
            results["failed"] += 1
    db.session.commit()
    return results


# ═══════════════════════════════════════════════════════════════════════════
#  Job 1: Daily reminders
# ═══════════════════════════════════════════════════════════════════════════

@register_job("daily_reminders")
def send_daily_reminders(app, today: date | None = None) -> dict[str, Any]:
    """Remind creators of open activities starting in 3 days."""
    target = (today or date.today()) + timedelta(days=REMINDER_DAYS_AHEAD)
    results = _send_all(_upcoming(target, target), "reminder")
    results["target_date"] = target.isoformat()
    logger.info("Daily reminders: %s", results)
    return results


# ═══════════════════════════════════════════════════════════════════════════
#  Job 2: Weekly reminders
# ═══════════════════════════════════════════════════════════════════════════

@register_job("weekly_reminders")
def send_weekly_reminders(app, today: date | None = None) -> dict[str, Any]:
    """Weekly digest of open activities 7 to 14 days out."""
    today = today or date.today()
    start = today + timedelta(days=WEEKLY_WINDOW[0])
    end = today + timedelta(days=WEEKLY_WINDOW[1])
    results = _send_all(_upcoming(start, end), "weekly")
    results["window"] = [start.isoformat(), end.isoformat()]
    logger.info("Weekly reminders: %s", results)
    return results
