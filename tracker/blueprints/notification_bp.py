"""
Notification & Scheduling Blueprint.

Provides:
    - Per-user in-app notifications (list, mark read, mark all read, clear)
    - Test email delivery
    - Scheduled job management (list, manual trigger) (admin)
    - Email log viewing (admin)
"""

import logging

from email_validator import EmailNotValidError, validate_email
from flask import Blueprint, jsonify, request

from tracker.core.exceptions import NotFoundError, ValidationError
from tracker.middleware.jwt_auth import current_user, login_required, require_permission
from tracker.models.scheduling import EmailLog
from tracker.services.email_service import EmailService
from tracker.services.notification import NotificationService
from tracker.services.permission import Permission
from tracker.services.scheduler_service import SchedulerService
from tracker.utils.errors import E
from tracker.utils.helpers import commit_or_raise

logger = logging.getLogger(__name__)

notification_bp = Blueprint("notification_bp", __name__, url_prefix="/api")


# ═══════════════════════════════════════════════════════════════════════════
#  NOTIFICATIONS
# ═══════════════════════════════════════════════════════════════════════════

@notification_bp.route("/notifications", methods=["GET"])
@login_required
def list_notifications():
    """Latest 50 notifications for the caller plus the unread count."""
    items, unread = NotificationService.list_for_user(current_user().id)
    return jsonify({
        "notifications": [n.to_dict() for n in items],
        "unread_count": unread,
    }), 200


@notification_bp.route("/notifications/<int:nid>/read", methods=["PUT"])
@login_required
def mark_read(nid):
    notif = NotificationService.mark_read(nid, current_user().id)
    return jsonify(notif.to_dict()), 200


@notification_bp.route("/notifications/read-all", methods=["PUT"])
@login_required
def mark_all_read():
    count = NotificationService.mark_all_read(current_user().id)
    return jsonify({"message": "All notifications marked as read", "updated": count}), 200


@notification_bp.route("/notifications/clear-all", methods=["DELETE"])
@login_required
def clear_all():
    count = NotificationService.clear_all(current_user().id)
    return jsonify({"message": "All notifications cleared", "deleted": count}), 200


@notification_bp.route("/notifications/test", methods=["POST"])
@login_required
def send_test_email():
    """Body: { "email": "..." }. Logged only when SMTP is not configured."""
    data = request.get_json(silent=True) or {}
    address = (data.get("email") or "").strip()
    if not address:
        raise ValidationError("email is required", details={"email": "required"}, code=E.VALIDATION_REQUIRED)
    try:
        address = validate_email(address, check_deliverability=False).normalized
    except EmailNotValidError as exc:
        raise ValidationError(str(exc), details={"email": "invalid"}) from exc

    log = EmailService.send_test_email(address)
    commit_or_raise()
    message = "Test email sent"
    if not EmailService.is_configured():
        message += " (test mode: logged only)"
    return jsonify({"message": message, "status": log.status}), 200


# ═══════════════════════════════════════════════════════════════════════════
#  SCHEDULED JOBS MANAGEMENT
# ═══════════════════════════════════════════════════════════════════════════

@notification_bp.route("/scheduler/jobs", methods=["GET"])
@require_permission(Permission.MANAGE_SCHEDULER)
def list_scheduled_jobs():
    jobs = SchedulerService.list_jobs()
    return jsonify({"jobs": jobs, "total": len(jobs)}), 200


@notification_bp.route("/scheduler/jobs/<job_name>/trigger", methods=["POST"])
@require_permission(Permission.MANAGE_SCHEDULER)
def trigger_job(job_name):
    """Run a registered job now and return its run record."""
    result = SchedulerService.run_job(job_name)
    if result.get("status") == "error" and "Unknown job" in (result.get("error") or ""):
        raise NotFoundError("Job", job_name)
    logger.info("Job %s triggered manually by user %s: %s", job_name, current_user().id, result["status"])
    return jsonify(result), 200


# ═══════════════════════════════════════════════════════════════════════════
#  EMAIL LOG
# ═══════════════════════════════════════════════════════════════════════════

@notification_bp.route("/email-logs", methods=["GET"])
@require_permission(Permission.MANAGE_SCHEDULER)
def list_email_logs():
    """Email send log, newest first, with limit/offset paging."""
    limit = min(request.args.get("limit", 50, type=int), 500)
    offset = request.args.get("offset", 0, type=int)
    status = request.args.get("status")

    q = EmailLog.query
    if status:
        q = q.filter_by(status=status)

    total = q.count()
    items = q.order_by(EmailLog.created_at.desc(), EmailLog.id.desc()).offset(offset).limit(limit).all()
    return jsonify({
        "items": [e.to_dict() for e in items],
        "total": total,
        "limit": limit,
        "offset": offset,
    }), 200
