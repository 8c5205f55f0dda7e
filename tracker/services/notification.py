"""
Activity Tracker
Notification Service.

Central service for creating and querying per-user in-app notifications.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError

from tracker.core.exceptions import NotFoundError
from tracker.models import db
from tracker.models.notification import Notification
from tracker.utils.helpers import commit_or_raise

logger = logging.getLogger(__name__)

LIST_LIMIT = 50


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Create ────────────────────────────────────────────────────────────

    @staticmethod
    def create(*, user_id, title, message="", type="system", activity_id=None, commit=True):
        """
        Create a single notification record.

        Returns:
            The created Notification instance.
        """
        notif = Notification(
            user_id=user_id,
            activity_id=activity_id,
            type=type,
            title=title,
            message=message,
        )
        db.session.add(notif)
        if commit:
            db.session.commit()
        return notif

    @staticmethod
    def notify_quietly(**kwargs):
        """Best-effort create: failures are logged and rolled back, never raised."""
        try:
            return NotificationService.create(**kwargs)
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception("Could not create notification for user %s", kwargs.get("user_id"))
            return None

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def list_for_user(user_id, limit=LIST_LIMIT):
        """Latest notifications for a user, newest first, plus the unread count."""
        items = (
            Notification.query.filter_by(user_id=user_id)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .limit(limit)
            .all()
        )
        return items, NotificationService.unread_count(user_id)

    @staticmethod
    def unread_count(user_id):
        return Notification.query.filter_by(user_id=user_id, is_read=False).count()

    # ── Actions ───────────────────────────────────────────────────────────

    @staticmethod
    def mark_read(notification_id, user_id):
        """Mark one of the user's notifications as read."""
        notif = Notification.query.filter_by(id=notification_id, user_id=user_id).first()
        if notif is None:
            raise NotFoundError("Notification", notification_id)
        notif.mark_read()
        commit_or_raise()
        return notif

    @staticmethod
    def mark_all_read(user_id):
        count = (
            Notification.query.filter_by(user_id=user_id, is_read=False)
            .update({"is_read": True}, synchronize_session="fetch")
        )
        commit_or_raise()
        return count

    @staticmethod
    def clear_all(user_id):
        count = Notification.query.filter_by(user_id=user_id).delete(synchronize_session="fetch")
        commit_or_raise()
        return count
