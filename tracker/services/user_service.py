"""User & authentication service layer.

Transaction policy: every mutating function commits through
``commit_or_raise`` and surfaces failures as TrackerError subclasses.

Operations:
- login / change_password / update_notification_email
- user CRUD (admin)
- default admin seeding at startup
"""
import logging

from email_validator import EmailNotValidError, validate_email
from flask import current_app

from tracker.core.exceptions import (
    ConflictError,
    InvalidCredentials,
    ValidationError,
)
from tracker.models import db
from tracker.models.activity import Activity
from tracker.models.user import MAIN_ADMIN_ID, Role, User
from tracker.services.jwt_service import generate_access_token
from tracker.utils.crypto import hash_password, verify_password
from tracker.utils.errors import E
from tracker.utils.helpers import commit_or_raise, get_or_raise

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


def _normalize_email(value, field):
    """Validate an optional email. Empty/None → None."""
    value = (value or "").strip()
    if not value:
        return None
    try:
        return validate_email(value, check_deliverability=False).normalized
    except EmailNotValidError as exc:
        raise ValidationError(str(exc), details={field: "invalid"}) from exc


# ── Authentication ───────────────────────────────────────────────────────


def login(username, password):
    """Verify credentials and issue an access token.

    Returns:
        {"token": str, "user": dict}
    """
    if not username or not password:
        raise ValidationError("Username and password are required", code=E.VALIDATION_REQUIRED)

    user = User.query.filter_by(username=username).first()
    if user is None or not verify_password(password, user.password_hash):
        logger.info("Failed login for username=%s", username)
        raise InvalidCredentials()

    logger.info("User %s logged in", user.username)
    return {"token": generate_access_token(user), "user": user.to_dict()}


def change_password(user, current_password, new_password):
    if not current_password or not new_password:
        raise ValidationError("Current and new password are required", code=E.VALIDATION_REQUIRED)
    if not verify_password(current_password, user.password_hash):
        raise InvalidCredentials("Current password is incorrect")
    if len(new_password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"New password must be at least {MIN_PASSWORD_LENGTH} characters",
            details={"newPassword": "too_short"},
        )
    user.password_hash = hash_password(new_password)
    commit_or_raise()
    logger.info("User %s changed password", user.username)


def update_notification_email(user, notify_email):
    """Set or clear (empty value) the address used for reminder emails."""
    user.notify_email = _normalize_email(notify_email, "notifyEmail")
    commit_or_raise()
    return user


# ── User management ──────────────────────────────────────────────────────


def list_users():
    return User.query.order_by(User.created_at.desc(), User.id.desc()).all()


def list_user_options():
    """id/username/role of every user, for assignment dropdowns."""
    return [
        {"id": u.id, "username": u.username, "role": u.role}
        for u in User.query.order_by(User.username).all()
    ]


def create_user(data):
    username = (data.get("username") or "").strip()
    password = data.get("password") or ""
    role = data.get("role")

    missing = [f for f, v in (("username", username), ("password", password), ("role", role)) if not v]
    if missing:
        raise ValidationError(
            "Username, password and role are required",
            details={f: "required" for f in missing},
            code=E.VALIDATION_REQUIRED,
        )
    if role not in Role.values():
        raise ValidationError(
            f"Invalid role: {role}", details={"role": sorted(Role.values())},
        )
    if User.query.filter_by(username=username).first():
        raise ConflictError("User", "username", username, message="Username already exists")

    user = User(
        username=username,
        password_hash=hash_password(password),
        email=_normalize_email(data.get("email"), "email"),
        role=role,
    )
    db.session.add(user)
    commit_or_raise(
        on_integrity=lambda: ConflictError("User", "username", username, message="Username already exists"),
    )
    logger.info("Created user %s (role=%s)", user.username, user.role)
    return user


def delete_user(user_id):
    if user_id == MAIN_ADMIN_ID:
        raise ValidationError("Cannot delete the main admin user")
    user = get_or_raise(User, user_id, "User")
    if Activity.query.filter_by(created_by=user.id).count():
        raise ConflictError(
            "User", "id", str(user.id),
            message="User still has activities; reassign or delete them first",
        )
    db.session.delete(user)
    commit_or_raise()
    logger.info("Deleted user %s", user_id)


# ── Startup ──────────────────────────────────────────────────────────────


def seed_default_admin():
    """Create the default admin when the users table is empty. Returns the user or None."""
    if User.query.first() is not None:
        return None
    cfg = current_app.config
    admin = User(
        username=cfg.get("ADMIN_USERNAME", "admin"),
        password_hash=hash_password(cfg.get("ADMIN_PASSWORD", "admin123")),
        role=Role.ADMIN.value,
    )
    db.session.add(admin)
    db.session.commit()
    logger.warning("Seeded default admin user '%s'; change its password", admin.username)
    return admin
