"""
JWT Auth Middleware: parses the bearer token and sets ``g.current_user``.

Every ``/api/`` path except the ones in ``JWT_SKIP_PREFIXES`` requires a
valid ``Authorization: Bearer <token>`` header for a user that still
exists; otherwise the request fails with Unauthorized (401).

Usage:
    @bp.route("/api/users", methods=["GET"])
    @require_permission(Permission.MANAGE_USERS)
    def list_users():
        ...
"""

import functools
import logging

import jwt as pyjwt
from flask import g, request

from tracker.core.exceptions import Forbidden, Unauthorized
from tracker.models import db
from tracker.models.user import User
from tracker.services.jwt_service import decode_access_token
from tracker.services.permission import Permission, has_permission

logger = logging.getLogger(__name__)


# Paths that skip JWT auth entirely
JWT_SKIP_PREFIXES = (
    "/api/auth/login",
    "/api/health",
)


def _authenticate():
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        raise Unauthorized("Access token required")

    token = auth_header[7:]  # Strip "Bearer "
    try:
        payload = decode_access_token(token)
    except pyjwt.ExpiredSignatureError as exc:
        raise Unauthorized("Token expired") from exc
    except pyjwt.InvalidTokenError as exc:
        raise Unauthorized("Invalid token") from exc

    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError) as exc:
        raise Unauthorized("Invalid token") from exc

    user = db.session.get(User, user_id)
    if user is None:
        raise Unauthorized("User no longer exists")
    return user


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.current_user = None
        g.current_user_id = None

        path = request.path
        if not path.startswith("/api/") or request.method == "OPTIONS":
            return
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return

        g.current_user = _authenticate()
        g.current_user_id = g.current_user.id


def current_user() -> User:
    user = getattr(g, "current_user", None)
    if user is None:
        raise Unauthorized()
    return user


def require_permission(permission):
    """
    Decorator: require the authenticated user to hold ``permission``.

    Args:
        permission: A ``Permission`` enum member.
    """
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            user = current_user()
            if not has_permission(user, permission):
                logger.warning(
                    "User %d denied: missing permission '%s' on %s",
                    user.id, permission.value, f.__name__,
                )
                raise Forbidden("Admin access required")
            return f(*args, **kwargs)
        return decorated
    return decorator


def login_required(f):
    """Decorator: any authenticated user."""
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        current_user()
        return f(*args, **kwargs)
    return decorated


def admin_required(f):
    """Decorator: admin role only (checked through MANAGE_USERS)."""
    return require_permission(Permission.MANAGE_USERS)(f)
