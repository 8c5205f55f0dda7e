"""
Auth Blueprint: JWT authentication endpoints.

  POST /api/auth/login                       username + password → token
  GET  /api/auth/me                          current user profile
  POST /api/auth/change-password             verify current, set new
  POST /api/auth/update-notification-email   set or clear reminder address
"""

from flask import Blueprint, current_app, jsonify, request

from tracker import limiter
from tracker.middleware.jwt_auth import current_user, login_required
from tracker.services import user_service

auth_bp = Blueprint("auth_bp", __name__, url_prefix="/api/auth")


def _login_limit():
    return current_app.config.get("LOGIN_RATE_LIMIT", "10/minute")


# ═══════════════════════════════════════════════════════════════
# POST /api/auth/login
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/login", methods=["POST"])
@limiter.limit(_login_limit)
def login():
    """
    Body: { "username": "...", "password": "..." }
    """
    data = request.get_json(silent=True) or {}
    result = user_service.login((data.get("username") or "").strip(), data.get("password") or "")
    return jsonify(result), 200


@auth_bp.route("/me", methods=["GET"])
@login_required
def me():
    return jsonify(current_user().to_dict(include_created=True)), 200


@auth_bp.route("/change-password", methods=["POST"])
@login_required
def change_password():
    """Body: { "currentPassword": "...", "newPassword": "..." }"""
    data = request.get_json(silent=True) or {}
    user_service.change_password(current_user(), data.get("currentPassword"), data.get("newPassword"))
    return jsonify({"message": "Password changed successfully"}), 200


@auth_bp.route("/update-notification-email", methods=["POST"])
@login_required
def update_notification_email():
    data = request.get_json(silent=True) or {}
    user = user_service.update_notification_email(current_user(), data.get("notifyEmail"))
    return jsonify({"message": "Notification email updated", "notify_email": user.notify_email}), 200
