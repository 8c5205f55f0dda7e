"""
Activity Blueprint: lifecycle, history and progress endpoints.

Provides:
    - List views: all (admin), my, shared, with date/sprint/status/archived filters
    - Create / full-record update / archive / unarchive / delete (admin)
    - Per-activity edit history and the admin audit trail
    - Sprint progress and status stats

Handlers only translate HTTP ↔ service calls; every rule lives in
``tracker.services.activity_service``.
"""

import logging

from flask import Blueprint, jsonify, request

from tracker.middleware.jwt_auth import current_user, login_required, require_permission
from tracker.services import activity_service
from tracker.services.permission import Permission
from tracker.utils.helpers import parse_int

logger = logging.getLogger(__name__)

activity_bp = Blueprint("activity_bp", __name__, url_prefix="/api/activities")


def _listing(view):
    rows = activity_service.list_activities(view, current_user(), request.args)
    return jsonify([a.to_dict() for a in rows]), 200


# ═══════════════════════════════════════════════════════════════════════════
#  LIST VIEWS
# ═══════════════════════════════════════════════════════════════════════════

@activity_bp.route("", methods=["GET"])
@login_required
def list_all():
    """Every activity (admin only)."""
    return _listing("all")


@activity_bp.route("/my", methods=["GET"])
@login_required
def list_mine():
    """Non-shared activities the caller created or backs up."""
    return _listing("mine")


@activity_bp.route("/shared", methods=["GET"])
@login_required
def list_shared():
    return _listing("shared")


# ═══════════════════════════════════════════════════════════════════════════
#  PROGRESS & STATS
# ═══════════════════════════════════════════════════════════════════════════

@activity_bp.route("/sprint-progress", methods=["GET"])
@login_required
def sprint_progress():
    year = parse_int(request.args.get("year"))
    return jsonify(activity_service.sprint_progress(year)), 200


@activity_bp.route("/stats", methods=["GET"])
@login_required
def stats():
    return jsonify(activity_service.activity_stats()), 200


# ═══════════════════════════════════════════════════════════════════════════
#  CRUD
# ═══════════════════════════════════════════════════════════════════════════

@activity_bp.route("", methods=["POST"])
@login_required
def create_activity():
    data = request.get_json(silent=True) or {}
    activity = activity_service.create_activity(data, current_user())
    return jsonify({
        "id": activity.id,
        "message": "Activity created successfully",
        "sprint": activity.sprint,
        "activity": activity.to_dict(),
    }), 201


@activity_bp.route("/<int:activity_id>", methods=["GET"])
@login_required
def get_activity(activity_id):
    return jsonify(activity_service.get_activity(activity_id, current_user()).to_dict()), 200


@activity_bp.route("/<int:activity_id>", methods=["PUT"])
@login_required
def update_activity(activity_id):
    data = request.get_json(silent=True) or {}
    activity = activity_service.update_activity(activity_id, data, current_user())
    return jsonify({
        "message": "Activity updated successfully",
        "sprint": activity.sprint,
        "activity": activity.to_dict(),
    }), 200


@activity_bp.route("/<int:activity_id>/archive", methods=["POST"])
@login_required
def archive_activity(activity_id):
    activity = activity_service.set_archived(activity_id, current_user(), archived=True)
    return jsonify({"message": "Activity archived", "activity": activity.to_dict()}), 200


@activity_bp.route("/<int:activity_id>/unarchive", methods=["POST"])
@login_required
def unarchive_activity(activity_id):
    activity = activity_service.set_archived(activity_id, current_user(), archived=False)
    return jsonify({"message": "Activity restored", "activity": activity.to_dict()}), 200


@activity_bp.route("/<int:activity_id>", methods=["DELETE"])
@require_permission(Permission.DELETE_ACTIVITY)
def delete_activity(activity_id):
    activity_service.delete_activity(activity_id)
    return jsonify({"message": "Activity deleted successfully"}), 200


# ═══════════════════════════════════════════════════════════════════════════
#  HISTORY
# ═══════════════════════════════════════════════════════════════════════════

@activity_bp.route("/<int:activity_id>/history", methods=["GET"])
@activity_bp.route("/<int:activity_id>/my-history", methods=["GET"])
@login_required
def activity_history(activity_id):
    """Edit history, newest first. Creator or admin."""
    rows = activity_service.get_history(activity_id, current_user())
    return jsonify([h.to_dict() for h in rows]), 200


@activity_bp.route("/audit/all-history", methods=["GET"])
@require_permission(Permission.VIEW_AUDIT_HISTORY)
def audit_history():
    rows = activity_service.get_audit_history()
    return jsonify([h.to_dict(include_activity_name=True) for h in rows]), 200
