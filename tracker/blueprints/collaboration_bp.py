"""
Collaboration Blueprint: comments, attachments and dependencies.

Activity-scoped routes live under /api/activities/<id>/...; item routes
(delete, download) address the row directly.
"""

import logging

from flask import Blueprint, jsonify, request, send_file

from tracker.middleware.jwt_auth import current_user, login_required
from tracker.services import attachment_service, collaboration_service

logger = logging.getLogger(__name__)

collaboration_bp = Blueprint("collaboration_bp", __name__, url_prefix="/api")


# ═══════════════════════════════════════════════════════════════════════════
#  COMMENTS
# ═══════════════════════════════════════════════════════════════════════════

@collaboration_bp.route("/activities/<int:activity_id>/comments", methods=["GET"])
@login_required
def list_comments(activity_id):
    return jsonify([c.to_dict() for c in collaboration_service.list_comments(activity_id)]), 200


@collaboration_bp.route("/activities/<int:activity_id>/comments", methods=["POST"])
@login_required
def add_comment(activity_id):
    data = request.get_json(silent=True) or {}
    comment = collaboration_service.add_comment(activity_id, data.get("comment_text"), current_user())
    return jsonify(comment.to_dict()), 201


@collaboration_bp.route("/comments/<int:comment_id>", methods=["DELETE"])
@login_required
def delete_comment(comment_id):
    collaboration_service.delete_comment(comment_id, current_user())
    return jsonify({"message": "Comment deleted"}), 200


# ═══════════════════════════════════════════════════════════════════════════
#  ATTACHMENTS
# ═══════════════════════════════════════════════════════════════════════════

@collaboration_bp.route("/activities/<int:activity_id>/attachments", methods=["POST"])
@login_required
def upload_attachment(activity_id):
    """Multipart upload, field ``file``."""
    attachment = attachment_service.save_attachment(activity_id, request.files.get("file"), current_user())
    return jsonify(attachment.to_dict()), 201


@collaboration_bp.route("/activities/<int:activity_id>/attachments", methods=["GET"])
@login_required
def list_attachments(activity_id):
    return jsonify([a.to_dict() for a in attachment_service.list_attachments(activity_id)]), 200


@collaboration_bp.route("/attachments/<int:attachment_id>/download", methods=["GET"])
@login_required
def download_attachment(attachment_id):
    attachment, path = attachment_service.get_download(attachment_id)
    return send_file(
        path,
        mimetype=attachment.mime_type or "application/octet-stream",
        as_attachment=True,
        download_name=attachment.original_name,
    )


@collaboration_bp.route("/attachments/<int:attachment_id>", methods=["DELETE"])
@login_required
def delete_attachment(attachment_id):
    attachment_service.delete_attachment(attachment_id, current_user())
    return jsonify({"message": "Attachment deleted"}), 200


# ═══════════════════════════════════════════════════════════════════════════
#  DEPENDENCIES
# ═══════════════════════════════════════════════════════════════════════════

@collaboration_bp.route("/activities/<int:activity_id>/dependencies", methods=["GET"])
@login_required
def list_dependencies(activity_id):
    return jsonify([d.to_dict() for d in collaboration_service.list_dependencies(activity_id)]), 200


@collaboration_bp.route("/activities/<int:activity_id>/dependencies", methods=["POST"])
@login_required
def add_dependency(activity_id):
    data = request.get_json(silent=True) or {}
    dependency = collaboration_service.add_dependency(activity_id, data, current_user())
    return jsonify(dependency.to_dict()), 201


@collaboration_bp.route("/dependencies/<int:dependency_id>", methods=["DELETE"])
@login_required
def delete_dependency(dependency_id):
    collaboration_service.delete_dependency(dependency_id)
    return jsonify({"message": "Dependency removed"}), 200
