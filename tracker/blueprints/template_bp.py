"""Activity template endpoints. Applying a template happens client-side."""

from flask import Blueprint, jsonify, request

from tracker.middleware.jwt_auth import current_user, login_required
from tracker.services import collaboration_service

template_bp = Blueprint("template_bp", __name__, url_prefix="/api/templates")


@template_bp.route("", methods=["GET"])
@login_required
def list_templates():
    return jsonify([t.to_dict() for t in collaboration_service.list_templates()]), 200


@template_bp.route("/<int:template_id>", methods=["GET"])
@login_required
def get_template(template_id):
    return jsonify(collaboration_service.get_template(template_id).to_dict()), 200


@template_bp.route("", methods=["POST"])
@login_required
def create_template():
    data = request.get_json(silent=True) or {}
    template = collaboration_service.create_template(data, current_user())
    return jsonify(template.to_dict()), 201


@template_bp.route("/<int:template_id>", methods=["DELETE"])
@login_required
def delete_template(template_id):
    collaboration_service.delete_template(template_id, current_user())
    return jsonify({"message": "Template deleted"}), 200
