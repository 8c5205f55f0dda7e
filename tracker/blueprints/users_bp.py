"""
User management endpoints.

  GET    /api/users         all users (admin)
  POST   /api/users         create user (admin)
  DELETE /api/users/<id>    delete user (admin; never the main admin)
  GET    /api/users/list    id/username/role for dropdowns (any user)
"""

import logging

from flask import Blueprint, jsonify, request

from tracker.middleware.jwt_auth import admin_required, login_required
from tracker.services import user_service

logger = logging.getLogger(__name__)

users_bp = Blueprint("users_bp", __name__, url_prefix="/api/users")


@users_bp.route("", methods=["GET"])
@admin_required
def list_users():
    return jsonify([u.to_dict(include_created=True) for u in user_service.list_users()]), 200


@users_bp.route("", methods=["POST"])
@admin_required
def create_user():
    data = request.get_json(silent=True) or {}
    user = user_service.create_user(data)
    return jsonify({"id": user.id, "message": "User created successfully", "user": user.to_dict()}), 201


@users_bp.route("/list", methods=["GET"])
@login_required
def list_user_options():
    return jsonify(user_service.list_user_options()), 200


@users_bp.route("/<int:user_id>", methods=["DELETE"])
@admin_required
def delete_user(user_id):
    user_service.delete_user(user_id)
    return jsonify({"message": "User deleted successfully"}), 200
