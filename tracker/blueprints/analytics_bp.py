"""Dashboard analytics endpoint."""

from flask import Blueprint, jsonify

from tracker.middleware.jwt_auth import login_required
from tracker.services.activity_service import dashboard_analytics

analytics_bp = Blueprint("analytics_bp", __name__, url_prefix="/api/analytics")


@analytics_bp.route("/dashboard", methods=["GET"])
@login_required
def dashboard():
    return jsonify(dashboard_analytics()), 200
