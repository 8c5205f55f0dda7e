"""
Health check blueprint.

Endpoints:
    GET /health       database connectivity and user count
    GET /api/health   same, under the API prefix (no auth)
"""

import logging
from datetime import datetime, timezone

from flask import Blueprint, jsonify
from sqlalchemy.exc import SQLAlchemyError

from tracker.models import db
from tracker.models.user import User

logger = logging.getLogger(__name__)

health_bp = Blueprint("health_bp", __name__)


@health_bp.route("/health", methods=["GET"])
@health_bp.route("/api/health", methods=["GET"])
def health():
    try:
        db.session.execute(db.text("SELECT 1"))
        users = db.session.query(User.id).count()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error("Health check: database failed: %s", exc)
        return jsonify({
            "status": "error",
            "database": "unavailable",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }), 500

    return jsonify({
        "status": "ok",
        "database": "connected",
        "users": users,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }), 200
