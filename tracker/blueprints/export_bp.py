"""
Activity report export endpoints.

    POST /api/export/pdf    { startDate?, endDate?, sprint? }  → activities.pdf
    POST /api/export/excel  same filters, all activities       → activities.xlsx
    POST /api/export/csv    same filters, own unless admin     → activities.csv

No temp files; content returned in-memory.
"""

import logging

from flask import Blueprint, Response, request

from tracker.middleware.jwt_auth import current_user, login_required
from tracker.services.export_service import export_activities

logger = logging.getLogger(__name__)

export_bp = Blueprint("export_bp", __name__, url_prefix="/api/export")


def _download(fmt):
    filters = request.get_json(silent=True) or {}
    content, mimetype, filename = export_activities(fmt, filters, current_user())
    return Response(
        content,
        mimetype=mimetype,
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@export_bp.route("/pdf", methods=["POST"])
@login_required
def export_pdf():
    return _download("pdf")


@export_bp.route("/excel", methods=["POST"])
@login_required
def export_excel():
    return _download("excel")


@export_bp.route("/csv", methods=["POST"])
@login_required
def export_csv():
    return _download("csv")
