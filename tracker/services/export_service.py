"""Activity report exports: Excel (openpyxl), PDF (reportlab) and CSV.

Renderers take a list of Activity rows and return in-memory content; no
temp files are written. ``export_activities`` selects the rows for a
requester and wraps any rendering error in ExportFailed so callers never
receive partial output.
"""
import csv
import io
import logging
from datetime import datetime, timezone

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from tracker.core.exceptions import ExportFailed
from tracker.models.activity import Activity
from tracker.services.activity_service import percentage
from tracker.services.permission import Permission, has_permission
from tracker.utils.helpers import parse_date, parse_int

logger = logging.getLogger(__name__)

STATUS_FILLS = {
    "Completed": PatternFill(start_color="27AE60", end_color="27AE60", fill_type="solid"),
    "In Progress": PatternFill(start_color="3498DB", end_color="3498DB", fill_type="solid"),
    "Planned": PatternFill(start_color="95A5A6", end_color="95A5A6", fill_type="solid"),
    "On Hold": PatternFill(start_color="F39C12", end_color="F39C12", fill_type="solid"),
    "Cancelled": PatternFill(start_color="E74C3C", end_color="E74C3C", fill_type="solid"),
}
WHITE_FONT = Font(color="FFFFFF", bold=True)
HEADER_FILL = PatternFill(start_color="354A5F", end_color="354A5F", fill_type="solid")
HEADER_FONT = Font(color="FFFFFF", bold=True, size=11)
THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)

# (header, row → value)
COLUMNS = (
    ("Activity", lambda a: a.activity_name),
    ("Date", lambda a: a.activity_date.isoformat() if a.activity_date else ""),
    ("Sprint", lambda a: f"Q{a.sprint}"),
    ("Year", lambda a: a.activity_year),
    ("Status", lambda a: a.status),
    ("Priority", lambda a: a.priority),
    ("Risk Level", lambda a: a.risk_level),
    ("GxP Scope", lambda a: a.gxp_scope),
    ("Department", lambda a: a.department or ""),
    ("IT Type", lambda a: a.it_type or ""),
    ("GxP Impact", lambda a: a.gxp_impact or ""),
    ("Owner", lambda a: a.owner_name or (a.owner.username if a.owner else "")),
    ("Created By", lambda a: a.creator.username if a.creator else ""),
    ("Backup", lambda a: a.backup.username if a.backup else ""),
    ("Progress %", lambda a: a.progress_percentage or 0),
    ("TCO", lambda a: float(a.tco_value) if a.tco_value is not None else ""),
    ("Description", lambda a: (a.description or "").replace("\n", " ")),
)

# Narrower column set for the landscape PDF table
PDF_COLUMNS = ("Activity", "Date", "Sprint", "Status", "Priority", "Risk Level",
               "Department", "Owner", "Progress %")

MIMETYPES = {
    "pdf": "application/pdf",
    "excel": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "csv": "text/csv",
}
FILENAMES = {"pdf": "activities.pdf", "excel": "activities.xlsx", "csv": "activities.csv"}


def _row(activity, headers=None):
    return [fn(activity) for h, fn in COLUMNS if headers is None or h in headers]


# ── Query ────────────────────────────────────────────────────────────────


def select_for_export(fmt, filters, user):
    """Non-archived activities matching startDate/endDate/sprint.

    PDF and CSV are limited to the requester's own activities unless the
    requester may export everything; Excel always covers all activities.
    """
    filters = filters or {}
    q = Activity.query.filter(Activity.is_archived.is_(False))
    if fmt in ("pdf", "csv") and not has_permission(user, Permission.EXPORT_ALL):
        q = q.filter(Activity.created_by == user.id)

    start = parse_date(filters.get("startDate") or filters.get("start_date"))
    end = parse_date(filters.get("endDate") or filters.get("end_date"))
    sprint = parse_int(filters.get("sprint"))
    if start:
        q = q.filter(Activity.activity_date >= start)
    if end:
        q = q.filter(Activity.activity_date <= end)
    if sprint:
        q = q.filter(Activity.sprint == sprint)
    return q.order_by(Activity.activity_date.asc(), Activity.id.asc()).all()


# ── Renderers ────────────────────────────────────────────────────────────


def _apply_header_style(ws, row: int, col_count: int) -> None:
    """Apply dark-header styling to an Excel row (1-indexed)."""
    for col in range(1, col_count + 1):
        cell = ws.cell(row=row, column=col)
        cell.fill = HEADER_FILL
        cell.font = HEADER_FONT
        cell.border = THIN_BORDER
        cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)


def _auto_width(ws) -> None:
    """Auto-size column widths based on content (capped at 60 chars)."""
    for col in ws.columns:
        max_len = 0
        col_letter = get_column_letter(col[0].column)
        for cell in col:
            if cell.value is not None:
                max_len = max(max_len, min(len(str(cell.value)), 60))
        ws.column_dimensions[col_letter].width = max(max_len + 4, 12)


def generate_activities_excel(activities) -> bytes:
    """Workbook with an Activities sheet and a per-sprint Summary sheet."""
    wb = Workbook()
    ws = wb.active
    ws.title = "Activities"

    headers = [h for h, _ in COLUMNS]
    ws.append(headers)
    _apply_header_style(ws, 1, len(headers))
    status_col = headers.index("Status") + 1

    for activity in activities:
        ws.append(_row(activity))
        row = ws.max_row
        for col in range(1, len(headers) + 1):
            ws.cell(row=row, column=col).border = THIN_BORDER
        status_cell = ws.cell(row=row, column=status_col)
        fill = STATUS_FILLS.get(status_cell.value)
        if fill:
            status_cell.fill = fill
            status_cell.font = WHITE_FONT
    ws.freeze_panes = "A2"
    _auto_width(ws)

    summary = wb.create_sheet("Summary")
    summary.append(["Sprint", "Total", "Completed", "Completion %"])
    _apply_header_style(summary, 1, 4)
    for sprint in (1, 2, 3, 4):
        rows = [a for a in activities if a.sprint == sprint]
        done = sum(1 for a in rows if a.status == "Completed")
        pct = percentage(done, len(rows))
        summary.append([f"Q{sprint}", len(rows), done, pct])
    summary.append([])
    summary.append([f"Generated: {datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M UTC')}"])
    _auto_width(summary)

    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


def generate_activities_pdf(activities, username: str) -> bytes:
    """Landscape A4 table report."""
    buf = io.BytesIO()
    doc = SimpleDocTemplate(
        buf, pagesize=landscape(A4),
        leftMargin=12 * mm, rightMargin=12 * mm, topMargin=12 * mm, bottomMargin=12 * mm,
        title="Activity Report", author=username,
    )
    styles = getSampleStyleSheet()
    cell_style = styles["BodyText"].clone("cell", fontSize=8, leading=10)

    story = [
        Paragraph("Activity Report", styles["Title"]),
        Paragraph(
            f"Generated for {username} on {datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M UTC')}"
            f" &middot; {len(activities)} activities",
            styles["Normal"],
        ),
        Spacer(1, 6 * mm),
    ]

    data = [list(PDF_COLUMNS)]
    for activity in activities:
        data.append([Paragraph(_escape(v), cell_style) for v in _row(activity, PDF_COLUMNS)])
    if not activities:
        data.append(["No activities"] + [""] * (len(PDF_COLUMNS) - 1))

    table = Table(data, repeatRows=1, colWidths=[70 * mm] + [None] * (len(PDF_COLUMNS) - 1))
    table.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#354A5F")),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, -1), 8),
        ("GRID", (0, 0), (-1, -1), 0.25, colors.grey),
        ("VALIGN", (0, 0), (-1, -1), "TOP"),
        ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, colors.HexColor("#F5F7FA")]),
    ]))
    story.append(table)
    doc.build(story)
    return buf.getvalue()


def _escape(value) -> str:
    return (str(value) if value is not None else "").replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def generate_activities_csv(activities) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow([h for h, _ in COLUMNS])
    for activity in activities:
        writer.writerow(_row(activity))
    return buf.getvalue()


# ── Entry point ──────────────────────────────────────────────────────────


def export_activities(fmt, filters, user):
    """Return (content, mimetype, filename) for ``fmt`` in pdf / excel / csv."""
    if fmt not in MIMETYPES:
        raise ValueError(f"Unsupported export format: {fmt}")
    activities = select_for_export(fmt, filters, user)
    try:
        if fmt == "pdf":
            content = generate_activities_pdf(activities, user.username)
        elif fmt == "excel":
            content = generate_activities_excel(activities)
        else:
            content = generate_activities_csv(activities)
    except Exception as exc:
        logger.exception("Export failed: format=%s user=%s rows=%d", fmt, user.id, len(activities))
        raise ExportFailed(f"Failed to generate {fmt.upper()}") from exc

    logger.info("Exported %d activities as %s for user %s", len(activities), fmt, user.id)
    return content, MIMETYPES[fmt], FILENAMES[fmt]
