"""Activity lifecycle service layer.

Transaction policy: each mutating operation commits its own unit of work
(the activity row together with its EditHistory row). Assignment emails
and in-app notifications run after that commit and are best-effort:
failures are logged, never raised.

Operations:
- list views (all / mine / shared) with date, sprint, status, archived filters
- create / update / archive / unarchive / delete
- per-activity history and cross-activity audit trail
- sprint progress, status stats, dashboard analytics
"""
import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation

from sqlalchemy import case, func, or_
from sqlalchemy.exc import SQLAlchemyError

from tracker.core.exceptions import DuplicateActivity, Forbidden, ValidationError
from tracker.models import db
from tracker.models.activity import (
    DEPARTMENTS,
    GXP_IMPACTS,
    GXP_SCOPES,
    IT_TYPES,
    PRIORITIES,
    RISK_LEVELS,
    STATUSES,
    Activity,
    EditHistory,
    make_unique_identifier,
)
from tracker.models.collaboration import ActivityDependency, Attachment, Comment
from tracker.models.notification import Notification
from tracker.models.scheduling import EmailLog
from tracker.models.user import User
from tracker.services.email_service import EmailService
from tracker.services.notification import NotificationService
from tracker.services.permission import (
    Permission,
    can_edit_activity,
    can_view_activity,
    check_permission,
    has_permission,
)
from tracker.utils.errors import E
from tracker.utils.helpers import commit_or_raise, get_or_raise, parse_date, parse_int, require_date

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("activity_name", "gxp_scope", "priority", "risk_level", "activity_date", "status")

ENUM_FIELDS = {
    "gxp_scope": GXP_SCOPES,
    "priority": PRIORITIES,
    "risk_level": RISK_LEVELS,
    "status": STATUSES,
    "department": DEPARTMENTS,
    "it_type": IT_TYPES,
    "gxp_impact": GXP_IMPACTS,
}

TEXT_FIELDS = ("description", "business_benefit")

# (label, attribute) pairs diffed into the update history description
WATCHED_FIELDS = (
    ("Name", "activity_name"),
    ("Status", "status"),
    ("Priority", "priority"),
    ("Target Date", "activity_date"),
)

ARCHIVED_MODES = ("exclude", "include", "only")
AUDIT_LIMIT = 500
SPRINTS = (1, 2, 3, 4)


# ── Input cleaning ───────────────────────────────────────────────────────


def _blank(value):
    return value is None or (isinstance(value, str) and not value.strip())


def _bool(value):
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def _user_ref(value, field):
    """Optional reference to an existing user id."""
    if _blank(value):
        return None
    user_id = parse_int(value)
    if user_id is None or db.session.get(User, user_id) is None:
        raise ValidationError(f"{field} must reference an existing user", details={field: "invalid"})
    return user_id


def _clean(data):
    """Validate an activity payload and return normalized column values."""
    missing = [f for f in REQUIRED_FIELDS if _blank(data.get(f))]
    if missing:
        raise ValidationError(
            f"Missing required fields: {', '.join(missing)}",
            details={f: "required" for f in missing},
            code=E.VALIDATION_REQUIRED,
        )

    cleaned = {"activity_name": str(data["activity_name"]).strip()}

    invalid = {}
    for field, allowed in ENUM_FIELDS.items():
        value = data.get(field)
        if _blank(value):
            cleaned[field] = None
        elif value not in allowed:
            invalid[field] = f"must be one of: {', '.join(allowed)}"
        else:
            cleaned[field] = value
    if invalid:
        raise ValidationError("Invalid field values", details=invalid)

    cleaned["activity_date"] = require_date(data.get("activity_date"))

    for field in TEXT_FIELDS:
        value = data.get(field)
        cleaned[field] = None if _blank(value) else str(value)

    tco = data.get("tco_value")
    if _blank(tco):
        cleaned["tco_value"] = None
    else:
        try:
            cleaned["tco_value"] = Decimal(str(tco)).quantize(Decimal("0.01"))
        except InvalidOperation as exc:
            raise ValidationError("tco_value must be a number", details={"tco_value": "invalid"}) from exc

    progress = data.get("progress_percentage")
    if _blank(progress):
        cleaned["progress_percentage"] = 0
    else:
        value = parse_int(progress)
        if value is None or not 0 <= value <= 100:
            raise ValidationError(
                "progress_percentage must be an integer between 0 and 100",
                details={"progress_percentage": "invalid"},
            )
        cleaned["progress_percentage"] = value

    cleaned["backup_person"] = _user_ref(data.get("backup_person"), "backup_person")
    owner_name = data.get("owner_name")
    cleaned["owner_name"] = None if _blank(owner_name) else str(owner_name).strip()
    return cleaned


def _assignee(data, requester):
    """Admins may act on behalf of another user via ``assigned_to``."""
    if not has_permission(requester, Permission.ASSIGN_ACTIVITY):
        return None
    return _user_ref(data.get("assigned_to"), "assigned_to")


def _apply(activity, cleaned):
    for field, value in cleaned.items():
        if field == "activity_date":
            activity.set_date(value)
        else:
            setattr(activity, field, value)


def _ensure_unique(identifier, exclude_id=None):
    q = Activity.query.filter(Activity.unique_identifier == identifier)
    if exclude_id is not None:
        q = q.filter(Activity.id != exclude_id)
    if db.session.query(q.exists()).scalar():
        raise DuplicateActivity(identifier)


def _history(activity, user, kind, change_description, old_value=None, new_value=None):
    row = EditHistory(
        activity=activity,
        edited_by=user.id,
        field_changed=kind,
        old_value=old_value,
        new_value=new_value,
        change_description=change_description,
    )
    db.session.add(row)
    return row


# ── Queries ──────────────────────────────────────────────────────────────


def _apply_filters(q, filters):
    filters = filters or {}
    start = parse_date(filters.get("start_date") or filters.get("startDate"))
    end = parse_date(filters.get("end_date") or filters.get("endDate"))
    sprint = parse_int(filters.get("sprint"))
    status = filters.get("status")
    archived = (filters.get("archived") or "exclude").lower()
    if archived not in ARCHIVED_MODES:
        raise ValidationError(
            f"archived must be one of: {', '.join(ARCHIVED_MODES)}", details={"archived": "invalid"},
        )

    if start:
        q = q.filter(Activity.activity_date >= start)
    if end:
        q = q.filter(Activity.activity_date <= end)
    if sprint:
        q = q.filter(Activity.sprint == sprint)
    if status:
        q = q.filter(Activity.status == status)
    if archived == "exclude":
        q = q.filter(Activity.is_archived.is_(False))
    elif archived == "only":
        q = q.filter(Activity.is_archived.is_(True))
    return q


def query_activities(view, user, filters=None):
    """Filtered, ordered query for one of the list views: all, mine, shared."""
    q = Activity.query
    if view == "mine":
        q = q.filter(
            or_(Activity.created_by == user.id, Activity.backup_person == user.id),
            Activity.is_shared.is_(False),
        )
    elif view == "shared":
        q = q.filter(Activity.is_shared.is_(True))
    elif view == "all":
        check_permission(user, Permission.VIEW_ALL_ACTIVITIES, "Admin access required")
    else:
        raise ValueError(f"Unknown activity view: {view}")
    q = _apply_filters(q, filters)
    return q.order_by(Activity.activity_date.asc(), Activity.id.desc())


def list_activities(view, user, filters=None):
    return query_activities(view, user, filters).all()


def get_activity(activity_id, user):
    activity = get_or_raise(Activity, activity_id, "Activity")
    if not can_view_activity(user, activity):
        raise Forbidden("You do not have access to this activity")
    return activity


# ── Create / update ──────────────────────────────────────────────────────


def create_activity(data, requester):
    """Create an activity and its "created" history row in one transaction.

    Returns:
        The committed Activity.
    """
    cleaned = _clean(data)
    assignee_id = _assignee(data, requester)
    creator_id = assignee_id or requester.id
    if cleaned["owner_name"] is None:
        owner = db.session.get(User, creator_id)
        cleaned["owner_name"] = owner.username

    identifier = make_unique_identifier(cleaned["activity_name"], cleaned["activity_date"], creator_id)
    _ensure_unique(identifier)

    activity = Activity(
        created_by=creator_id,
        owner_id=creator_id,
        is_shared=_bool(data.get("is_shared", False)),
        is_archived=False,
    )
    _apply(activity, cleaned)
    activity.unique_identifier = identifier
    db.session.add(activity)
    _history(activity, requester, "created", "Activity created", new_value="Activity created")
    commit_or_raise(on_integrity=lambda: DuplicateActivity(identifier))

    logger.info(
        "Activity %s created by user %s (sprint=%s)",
        activity.id, requester.id, activity.sprint,
        extra={"activity_id": activity.id, "user_id": requester.id},
    )
    _notify_assignment(activity, requester, owner_id=activity.owner_id, backup_id=activity.backup_person)
    return activity


def _describe_changes(before, activity):
    changes = []
    for label, attr in WATCHED_FIELDS:
        old, new = before[attr], getattr(activity, attr)
        if old != new:
            old_s = old.isoformat() if hasattr(old, "isoformat") else old
            new_s = new.isoformat() if hasattr(new, "isoformat") else new
            changes.append(f'{label}: "{old_s}" → "{new_s}"')
    return "; ".join(changes) if changes else "Activity updated"


def update_activity(activity_id, data, requester):
    """Full replacement update. Appends exactly one "updated" history row."""
    activity = get_or_raise(Activity, activity_id, "Activity")
    if not can_edit_activity(requester, activity):
        raise Forbidden("You can only edit your own activities")

    cleaned = _clean(data)
    assignee_id = _assignee(data, requester)
    before = {attr: getattr(activity, attr) for _, attr in WATCHED_FIELDS}
    old_backup = activity.backup_person
    old_owner = activity.owner_id

    if cleaned["owner_name"] is None:
        cleaned["owner_name"] = activity.owner_name
    _apply(activity, cleaned)
    if assignee_id:
        activity.created_by = assignee_id
        activity.owner_id = assignee_id
    elif activity.owner_id is None:
        activity.owner_id = activity.created_by
    if "is_shared" in data:
        activity.is_shared = _bool(data["is_shared"])

    identifier = make_unique_identifier(activity.activity_name, activity.activity_date, activity.created_by)
    _ensure_unique(identifier, exclude_id=activity.id)
    activity.unique_identifier = identifier
    activity.last_edited_by = requester.id
    activity.last_edited_at = datetime.now(timezone.utc)

    description = _describe_changes(before, activity)
    _history(activity, requester, "updated", description, new_value=activity.activity_name)
    commit_or_raise(on_integrity=lambda: DuplicateActivity(identifier))

    logger.info("Activity %s updated by user %s: %s", activity.id, requester.id, description,
                extra={"activity_id": activity.id, "user_id": requester.id})
    _notify_assignment(
        activity, requester,
        owner_id=activity.owner_id if activity.owner_id != old_owner else None,
        backup_id=activity.backup_person if activity.backup_person != old_backup else None,
    )
    return activity


def set_archived(activity_id, requester, archived=True):
    activity = get_or_raise(Activity, activity_id, "Activity")
    if not can_edit_activity(requester, activity):
        raise Forbidden("You can only archive your own activities")
    kind = "archived" if archived else "unarchived"
    if bool(activity.is_archived) != archived:
        activity.is_archived = archived
        activity.last_edited_by = requester.id
        activity.last_edited_at = datetime.now(timezone.utc)
        _history(
            activity, requester, kind, f"Activity {kind}",
            old_value=str(not archived).lower(), new_value=str(archived).lower(),
        )
        commit_or_raise()
        logger.info("Activity %s %s by user %s", activity.id, kind, requester.id)
    return activity


def delete_activity(activity_id):
    """Hard delete with its history, comments, attachments and dependency edges.

    Notifications and email log rows are kept but detached from the activity.
    """
    from tracker.services.attachment_service import remove_stored_file

    activity = get_or_raise(Activity, activity_id, "Activity")
    filenames = [a.filename for a in Attachment.query.filter_by(activity_id=activity.id).all()]

    Comment.query.filter_by(activity_id=activity.id).delete(synchronize_session=False)
    Attachment.query.filter_by(activity_id=activity.id).delete(synchronize_session=False)
    ActivityDependency.query.filter(or_(
        ActivityDependency.activity_id == activity.id,
        ActivityDependency.depends_on_activity_id == activity.id,
    )).delete(synchronize_session=False)
    Notification.query.filter_by(activity_id=activity.id).update(
        {"activity_id": None}, synchronize_session=False,
    )
    EmailLog.query.filter_by(activity_id=activity.id).update(
        {"activity_id": None}, synchronize_session=False,
    )
    EditHistory.query.filter_by(activity_id=activity.id).delete(synchronize_session=False)
    db.session.delete(activity)
    commit_or_raise()

    for name in filenames:
        remove_stored_file(name)
    logger.info("Activity %s deleted (%d attachments removed)", activity_id, len(filenames))


# ── History ──────────────────────────────────────────────────────────────


def get_history(activity_id, requester):
    activity = get_or_raise(Activity, activity_id, "Activity")
    if not can_edit_activity(requester, activity):
        raise Forbidden("You can only view history of your own activities")
    return (
        EditHistory.query.filter_by(activity_id=activity.id)
        .order_by(EditHistory.edited_at.desc(), EditHistory.id.desc())
        .all()
    )


def get_audit_history(limit=AUDIT_LIMIT):
    return (
        EditHistory.query
        .order_by(EditHistory.edited_at.desc(), EditHistory.id.desc())
        .limit(limit)
        .all()
    )


# ── Aggregates ───────────────────────────────────────────────────────────


def _completed():
    return func.sum(case((Activity.status == "Completed", 1), else_=0))


def percentage(completed, total):
    """round(completed / total * 100), 0 when total is 0. Halves round up."""
    if not total:
        return 0
    return int(Decimal(completed * 100) / Decimal(total) + Decimal("0.5"))


def sprint_progress(year=None):
    """Per-sprint {sprint, total, completed, percentage} over non-archived activities."""
    q = db.session.query(Activity.sprint, func.count(Activity.id), _completed()).filter(
        Activity.is_archived.is_(False),
    )
    if year:
        q = q.filter(Activity.activity_year == year)
    rows = {sprint: (total, completed or 0) for sprint, total, completed in q.group_by(Activity.sprint)}

    progress = []
    for sprint in SPRINTS:
        total, completed = rows.get(sprint, (0, 0))
        progress.append({
            "sprint": sprint,
            "total": total,
            "completed": int(completed),
            "percentage": percentage(completed, total),
        })
    return progress


def activity_stats():
    """Active totals by status plus the archived count."""
    by_status = dict.fromkeys(STATUSES, 0)
    rows = (
        db.session.query(Activity.status, func.count(Activity.id))
        .filter(Activity.is_archived.is_(False))
        .group_by(Activity.status)
    )
    for status, count in rows:
        by_status[status] = count
    archived = Activity.query.filter(Activity.is_archived.is_(True)).count()
    return {"total": sum(by_status.values()), "by_status": by_status, "archived": archived}


def dashboard_analytics():
    """Cross-cutting breakdowns for the dashboard charts (archived excluded)."""
    active = Activity.is_archived.is_(False)

    it_type_rows = (
        db.session.query(
            Activity.it_type,
            func.count(Activity.id),
            _completed(),
            func.sum(case((Activity.status == "In Progress", 1), else_=0)),
            func.sum(case((Activity.status == "Planned", 1), else_=0)),
        )
        .filter(active, Activity.it_type.isnot(None))
        .group_by(Activity.it_type)
        .order_by(Activity.it_type)
    )
    gxp_rows = (
        db.session.query(Activity.it_type, Activity.gxp_impact, func.count(Activity.id))
        .filter(active, Activity.it_type.isnot(None), Activity.gxp_impact.isnot(None))
        .group_by(Activity.it_type, Activity.gxp_impact)
        .order_by(Activity.it_type, Activity.gxp_impact)
    )
    dept_rows = (
        db.session.query(Activity.department, func.count(Activity.id), _completed())
        .filter(active, Activity.department.isnot(None))
        .group_by(Activity.department)
        .order_by(Activity.department)
    )
    priority_rows = (
        db.session.query(Activity.priority, func.count(Activity.id))
        .filter(active)
        .group_by(Activity.priority)
        .order_by(Activity.priority)
    )
    tco_rows = (
        db.session.query(Activity.it_type, func.sum(Activity.tco_value), func.avg(Activity.tco_value))
        .filter(active, Activity.tco_value.isnot(None), Activity.it_type.isnot(None))
        .group_by(Activity.it_type)
        .order_by(Activity.it_type)
    )

    def _num(value):
        return float(value) if value is not None else 0.0

    return {
        "itTypeComparison": [
            {"it_type": t, "total": n, "completed": int(c or 0),
             "in_progress": int(p or 0), "planned": int(pl or 0)}
            for t, n, c, p, pl in it_type_rows
        ],
        "gxpDistribution": [
            {"it_type": t, "gxp_impact": g, "count": n} for t, g, n in gxp_rows
        ],
        "departmentBreakdown": [
            {"department": d, "total": n, "completed": int(c or 0)} for d, n, c in dept_rows
        ],
        "priorityDistribution": [
            {"priority": p, "count": n} for p, n in priority_rows
        ],
        "tcoSummary": [
            {"it_type": t, "total_tco": _num(s), "avg_tco": round(_num(a), 2)} for t, s, a in tco_rows
        ],
    }


# ── Side effects ─────────────────────────────────────────────────────────


def _notify_assignment(activity, requester, owner_id=None, backup_id=None):
    """In-app notifications now, assignment emails in the background. Never raises."""
    targets = []
    if owner_id:
        targets.append((owner_id, "assignment", "New Activity Assigned",
                        f'You are the owner of "{activity.activity_name}" ({activity.activity_date}).'))
    if backup_id:
        targets.append((backup_id, "backup_assignment", "Backup Person Assignment",
                        f'You are the backup person for "{activity.activity_name}" ({activity.activity_date}).'))

    emails = []
    for user_id, kind, title, message in targets:
        try:
            user = db.session.get(User, user_id)
            if user is None:
                continue
            if user.notify_email:
                emails.append((user.notify_email, kind))
            if user.id != requester.id:
                NotificationService.create(
                    user_id=user.id, activity_id=activity.id, type=kind,
                    title=title, message=message, commit=False,
                )
                db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception("Assignment notification failed for activity %s user %s",
                             activity.id, user_id)

    EmailService.send_activity_emails_later(activity.id, emails)
