"""Comments, dependencies and templates.

All activity-scoped operations raise NotFoundError when the activity does
not exist. Dependencies form a plain directed edge set; cycles are not
checked.
"""
import logging

from tracker.core.exceptions import Forbidden, ValidationError
from tracker.models import db
from tracker.models.activity import (
    DEPARTMENTS,
    GXP_IMPACTS,
    GXP_SCOPES,
    IT_TYPES,
    PRIORITIES,
    RISK_LEVELS,
    Activity,
)
from tracker.models.collaboration import (
    DEFAULT_DEPENDENCY_TYPE,
    ActivityDependency,
    ActivityTemplate,
    Comment,
)
from tracker.services.notification import NotificationService
from tracker.services.permission import can_remove_owned
from tracker.utils.errors import E
from tracker.utils.helpers import commit_or_raise, get_or_raise, parse_int

logger = logging.getLogger(__name__)


# ── Comments ─────────────────────────────────────────────────────────────


def list_comments(activity_id):
    get_or_raise(Activity, activity_id, "Activity")
    return (
        Comment.query.filter_by(activity_id=activity_id)
        .order_by(Comment.created_at.desc(), Comment.id.desc())
        .all()
    )


def add_comment(activity_id, text, user):
    get_or_raise(Activity, activity_id, "Activity")
    text = str(text or "").strip()
    if not text:
        raise ValidationError(
            "Comment text is required", details={"comment_text": "required"}, code=E.VALIDATION_REQUIRED,
        )
    comment = Comment(activity_id=activity_id, user_id=user.id, comment_text=text)
    db.session.add(comment)
    commit_or_raise()
    return comment


def delete_comment(comment_id, user):
    comment = get_or_raise(Comment, comment_id, "Comment")
    if not can_remove_owned(user, comment.user_id):
        raise Forbidden("You can only delete your own comments")
    db.session.delete(comment)
    commit_or_raise()


# ── Dependencies ─────────────────────────────────────────────────────────


def list_dependencies(activity_id):
    get_or_raise(Activity, activity_id, "Activity")
    return (
        ActivityDependency.query.filter_by(activity_id=activity_id)
        .order_by(ActivityDependency.created_at.desc(), ActivityDependency.id.desc())
        .all()
    )


def add_dependency(activity_id, data, user):
    """Record that ``activity_id`` depends on ``data["depends_on_activity_id"]``.

    The dependent activity's owner gets an in-app notification (best-effort).
    """
    activity = get_or_raise(Activity, activity_id, "Activity")
    depends_on_id = parse_int(data.get("depends_on_activity_id"))
    if depends_on_id is None:
        raise ValidationError(
            "depends_on_activity_id is required",
            details={"depends_on_activity_id": "required"},
            code=E.VALIDATION_REQUIRED,
        )
    if depends_on_id == activity.id:
        raise ValidationError(
            "An activity cannot depend on itself", details={"depends_on_activity_id": "invalid"},
        )
    depends_on = get_or_raise(Activity, depends_on_id, "Activity")

    dependency = ActivityDependency(
        activity_id=activity.id,
        depends_on_activity_id=depends_on.id,
        dependency_type=(data.get("dependency_type") or DEFAULT_DEPENDENCY_TYPE),
    )
    db.session.add(dependency)
    commit_or_raise()

    owner_id = activity.owner_id or activity.created_by
    if owner_id:
        NotificationService.notify_quietly(
            user_id=owner_id,
            activity_id=activity.id,
            type="dependency",
            title="New Dependency Added",
            message=f'"{activity.activity_name}" now depends on "{depends_on.activity_name}".',
        )
    logger.info("Dependency %s: activity %s → %s by user %s",
                dependency.id, activity.id, depends_on.id, user.id)
    return dependency


def delete_dependency(dependency_id):
    dependency = get_or_raise(ActivityDependency, dependency_id, "Dependency")
    db.session.delete(dependency)
    commit_or_raise()


# ── Templates ────────────────────────────────────────────────────────────

_TEMPLATE_ENUMS = {
    "gxp_scope": GXP_SCOPES,
    "priority": PRIORITIES,
    "risk_level": RISK_LEVELS,
    "department": DEPARTMENTS,
    "it_type": IT_TYPES,
    "gxp_impact": GXP_IMPACTS,
}


def list_templates():
    return ActivityTemplate.query.order_by(ActivityTemplate.template_name, ActivityTemplate.id).all()


def get_template(template_id):
    return get_or_raise(ActivityTemplate, template_id, "Template")


def create_template(data, user):
    name = (data.get("template_name") or "").strip()
    if not name:
        raise ValidationError(
            "Template name is required", details={"template_name": "required"}, code=E.VALIDATION_REQUIRED,
        )
    invalid = {
        field: f"must be one of: {', '.join(allowed)}"
        for field, allowed in _TEMPLATE_ENUMS.items()
        if data.get(field) and data.get(field) not in allowed
    }
    if invalid:
        raise ValidationError("Invalid field values", details=invalid)

    template = ActivityTemplate(template_name=name, created_by=user.id)
    for field in ActivityTemplate.FIELDS[1:]:
        setattr(template, field, data.get(field) or None)
    db.session.add(template)
    commit_or_raise()
    return template


def delete_template(template_id, user):
    template = get_or_raise(ActivityTemplate, template_id, "Template")
    if not can_remove_owned(user, template.created_by):
        raise Forbidden("You can only delete your own templates")
    db.session.delete(template)
    commit_or_raise()
