"""
Role-Based Access Control.

Two fixed roles map to a fixed set of permissions. Endpoints and
services check permissions, never raw role strings.

Usage:
    from tracker.services.permission import Permission, check_permission, has_permission

    if has_permission(user, Permission.VIEW_ALL_ACTIVITIES):
        ...
    check_permission(user, Permission.MANAGE_USERS)  # raises Forbidden
"""

from enum import Enum

from tracker.core.exceptions import Forbidden
from tracker.models.user import Role


class Permission(str, Enum):
    MANAGE_USERS = "manage_users"
    VIEW_ALL_ACTIVITIES = "view_all_activities"
    EDIT_ANY_ACTIVITY = "edit_any_activity"
    DELETE_ACTIVITY = "delete_activity"
    ASSIGN_ACTIVITY = "assign_activity"
    VIEW_AUDIT_HISTORY = "view_audit_history"
    MODERATE_CONTENT = "moderate_content"
    EXPORT_ALL = "export_all"
    MANAGE_SCHEDULER = "manage_scheduler"


ROLE_PERMISSIONS: dict[str, frozenset] = {
    Role.ADMIN.value: frozenset(Permission),
    Role.CLIENT.value: frozenset(),
}


def has_permission(user, permission: Permission) -> bool:
    if user is None:
        return False
    return permission in ROLE_PERMISSIONS.get(user.role, frozenset())


def check_permission(user, permission: Permission, message: str | None = None) -> None:
    """Raise Forbidden unless ``user`` holds ``permission``."""
    if not has_permission(user, permission):
        raise Forbidden(message)


def can_edit_activity(user, activity) -> bool:
    """Creator or anyone with EDIT_ANY_ACTIVITY."""
    return activity.created_by == user.id or has_permission(user, Permission.EDIT_ANY_ACTIVITY)


def can_view_activity(user, activity) -> bool:
    if has_permission(user, Permission.VIEW_ALL_ACTIVITIES) or activity.is_shared:
        return True
    return user.id in (activity.created_by, activity.owner_id, activity.backup_person)


def can_remove_owned(user, owner_id) -> bool:
    """Author / uploader / template creator, or a moderator."""
    return owner_id == user.id or has_permission(user, Permission.MODERATE_CONTENT)
