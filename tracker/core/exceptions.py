"""
Tracker-wide exception hierarchy.

Services raise these; the app registers one handler against
``TrackerError`` and every subclass is rendered with its own HTTP status
and machine-readable code.

Usage:
    from tracker.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Activity", resource_id=42)
    raise ValidationError("activity_name is required", details={"activity_name": "required"})
"""

from tracker.utils.errors import E


class TrackerError(Exception):
    """Base class. Subclasses set ``status`` and ``code``."""

    status = 500
    code = E.INTERNAL

    def __init__(self, message: str | None = None, details: dict | None = None) -> None:
        self.message = message or self.default_message()
        self.details = details or {}
        super().__init__(self.message)

    def default_message(self) -> str:
        return "Internal server error"

    def to_body(self) -> dict:
        body = {"error": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


class InvalidCredentials(TrackerError):
    status = 401
    code = E.INVALID_CREDENTIALS

    def default_message(self) -> str:
        return "Invalid credentials"


class Unauthorized(TrackerError):
    """Missing, malformed or expired bearer token, or the user no longer exists."""

    status = 401
    code = E.UNAUTHORIZED

    def default_message(self) -> str:
        return "Authentication required"


class Forbidden(TrackerError):
    status = 403
    code = E.FORBIDDEN

    def default_message(self) -> str:
        return "You do not have permission to perform this action"


class NotFoundError(TrackerError):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Activity", "Comment").
        resource_id: The PK that was looked up. Logged, not rendered.
    """

    status = 404
    code = E.NOT_FOUND

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"{resource} not found")


class ValidationError(TrackerError):
    """Input is missing a required field or a value is outside its domain.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown, keyed by field name.
        code: ``E.VALIDATION_REQUIRED`` or ``E.VALIDATION_INVALID``.
    """

    status = 400
    code = E.VALIDATION_INVALID

    def __init__(self, message: str, details: dict | None = None, code: str | None = None) -> None:
        if code:
            self.code = code
        super().__init__(message, details)


class ConflictError(TrackerError):
    """Raised when an operation would violate a unique constraint.

    Args:
        resource: Model name.
        field: The unique field that would be duplicated.
        value: The conflicting value.
    """

    status = 409
    code = E.CONFLICT_DUPLICATE

    def __init__(self, resource: str, field: str, value: str | None = None,
                 message: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(message or f"{resource} with {field}={value!r} already exists")


class DuplicateActivity(ConflictError):
    """Same name, date and creator as an existing activity."""

    def __init__(self, unique_identifier: str) -> None:
        super().__init__(
            "Activity", "unique_identifier", unique_identifier,
            message="An activity with the same name and date already exists",
        )

    def to_body(self) -> dict:
        body = super().to_body()
        body["duplicate"] = True
        return body


class DatabaseError(TrackerError):
    status = 500
    code = E.DATABASE

    def default_message(self) -> str:
        return "Database error"


class ExportFailed(TrackerError):
    status = 500
    code = E.EXPORT_FAILED

    def default_message(self) -> str:
        return "Export failed"


class UploadTooLarge(TrackerError):
    status = 413
    code = E.UPLOAD_TOO_LARGE

    def __init__(self, limit_bytes: int | None = None) -> None:
        msg = "File too large"
        if limit_bytes and limit_bytes >= 1024 * 1024:
            msg += f" (max {limit_bytes // (1024 * 1024)}MB)"
        elif limit_bytes:
            msg += f" (max {limit_bytes} bytes)"
        super().__init__(msg)
