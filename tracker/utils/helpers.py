"""Shared utility functions used by services and blueprints.

get_or_raise:     PK lookup that raises NotFoundError
parse_date:       lenient date parsing (None on bad input)
require_date:     strict date parsing (ValidationError on bad input)
commit_or_raise:  commit with rollback + typed errors
"""
import logging
from datetime import date, datetime

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from tracker.core.exceptions import DatabaseError, NotFoundError, ValidationError
from tracker.models import db
from tracker.utils.errors import E

logger = logging.getLogger(__name__)


def get_or_raise(model, pk, label=None):
    """Fetch a model instance by primary key or raise NotFoundError."""
    obj = db.session.get(model, pk)
    if obj is None:
        raise NotFoundError(label or model.__name__, pk)
    return obj


def parse_date(value):
    """Parse a date string (ISO or DD.MM.YYYY) to a date object.

    Returns None for empty/invalid input. Supports:
    - YYYY-MM-DD (ISO format)
    - YYYY-MM-DDTHH:MM:SS (datetime ISO → .date())
    - DD.MM.YYYY
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except (ValueError, TypeError):
        pass
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).date()
    except (ValueError, TypeError):
        pass
    try:
        return datetime.strptime(str(value), "%d.%m.%Y").date()
    except (ValueError, TypeError):
        return None


def require_date(value, field="activity_date"):
    """Like parse_date() but raises ValidationError on bad input."""
    parsed = parse_date(value)
    if parsed is None:
        raise ValidationError(
            f"{field} must be a valid date (YYYY-MM-DD)",
            details={field: "invalid"},
            code=E.VALIDATION_INVALID,
        )
    return parsed


def parse_int(value, default=None):
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


# ── Database commit helper ───────────────────────────────────────────────────

def commit_or_raise(on_integrity=None):
    """Commit the current session; roll back and raise a TrackerError on failure.

    Args:
        on_integrity: Optional zero-arg callable returning the exception to
            raise for an IntegrityError (e.g. a DuplicateActivity).
            Defaults to DatabaseError.
    """
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Integrity error on commit: %s", exc.orig)
        if on_integrity is not None:
            raise on_integrity() from exc
        raise DatabaseError("Duplicate or constraint violation") from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Database error on commit")
        raise DatabaseError() from exc
