"""Attachment storage service.

Files live in ``UPLOAD_FOLDER`` under ``<uuid>-<secure original name>``;
the Attachment row only carries metadata. The size limit is checked on the
incoming stream before anything is written to the upload folder, and a
file whose metadata row cannot be committed is removed again.
"""
import logging
import os
import uuid

from flask import current_app
from werkzeug.utils import secure_filename

from tracker.core.exceptions import DatabaseError, Forbidden, NotFoundError, UploadTooLarge, ValidationError
from tracker.models import db
from tracker.models.activity import Activity
from tracker.models.collaboration import Attachment
from tracker.services.permission import can_remove_owned
from tracker.utils.errors import E
from tracker.utils.helpers import commit_or_raise, get_or_raise

logger = logging.getLogger(__name__)


def upload_folder():
    folder = current_app.config["UPLOAD_FOLDER"]
    os.makedirs(folder, exist_ok=True)
    return folder


def stored_path(filename):
    return os.path.join(upload_folder(), filename)


def remove_stored_file(filename):
    """Delete a stored file if present. Returns True when a file was removed."""
    path = stored_path(filename)
    try:
        os.remove(path)
        return True
    except FileNotFoundError:
        return False
    except OSError:
        logger.exception("Could not remove stored file %s", path)
        return False


def _stream_size(file_storage):
    stream = file_storage.stream
    pos = stream.tell()
    stream.seek(0, os.SEEK_END)
    size = stream.tell()
    stream.seek(pos)
    return size


def list_attachments(activity_id):
    get_or_raise(Activity, activity_id, "Activity")
    return (
        Attachment.query.filter_by(activity_id=activity_id)
        .order_by(Attachment.uploaded_at.desc(), Attachment.id.desc())
        .all()
    )


def save_attachment(activity_id, file_storage, user):
    """Persist an uploaded file and its metadata row.

    Raises:
        ValidationError: no file in the request.
        UploadTooLarge: file exceeds MAX_UPLOAD_BYTES (nothing written).
        DatabaseError: metadata commit failed (file removed).
    """
    get_or_raise(Activity, activity_id, "Activity")
    if file_storage is None or not file_storage.filename:
        raise ValidationError("No file uploaded", details={"file": "required"}, code=E.VALIDATION_REQUIRED)

    limit = current_app.config["MAX_UPLOAD_BYTES"]
    size = _stream_size(file_storage)
    if size > limit:
        logger.info("Rejected upload of %d bytes for activity %s", size, activity_id)
        raise UploadTooLarge(limit)

    original_name = file_storage.filename
    safe_name = secure_filename(original_name) or "file"
    filename = f"{uuid.uuid4().hex}-{safe_name}"
    file_storage.save(stored_path(filename))

    attachment = Attachment(
        activity_id=activity_id,
        filename=filename,
        original_name=original_name,
        file_size=size,
        mime_type=file_storage.mimetype or "application/octet-stream",
        uploaded_by=user.id,
    )
    db.session.add(attachment)
    try:
        commit_or_raise()
    except DatabaseError:
        remove_stored_file(filename)
        raise

    logger.info("Attachment %s (%d bytes) stored for activity %s", attachment.id, size, activity_id)
    return attachment


def get_download(attachment_id):
    """Return (attachment, absolute path). NotFoundError if row or file is missing."""
    attachment = get_or_raise(Attachment, attachment_id, "Attachment")
    path = stored_path(attachment.filename)
    if not os.path.isfile(path):
        logger.warning("Attachment %s row exists but file %s is missing", attachment.id, path)
        raise NotFoundError("File", attachment.filename)
    return attachment, os.path.abspath(path)


def delete_attachment(attachment_id, user):
    attachment = get_or_raise(Attachment, attachment_id, "Attachment")
    if not can_remove_owned(user, attachment.uploaded_by):
        raise Forbidden("Not authorized")
    filename = attachment.filename
    db.session.delete(attachment)
    commit_or_raise()
    remove_stored_file(filename)
