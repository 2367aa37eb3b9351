"""
Photo Service — site-visit photo storage on local disk.

Files land in ``UPLOAD_FOLDER`` under a generated name:

    <section>-slot<n>-<yyyyMMddHHmmssfff>-<32 hex>.<ext>

Size and extension are checked before anything is written.  Lookups
only ever use the basename of the requested name, so a crafted path
cannot escape the upload directory.
"""

import logging
import os
import re
import uuid

from flask import current_app
from werkzeug.utils import secure_filename

from app.core.exceptions import NotFoundError, ValidationError
from app.utils.helpers import utcnow

logger = logging.getLogger(__name__)

_SECTION_RE = re.compile(r"[^a-z0-9_-]")


def upload_folder() -> str:
    return current_app.config["UPLOAD_FOLDER"]


def sanitize_section(section) -> str:
    """Lower-case and strip everything outside ``[a-z0-9_-]``; empty → ``general``."""
    cleaned = _SECTION_RE.sub("", (section or "").strip().lower())
    return cleaned or "general"


def parse_slot(slot) -> int:
    try:
        value = int(slot) if slot not in (None, "") else 0
    except (TypeError, ValueError):
        raise ValidationError("slot must be an integer", details={"slot": "invalid"})
    if value < 0:
        raise ValidationError("slot must not be negative", details={"slot": "invalid"})
    return value


def _file_size(storage) -> int:
    stream = storage.stream
    pos = stream.tell()
    stream.seek(0, os.SEEK_END)
    size = stream.tell()
    stream.seek(pos)
    return size


def save_photo(storage, section=None, slot=None) -> dict:
    """Validate and persist an uploaded photo.

    Args:
        storage: werkzeug ``FileStorage`` from ``request.files``.

    Returns:
        ``{"file_name", "section", "slot", "size"}``
    """
    if storage is None or not storage.filename:
        raise ValidationError("No file uploaded", details={"file": "required"})

    cfg = current_app.config
    ext = os.path.splitext(storage.filename)[1].lower()
    if ext not in cfg["ALLOWED_PHOTO_EXTENSIONS"]:
        raise ValidationError(
            "Only jpg, jpeg, png and webp files are allowed",
            details={"file": "invalid extension"},
        )

    size = _file_size(storage)
    if size == 0:
        raise ValidationError("Uploaded file is empty", details={"file": "empty"})
    if size > cfg["MAX_PHOTO_BYTES"]:
        raise ValidationError(
            "File exceeds maximum size of 10MB",
            details={"file": "too large", "max_bytes": cfg["MAX_PHOTO_BYTES"]},
        )

    safe_section = sanitize_section(section)
    slot_no = parse_slot(slot)
    stamp = utcnow().strftime("%Y%m%d%H%M%S%f")[:-3]
    file_name = f"{safe_section}-slot{slot_no}-{stamp}-{uuid.uuid4().hex}{ext}"

    folder = upload_folder()
    os.makedirs(folder, exist_ok=True)
    storage.save(os.path.join(folder, file_name))
    logger.info("Photo stored: %s (%d bytes)", file_name, size, extra={"event_type": "photo_uploaded"})
    return {"file_name": file_name, "section": safe_section, "slot": slot_no, "size": size}


def resolve_photo(file_name) -> str:
    """Return the safe basename of a stored photo, or raise NotFoundError."""
    base = os.path.basename((file_name or "").replace("\\", "/"))
    safe = secure_filename(base)
    if not safe or safe != base:
        raise NotFoundError(resource="Photo", resource_id=file_name)
    if not os.path.isfile(os.path.join(upload_folder(), safe)):
        raise NotFoundError(resource="Photo", resource_id=file_name)
    return safe
