"""
Image storage for listing photos.

The storage contract is ``upload(file) -> {"url", "handle"}`` and
``delete(handle)``. Releasing images never raises: a failed delete is logged
and the record change it accompanied stays in place.
"""

import logging
import os
import threading
import uuid
from typing import Iterable, Optional

from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from carmarket.config import Config
from carmarket.exceptions import InvalidInputError
from carmarket.utils.constants import ALLOWED_IMAGE_EXTENSIONS

logger = logging.getLogger(__name__)


class LocalImageStorage:
    """Keeps uploads in a directory and serves them under a URL prefix."""

    _inst = None
    _inst_lock = threading.Lock()

    def __init__(self, root: Optional[str] = None, url_prefix: Optional[str] = None):
        self.root = str(root or Config.UPLOAD_DIR)
        self.url_prefix = (url_prefix or Config.UPLOAD_URL_PREFIX).rstrip("/")

    @classmethod
    def instance(cls):
        with cls._inst_lock:
            if cls._inst is None:
                cls._inst = LocalImageStorage()
        return cls._inst

    def upload(self, file: FileStorage) -> dict:
        name = secure_filename(file.filename or "")
        ext = name.rsplit(".", 1)[-1].lower() if "." in name else ""
        if ext not in ALLOWED_IMAGE_EXTENSIONS:
            raise InvalidInputError("Only jpg, jpeg and png images are allowed.")

        handle = f"{uuid.uuid4().hex}.{ext}"
        os.makedirs(self.root, exist_ok=True)
        file.save(os.path.join(self.root, handle))
        return {"url": f"{self.url_prefix}/{handle}", "handle": handle}

    def delete(self, handle: str) -> None:
        os.remove(os.path.join(self.root, secure_filename(handle)))


def _images():
    """Get the process-wide image storage."""
    return LocalImageStorage.instance()


def upload_images(storage, files: Iterable[FileStorage]) -> list:
    """Upload every non-empty file; already uploaded ones are released if a later one fails."""
    uploaded = []
    try:
        for f in files:
            if f is None or not getattr(f, "filename", ""):
                continue
            uploaded.append(storage.upload(f))
    except InvalidInputError:
        release_images(storage, uploaded)
        raise
    return uploaded


def release_images(storage, images: Iterable) -> int:
    """Delete images by handle; failures are logged and skipped. Returns how many were deleted."""
    released = 0
    for img in images or []:
        handle = img.get("handle") if isinstance(img, dict) else img
        if not handle:
            continue
        try:
            storage.delete(handle)
            released += 1
        except Exception:
            logger.warning("Could not release image %s", handle, exc_info=True)
    return released
