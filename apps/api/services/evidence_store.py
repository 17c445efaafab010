"""
Evidence store: proof images uploaded with a verification attempt.

Files land under UPLOADS_DIR with a collision-free name. The verification
flow deletes them again when an attempt is abandoned before its completion
row is written.
"""
import logging
import os
import secrets
import time
from pathlib import Path
from typing import BinaryIO, Optional

from core.config import settings

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {".jpeg", ".jpg", ".png", ".gif", ".webp"}
ALLOWED_MEDIA_TYPES = {"image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp"}
CHUNK_SIZE = 1024 * 1024


class UploadRejected(Exception):
    """The upload is not an acceptable evidence file."""

    def __init__(self, message: str, too_large: bool = False):
        super().__init__(message)
        self.too_large = too_large


def uploads_dir() -> Path:
    path = Path(settings.UPLOADS_DIR)
    path.mkdir(parents=True, exist_ok=True)
    return path


def _unique_name(original_filename: str) -> str:
    ext = os.path.splitext(original_filename or "")[1].lower()
    return f"{int(time.time() * 1000)}-{secrets.token_hex(6)}{ext}"


def check_upload(filename: Optional[str], content_type: Optional[str]) -> None:
    ext = os.path.splitext(filename or "")[1].lower()
    if ext not in ALLOWED_EXTENSIONS or (content_type or "").lower() not in ALLOWED_MEDIA_TYPES:
        raise UploadRejected("Only image files are allowed (JPG, PNG, GIF, WEBP)")


def save_upload(
    stream: BinaryIO,
    filename: Optional[str],
    content_type: Optional[str],
    max_bytes: Optional[int] = None,
) -> str:
    """
    Copy an uploaded image to the evidence store and return its path.

    Raises UploadRejected for disallowed types or files over max_bytes; a
    partially written file is removed before raising.
    """
    check_upload(filename, content_type)
    limit = max_bytes or settings.UPLOAD_MAX_FILE_BYTES
    stored_path = uploads_dir() / _unique_name(filename)

    total = 0
    try:
        with stored_path.open("wb") as out:
            while True:
                chunk = stream.read(CHUNK_SIZE)
                if not chunk:
                    break
                total += len(chunk)
                if total > limit:
                    raise UploadRejected(
                        f"Image is too large. Maximum size is {limit // (1024 * 1024)}MB.",
                        too_large=True,
                    )
                out.write(chunk)
    except BaseException:
        delete_evidence(str(stored_path))
        raise

    logger.debug(f"Stored evidence upload {stored_path} ({total} bytes)")
    return str(stored_path)


def delete_evidence(path: Optional[str]) -> None:
    """Delete a stored upload. A missing file is fine; other errors are logged."""
    if not path:
        return
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.error(f"Failed to delete file: {path}: {e}")
