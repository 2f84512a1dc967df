"""
Cloud Storage helpers: upload a file under the app's path conventions and
return the URL stored on documents, or delete the blob behind such a URL.
"""
import logging
import re
import time
from typing import BinaryIO, Optional
from urllib.parse import unquote

from google.api_core.exceptions import NotFound

from config import UPLOAD_PUBLIC

logger = logging.getLogger(__name__)

_UNSAFE_NAME = re.compile(r"[^a-z0-9.]", re.IGNORECASE)
_UNSAFE_STEM = re.compile(r"[^a-z0-9]", re.IGNORECASE)

PUBLIC_URL_BASE = "https://storage.googleapis.com"


def safe_file_name(name: str) -> str:
    """Replace anything but letters, digits and dots with underscores."""
    return _UNSAFE_NAME.sub("_", name)


def file_extension(name: str) -> str:
    return name.rsplit(".", 1)[-1] if "." in name else ""


def _millis() -> int:
    return int(time.time() * 1000)


def upload_file(bucket, fileobj: BinaryIO, path: str, content_type: Optional[str] = None) -> str:
    blob = bucket.blob(path)
    blob.upload_from_file(fileobj, content_type=content_type)
    if UPLOAD_PUBLIC:
        blob.make_public()
    logger.info("Uploaded %s", path)
    return blob.public_url


def course_material_path(course_id: str, name: str, title: Optional[str] = None) -> str:
    if title:
        file_name = f"{_UNSAFE_STEM.sub('_', title)}.{file_extension(name)}"
    else:
        file_name = safe_file_name(name)
    return f"courses/{course_id}/materials/{file_name}"


def submission_path(course_id: str, assessment_id: str, user_id: str, name: str) -> str:
    return (
        f"courses/{course_id}/assessments/{assessment_id}/submissions/{user_id}/"
        f"{_millis()}_{safe_file_name(name)}"
    )


def thumbnail_path(name: str) -> str:
    return f"courses/thumbnails/{_millis()}_{safe_file_name(name)}"


def profile_image_path(user_id: str, name: str) -> str:
    return f"users/{user_id}/profile.{file_extension(name)}"


def upload_course_material(bucket, course_id: str, fileobj: BinaryIO, name: str,
                           title: Optional[str] = None, content_type: Optional[str] = None) -> str:
    return upload_file(bucket, fileobj, course_material_path(course_id, name, title), content_type)


def upload_submission(bucket, course_id: str, assessment_id: str, user_id: str,
                      fileobj: BinaryIO, name: str, content_type: Optional[str] = None) -> str:
    path = submission_path(course_id, assessment_id, user_id, name)
    return upload_file(bucket, fileobj, path, content_type)


def upload_course_thumbnail(bucket, fileobj: BinaryIO, name: str,
                            content_type: Optional[str] = None) -> str:
    return upload_file(bucket, fileobj, thumbnail_path(name), content_type)


def upload_profile_image(bucket, user_id: str, fileobj: BinaryIO, name: str,
                         content_type: Optional[str] = None) -> str:
    return upload_file(bucket, fileobj, profile_image_path(user_id, name), content_type)


def blob_path_from_url(bucket, url: Optional[str]) -> Optional[str]:
    """Map a public URL of this bucket back to its blob path."""
    prefix = f"{PUBLIC_URL_BASE}/{bucket.name}/"
    if not url or not url.startswith(prefix):
        return None
    return unquote(url[len(prefix):].split("?", 1)[0])


def delete_file(bucket, path: str) -> None:
    bucket.blob(path).delete()
    logger.info("Deleted %s", path)


def delete_file_at_url(bucket, url: Optional[str]) -> bool:
    """Delete the blob behind a stored URL; links elsewhere are left alone."""
    path = blob_path_from_url(bucket, url)
    if path is None:
        return False
    try:
        delete_file(bucket, path)
    except NotFound:
        logger.warning("Blob %s was already gone", path)
    return True
