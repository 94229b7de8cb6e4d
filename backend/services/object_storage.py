"""
Profile image storage on Cloudinary.

This service handles:
1. Mime-type filtering (jpeg/png only)
2. Upload of raw bytes under a unique public id
3. Deleting a previously stored image by URL or public id

Author: Expense Tracker Team
"""

import re
import time
from io import BytesIO
from pathlib import PurePosixPath
from typing import Optional
from urllib.parse import urlparse

import cloudinary
import cloudinary.exceptions
import cloudinary.uploader

from config import Settings
from services.errors import StorageError, ValidationError
from services.observability import logger, metrics

ALLOWED_MIME_TYPES = ("image/jpeg", "image/png", "image/jpg")

_VERSION_SEGMENT = re.compile(r"^v\d+$")
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_-]+")


def public_id_from_url(url: str) -> str:
    """
    Extract the Cloudinary public id from a delivery URL.

    "https://res.cloudinary.com/demo/image/upload/v17/uploads/a-b.png"
    -> "uploads/a-b". Anything that is not a URL is returned unchanged.
    """
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        return url

    segments = [s for s in parsed.path.split("/") if s]
    if "upload" in segments:
        segments = segments[segments.index("upload") + 1:]
    if segments and _VERSION_SEGMENT.match(segments[0]):
        segments = segments[1:]
    if not segments:
        return url

    segments[-1] = PurePosixPath(segments[-1]).stem
    return "/".join(segments)


class ObjectStorage:
    """Upload/delete images; returns retrievable HTTPS URLs."""

    def __init__(self, folder: str = "expense-tracker/uploads", configured: bool = True):
        self.folder = folder
        self.configured = configured

    @classmethod
    def from_settings(cls, settings: Settings) -> "ObjectStorage":
        if settings.storage_configured:
            cloudinary.config(
                cloud_name=settings.cloudinary_cloud_name,
                api_key=settings.cloudinary_api_key,
                api_secret=settings.cloudinary_api_secret,
                secure=True,
            )
        else:
            logger.warning("Cloudinary not configured; image uploads will fail")
        return cls(folder=settings.cloudinary_folder, configured=settings.storage_configured)

    def _public_id(self, filename: str) -> str:
        stem = _UNSAFE_CHARS.sub("-", PurePosixPath(filename or "image").stem).strip("-") or "image"
        return f"{int(time.time() * 1000)}-{stem}"

    def upload_image(
        self,
        content: bytes,
        filename: str,
        content_type: Optional[str],
        field: str = "profileImage",
    ) -> str:
        """
        Store an image and return its secure URL.

        Raises:
            ValidationError: Unsupported mime type.
            StorageError: Storage not configured or the upload failed.
        """
        if content_type not in ALLOWED_MIME_TYPES:
            raise ValidationError(field, "Only .jpg, .jpeg and .png files are allowed!")
        if not self.configured:
            raise StorageError("Object storage is not configured")

        try:
            result = cloudinary.uploader.upload(
                BytesIO(content),
                public_id=self._public_id(filename),
                folder=self.folder,
                resource_type="image",
            )
        except cloudinary.exceptions.Error as e:
            metrics.increment("storage.upload.error")
            raise StorageError(f"Image upload failed: {e}") from e

        url = result.get("secure_url") or result.get("url")
        if not url:
            raise StorageError("No URL returned from object storage")

        metrics.increment("storage.upload.success")
        logger.info("Image uploaded", public_id=result.get("public_id", ""))
        return url

    def delete_image(self, url_or_public_id: Optional[str]) -> bool:
        """
        Delete a stored image.

        Returns:
            True when storage confirmed the deletion, False otherwise.
            Failures are logged, never raised.
        """
        if not url_or_public_id:
            return False

        public_id = public_id_from_url(url_or_public_id)
        try:
            result = cloudinary.uploader.destroy(public_id, resource_type="image")
        except Exception as e:
            logger.error("Error deleting image", public_id=public_id, error=str(e))
            return False

        deleted = result.get("result") == "ok"
        if deleted:
            logger.info("Deleted image", public_id=public_id)
        else:
            logger.warning("Image not deleted", public_id=public_id, result=result.get("result"))
        return deleted
