"""
media/store.py -- Avatar storage backends.

Two implementations behind the same upload()/destroy() pair:

  CloudinaryMediaStore -- uploads through the Cloudinary SDK. Used when
      CLOUDINARY_CLOUD_NAME is set.
  LocalMediaStore      -- files under MEDIA_ROOT, served by the app at /media.
      The default for local development and tests.

upload() takes anything shaped like FastAPI's UploadFile (.filename, .file)
and returns a MediaObject. Failures raise MediaStoreError; the auth flows turn
that into a generic 500.
"""

from __future__ import annotations

import logging
import re
import shutil
import uuid
from dataclasses import dataclass
from pathlib import Path

import cloudinary.uploader
from cloudinary.exceptions import Error as CloudinaryError

from core.config import Settings

logger = logging.getLogger("passgate.media")

_TIMEOUT = 30  # seconds; uploads carry the whole file
_SAFE_SUFFIX = re.compile(r"^\.[A-Za-z0-9]{1,8}$")


class MediaStoreError(Exception):
    """An upload or delete could not be completed."""


@dataclass(frozen=True)
class MediaObject:
    url: str
    object_id: str


class LocalMediaStore:
    """Store uploads as files on local disk."""

    url_prefix = "/media"

    def __init__(self, root: str) -> None:
        self.root = Path(root)

    def upload(self, upload) -> MediaObject:
        suffix = Path(upload.filename or "").suffix
        if not _SAFE_SUFFIX.match(suffix):
            suffix = ""
        object_id = f"{uuid.uuid4().hex}{suffix}"
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            with (self.root / object_id).open("wb") as out:
                shutil.copyfileobj(upload.file, out)
        except OSError as exc:
            raise MediaStoreError(f"could not write {object_id}") from exc
        return MediaObject(url=f"{self.url_prefix}/{object_id}", object_id=object_id)

    def destroy(self, object_id: str) -> None:
        # object_id comes from our own DB, but never let it escape the root.
        target = (self.root / object_id).resolve()
        if target.parent != self.root.resolve():
            raise MediaStoreError(f"refusing to delete outside media root: {object_id!r}")
        try:
            target.unlink(missing_ok=True)
        except OSError as exc:
            raise MediaStoreError(f"could not delete {object_id}") from exc


class CloudinaryMediaStore:
    """Upload/destroy through the Cloudinary SDK.

    Credentials travel with each call rather than through cloudinary.config(),
    so the SDK's process-wide configuration is never touched.
    """

    def __init__(self, cloud_name: str, api_key: str, api_secret: str) -> None:
        self.cloud_name = cloud_name
        self._options = {
            "cloud_name": cloud_name,
            "api_key": api_key,
            "api_secret": api_secret,
            "secure": True,
            "timeout": _TIMEOUT,
        }

    def upload(self, upload) -> MediaObject:
        try:
            body = cloudinary.uploader.upload(upload.file, resource_type="image", **self._options)
        except CloudinaryError as exc:
            raise MediaStoreError("cloudinary upload failed") from exc
        try:
            return MediaObject(url=body["secure_url"], object_id=body["public_id"])
        except KeyError as exc:
            raise MediaStoreError("cloudinary upload response missing secure_url/public_id") from exc

    def destroy(self, object_id: str) -> None:
        try:
            body = cloudinary.uploader.destroy(object_id, **self._options)
        except CloudinaryError as exc:
            raise MediaStoreError(f"cloudinary destroy failed for {object_id}") from exc
        if body.get("result") not in ("ok", "not found"):
            raise MediaStoreError(f"cloudinary destroy returned {body.get('result')!r}")


def build_media_store(settings: Settings) -> LocalMediaStore | CloudinaryMediaStore:
    """Pick the backend the configuration asks for."""
    if settings.cloudinary_cloud_name:
        logger.info("Media store: Cloudinary (%s)", settings.cloudinary_cloud_name)
        return CloudinaryMediaStore(
            settings.cloudinary_cloud_name,
            settings.cloudinary_api_key,
            settings.cloudinary_api_secret,
        )
    logger.info("Media store: local disk (%s)", settings.media_root)
    return LocalMediaStore(settings.media_root)
