"""Image storage for object photos.

Two backends implement the same interface (``upload(content, filename,
content_type) -> StoredImage`` and ``delete(image_id)``):

- ``LocalImageStore`` writes files into a directory served under ``/uploads``
- ``DriveImageStore`` uploads to Google Drive, using a user OAuth token when
  one exists and a service account otherwise

The API never inspects image bytes beyond checking the declared content type
and size.

Copyright (c) Bryn Gwalad 2025
"""

import io
import logging
import os
import uuid
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path

from google.oauth2.credentials import Credentials as UserCredentials
from google.oauth2.service_account import Credentials as ServiceAccountCredentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaIoBaseUpload

from .config import Settings
from .errors import InvalidInput, UploadFailed

logger = logging.getLogger("inventory_api.uploads")

DRIVE_SCOPES = ["https://www.googleapis.com/auth/drive"]
LOCAL_URL_PREFIX = "/uploads/"


@dataclass
class StoredImage:
    id: str
    url: str

    def to_dict(self) -> dict:
        return asdict(self)


class ImageStore:
    """Interface shared by the image storage backends."""

    def upload(self, content: bytes, filename: str, content_type: str) -> StoredImage:
        raise NotImplementedError

    def delete(self, image_id: str) -> None:
        raise NotImplementedError


def validate_image(content: bytes, content_type: str, max_bytes: int) -> None:
    if not content:
        raise InvalidInput("No file uploaded")
    if not (content_type or "").startswith("image/"):
        raise InvalidInput("Only image files are allowed")
    if len(content) > max_bytes:
        raise InvalidInput(f"Image exceeds the {max_bytes // (1024 * 1024)}MB limit")


def _image_name(filename: str) -> str:
    ts = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%f")
    ext = os.path.splitext(filename or "")[1].lower()
    return f"{ts}-{uuid.uuid4().hex[:8]}{ext}"


class LocalImageStore(ImageStore):
    """Stores images in a local directory; used for development."""

    def __init__(self, directory, url_prefix: str = LOCAL_URL_PREFIX):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self.url_prefix = url_prefix

    def _path(self, image_id: str) -> Path:
        if not image_id or os.path.basename(image_id) != image_id:
            raise InvalidInput("Invalid image id")
        return self.directory / image_id

    def upload(self, content, filename, content_type):
        image_id = _image_name(filename)
        try:
            with open(self._path(image_id), "wb") as dest:
                dest.write(content)
        except OSError as exc:
            logger.exception("Failed to write image %s", image_id)
            raise UploadFailed() from exc
        logger.info("Stored image %s (%d bytes)", image_id, len(content))
        return StoredImage(id=image_id, url=self.url_prefix + image_id)

    def delete(self, image_id):
        path = self._path(image_id)
        try:
            path.unlink()
        except FileNotFoundError:
            logger.warning("Image %s already removed", image_id)
        except OSError as exc:
            logger.exception("Failed to remove image %s", image_id)
            raise UploadFailed("Failed to delete image") from exc


class DriveImageStore(ImageStore):
    """Uploads images to a Google Drive folder and shares them publicly."""

    def __init__(
        self,
        credentials_path: str,
        token_path: str,
        folder_id: str = "",
        base_url: str = "",
        impersonate_user: str = "",
    ):
        self.credentials_path = credentials_path
        self.token_path = token_path
        self.folder_id = folder_id
        self.base_url = base_url
        self.impersonate_user = impersonate_user
        self._service = None

    def _build_service(self):
        # Prefer a user OAuth token (consumer Gmail accounts), then fall back
        # to service account credentials.
        if os.path.exists(self.token_path):
            logger.info("Using OAuth token from %s to build Drive client", self.token_path)
            creds = UserCredentials.from_authorized_user_file(self.token_path, scopes=DRIVE_SCOPES)
            return build("drive", "v3", credentials=creds, cache_discovery=False)

        if not os.path.exists(self.credentials_path):
            raise UploadFailed("Image storage is not configured")
        creds = ServiceAccountCredentials.from_service_account_file(
            self.credentials_path, scopes=DRIVE_SCOPES
        )
        if self.impersonate_user:
            # Requires domain-wide delegation for the service account.
            creds = creds.with_subject(self.impersonate_user)
            logger.info("Impersonating user %s for Drive uploads", self.impersonate_user)
        return build("drive", "v3", credentials=creds, cache_discovery=False)

    @property
    def service(self):
        if self._service is None:
            self._service = self._build_service()
        return self._service

    def upload(self, content, filename, content_type):
        media = MediaIoBaseUpload(io.BytesIO(content), mimetype=content_type or "application/octet-stream")
        body = {"name": _image_name(filename)}
        if self.folder_id:
            body["parents"] = [self.folder_id]
        try:
            # supportsAllDrives is required when the folder lives in a Shared Drive.
            created = self.service.files().create(
                body=body,
                media_body=media,
                fields="id",
                supportsAllDrives=True,
            ).execute()
        except HttpError as exc:
            logger.error("Drive upload HttpError for %s: %s", body["name"], exc)
            if getattr(exc.resp, "status", None) == 403:
                logger.error(
                    "Drive API returned 403. Service accounts have no My Drive quota; "
                    "point GDRIVE_FOLDER_ID at a Shared Drive folder or use an OAuth token."
                )
            raise UploadFailed() from exc

        file_id = created.get("id")
        if not file_id:
            logger.error("Drive upload did not return a file id; response=%s", created)
            raise UploadFailed()

        try:
            self.service.permissions().create(
                fileId=file_id,
                body={"role": "reader", "type": "anyone"},
                supportsAllDrives=True,
            ).execute()
        except HttpError:
            # The file still exists; it is only not publicly readable.
            logger.warning("Could not set public permission for file %s", file_id)

        logger.info("Uploaded image %s to Drive", file_id)
        return StoredImage(id=file_id, url=self.base_url + file_id)

    def delete(self, image_id):
        try:
            self.service.files().delete(fileId=image_id, supportsAllDrives=True).execute()
        except HttpError as exc:
            if getattr(exc.resp, "status", None) == 404:
                logger.warning("Drive file %s already removed", image_id)
                return
            logger.error("Drive delete failed for %s: %s", image_id, exc)
            raise UploadFailed("Failed to delete image") from exc
        logger.info("Deleted image %s from Drive", image_id)


def build_image_store(settings: Settings) -> ImageStore:
    if settings.upload_backend == "drive":
        return DriveImageStore(
            credentials_path=settings.gdrive_credentials_path,
            token_path=settings.gdrive_token_path,
            folder_id=settings.gdrive_folder_id,
            base_url=settings.image_base_url,
            impersonate_user=settings.gdrive_impersonate_user,
        )
    if settings.upload_backend != "local":
        raise ValueError(f"Unknown UPLOAD_BACKEND: {settings.upload_backend}")
    return LocalImageStore(settings.upload_dir)
