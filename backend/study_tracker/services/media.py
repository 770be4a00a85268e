"""Media attachments for advisor notes, stored in Supabase Storage."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Sequence

from pydantic import BaseModel

from ..constants import ALLOWED_MEDIA_TYPES, MAX_MEDIA_BYTES
from .fanout import FanOutReport

logger = logging.getLogger(__name__)

MEDIA_BUCKET = os.getenv("MEDIA_BUCKET", "note-media")


class InvalidMediaError(ValueError):
    pass


@dataclass
class FileValidation:
    valid: bool
    error: Optional[str] = None


@dataclass
class MediaFile:
    """An attachment waiting to be uploaded."""

    name: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


class MediaItem(BaseModel):
    """Metadata of an uploaded attachment, as stored on the note."""

    name: str
    url: str
    path: str
    type: str  # 'image' or 'document'
    mime_type: str
    size: int


def validate_file(name: Optional[str], content_type: Optional[str], size: Optional[int]) -> FileValidation:
    """Check an attachment against the size limit and the allowed types."""
    if not name:
        return FileValidation(valid=False, error="No file provided")

    if size is not None and size > MAX_MEDIA_BYTES:
        return FileValidation(valid=False, error="File size must be less than 10MB")

    if content_type not in ALLOWED_MEDIA_TYPES:
        return FileValidation(
            valid=False,
            error=f"File type {content_type or 'unknown'} is not supported",
        )

    return FileValidation(valid=True)


def media_kind(content_type: str) -> str:
    return "image" if content_type.startswith("image/") else "document"


class MediaUploader:
    """Uploads attachments to a storage bucket.

    The bucket is a Supabase Storage bucket handle, i.e. the object
    returned by ``client.storage.from_(name)``.
    """

    def __init__(self, bucket: Any):
        self.bucket = bucket

    def upload(self, file: MediaFile, note_id: str, user_id: str) -> MediaItem:
        """Validate and upload a single file.

        Raises:
            InvalidMediaError: If the file fails validation
        """
        validation = validate_file(file.name, file.content_type, file.size)
        if not validation.valid:
            raise InvalidMediaError(f"{file.name}: {validation.error}")

        timestamp = int(datetime.now().timestamp() * 1000)
        path = f"notes/{user_id}/{note_id}/{timestamp}_{file.name}"

        self.bucket.upload(path, file.data, {"content-type": file.content_type})
        url = self.bucket.get_public_url(path)

        logger.info(f"Uploaded {file.name} ({file.size} bytes) to {path}")
        return MediaItem(
            name=file.name,
            url=url,
            path=path,
            type=media_kind(file.content_type),
            mime_type=file.content_type,
            size=file.size,
        )

    def upload_all(self, files: Sequence[MediaFile], note_id: str, user_id: str) -> FanOutReport:
        """Upload files one at a time; a failed upload does not stop the rest."""
        report = FanOutReport()
        for file in files:
            try:
                item = self.upload(file, note_id, user_id)
            except Exception as e:
                logger.error(f"Failed to upload {file.name} for note {note_id}: {e}", exc_info=True)
                report.record_failure(file.name, e)
                continue
            report.record_success(file.name, item)
        return report


def get_media_uploader() -> Optional[MediaUploader]:
    """Uploader bound to the configured bucket, or None when storage is not configured."""
    from ..auth import supabase_client

    if not supabase_client:
        return None
    return MediaUploader(supabase_client.storage.from_(MEDIA_BUCKET))
