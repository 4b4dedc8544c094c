from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from pydantic import BaseModel, Field, field_validator

try:
    import oss2  # type: ignore
except ImportError:  # pragma: no cover - optional dependency
    oss2 = None

from backend.analytics.models import SubmissionRecord
from backend.analytics.repository import AnalyticsRepository

from .storage_config import PhotoStorageConfig

logger = logging.getLogger(__name__)


class SubmissionError(ValueError):
    """Raised when a submission cannot be accepted as sent."""


class SubmissionForm(BaseModel):
    couple_names: str = Field(..., min_length=1)
    wedding_date: date
    wedding_location: str = Field(..., min_length=1)
    couple_instagram: Optional[str] = None
    vendor_instagrams: Optional[str] = None
    favorite_detail: Optional[str] = None
    terms_accepted: bool = False

    @field_validator("couple_instagram", "vendor_instagrams", "favorite_detail", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


@dataclass(frozen=True)
class PhotoUpload:
    filename: str
    content: bytes
    content_type: Optional[str] = None


def sanitize_storage_key(value: str) -> str:
    sanitized = "".join(ch for ch in value if ch.isalnum() or ch in {"-", "_", "."})
    return sanitized.lstrip(".") or "photo"


def photo_object_key(filename: str, prefix: str = "", timestamp_ms: Optional[int] = None) -> str:
    """``<prefix><epoch-ms>-<filename>``, the layout the public bucket has always used."""
    stamp = timestamp_ms if timestamp_ms is not None else int(time.time() * 1000)
    prefix = prefix.strip("/")
    name = f"{stamp}-{sanitize_storage_key(filename)}"
    return f"{prefix}/{name}" if prefix else name


class AliyunOSSStorage:
    def __init__(self, config: PhotoStorageConfig):
        if oss2 is None:
            raise RuntimeError("oss2 package is required for Aliyun OSS photo storage.")
        if not all([config.bucket, config.endpoint, config.access_key_id, config.access_key_secret]):
            raise ValueError("Aliyun OSS storage is missing required configuration.")

        auth = oss2.Auth(config.access_key_id, config.access_key_secret)
        self.bucket_name = config.bucket
        self.endpoint = config.endpoint
        self.prefix = config.prefix
        self.bucket = oss2.Bucket(auth, config.endpoint, config.bucket)

    def upload(self, upload: PhotoUpload) -> str:
        key = photo_object_key(upload.filename, self.prefix)
        headers = {"Content-Type": upload.content_type} if upload.content_type else None
        self.bucket.put_object(key, upload.content, headers=headers)
        return self.public_url(key)

    def public_url(self, key: str) -> str:
        sanitized_endpoint = self.endpoint.replace("https://", "").replace("http://", "")
        return f"https://{self.bucket_name}.{sanitized_endpoint}/{key}"


class LocalPhotoStorage:
    """Writes photos below ``local_directory``; the server exposes it at ``/media``."""

    def __init__(self, config: PhotoStorageConfig):
        self.base_dir = Path(config.local_directory).expanduser()
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self.prefix = config.prefix

    def upload(self, upload: PhotoUpload) -> str:
        key = photo_object_key(upload.filename, self.prefix)
        target = self.base_dir / key
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(upload.content)
        return self.public_url(key)

    def public_url(self, key: str) -> str:
        return f"/media/{key}"


class StorageManager:
    def __init__(self):
        self._photo_instances: Dict[str, object] = {}

    def get_photo_storage(self, config: PhotoStorageConfig):
        if config.provider == "none":
            raise SubmissionError("Photo uploads are disabled.")
        key = f"{config.provider}:{config.bucket}:{config.endpoint}:{config.local_directory}:{config.prefix}"
        if key not in self._photo_instances:
            if config.provider == "aliyun_oss":
                self._photo_instances[key] = AliyunOSSStorage(config)
            else:
                self._photo_instances[key] = LocalPhotoStorage(config)
        return self._photo_instances[key]

    async def upload_photos(self, uploads: Sequence[PhotoUpload], config: PhotoStorageConfig) -> List[str]:
        storage = self.get_photo_storage(config)
        # Reject the batch before anything is written
        for upload in uploads:
            if len(upload.content) > config.max_upload_bytes:
                raise SubmissionError(f"{upload.filename} is larger than the upload limit.")
        urls: List[str] = []
        for upload in uploads:
            urls.append(await asyncio.to_thread(storage.upload, upload))
        return urls

    async def create_submission(
        self,
        form: SubmissionForm,
        uploads: Sequence[PhotoUpload],
        repository: AnalyticsRepository,
        config: PhotoStorageConfig,
    ) -> SubmissionRecord:
        """Upload the photos first, then insert the submission as ``pending``."""
        if not form.terms_accepted:
            raise SubmissionError("Terms must be accepted.")
        uploads = [upload for upload in uploads if upload.content]
        if not uploads:
            raise SubmissionError("At least one photo is required.")

        photo_urls = await self.upload_photos(uploads, config)
        record = SubmissionRecord(
            couple_names=form.couple_names,
            couple_instagram=form.couple_instagram,
            wedding_date=form.wedding_date,
            wedding_location=form.wedding_location,
            vendor_instagrams=form.vendor_instagrams,
            favorite_detail=form.favorite_detail,
            photo_urls=tuple(photo_urls),
            terms_accepted=True,
            status="pending",
            created_at=datetime.now(timezone.utc),
        )
        stored = await asyncio.to_thread(repository.insert_submission, record)
        logger.info("Stored submission %s with %d photos", stored.id, len(photo_urls))
        return stored
