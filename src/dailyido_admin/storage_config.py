"""
Python-side storage configuration.
"""

from __future__ import annotations

import os
from typing import Literal, Optional

from langchain_core.runnables import RunnableConfig
from pydantic import BaseModel


class DatabaseConfig(BaseModel):
    url: Optional[str] = None
    create_tables: bool = False


class PhotoStorageConfig(BaseModel):
    provider: Literal["aliyun_oss", "local_fs", "none"] = "local_fs"
    bucket: Optional[str] = None
    endpoint: Optional[str] = None
    access_key_id: Optional[str] = None
    access_key_secret: Optional[str] = None
    prefix: str = "wedding-photos/"
    local_directory: str = os.path.expanduser("~/.dailyido_admin/media")
    max_upload_bytes: int = 20 * 1024 * 1024


class StorageConfig(BaseModel):
    database: DatabaseConfig = DatabaseConfig()
    photos: PhotoStorageConfig = PhotoStorageConfig()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def load_storage_config(config: Optional[RunnableConfig]) -> StorageConfig:
    cfg = StorageConfig()
    configurable = (config or {}).get("configurable", {})

    db_cfg = configurable.get("storage", {}).get("database", {})
    cfg.database = DatabaseConfig(
        url=os.getenv("DAILYIDO_DATABASE_URL", db_cfg.get("url", cfg.database.url)),
        create_tables=_env_bool("DAILYIDO_CREATE_TABLES", db_cfg.get("create_tables", cfg.database.create_tables)),
    )

    photo_cfg = configurable.get("storage", {}).get("photos", {})
    cfg.photos = PhotoStorageConfig(
        provider=os.getenv("PHOTO_STORAGE_PROVIDER", photo_cfg.get("provider", cfg.photos.provider)),
        bucket=os.getenv("PHOTO_BUCKET", photo_cfg.get("bucket", cfg.photos.bucket)),
        endpoint=os.getenv("PHOTO_ENDPOINT", photo_cfg.get("endpoint", cfg.photos.endpoint)),
        access_key_id=os.getenv("PHOTO_ACCESS_KEY_ID", photo_cfg.get("access_key_id", cfg.photos.access_key_id)),
        access_key_secret=os.getenv(
            "PHOTO_ACCESS_KEY_SECRET", photo_cfg.get("access_key_secret", cfg.photos.access_key_secret)
        ),
        prefix=photo_cfg.get("prefix", cfg.photos.prefix),
        local_directory=os.getenv(
            "PHOTO_LOCAL_DIRECTORY",
            photo_cfg.get("local_directory", cfg.photos.local_directory),
        ),
        max_upload_bytes=_env_int(
            "PHOTO_MAX_UPLOAD_BYTES", photo_cfg.get("max_upload_bytes", cfg.photos.max_upload_bytes)
        ),
    )

    return cfg
