"""Tests for submissions, photo storage and storage configuration."""

import asyncio
from unittest import mock

import pytest
from pydantic import ValidationError

from backend.analytics.repository import InMemoryAnalyticsRepository
from dailyido_admin import storage
from dailyido_admin.storage import (
    LocalPhotoStorage,
    PhotoUpload,
    StorageManager,
    SubmissionError,
    SubmissionForm,
    photo_object_key,
    sanitize_storage_key,
)
from dailyido_admin.storage_config import PhotoStorageConfig, load_storage_config


@pytest.fixture
def photo_config(tmp_path):
    return PhotoStorageConfig(provider="local_fs", local_directory=str(tmp_path / "media"))


@pytest.fixture
def form():
    return SubmissionForm(
        couple_names="Ana & Ben",
        wedding_date="2026-06-14",
        wedding_location="Napa, CA",
        couple_instagram="  ",
        terms_accepted=True,
    )


def test_sanitize_storage_key():
    assert sanitize_storage_key("our day (1).JPG") == "ourday1.JPG"
    assert sanitize_storage_key("../../etc/passwd") == "etcpasswd"
    assert sanitize_storage_key("???") == "photo"


def test_photo_object_key_is_timestamp_prefixed():
    assert photo_object_key("first dance.jpg", "wedding-photos/", timestamp_ms=1760875200000) == (
        "wedding-photos/1760875200000-firstdance.jpg"
    )
    assert photo_object_key("a.png", "", timestamp_ms=5) == "5-a.png"


def test_submission_form_normalises_blank_optionals(form):
    assert form.couple_instagram is None
    assert form.wedding_date.isoformat() == "2026-06-14"


def test_submission_form_requires_names():
    with pytest.raises(ValidationError):
        SubmissionForm(couple_names="", wedding_date="2026-06-14", wedding_location="Napa")


def test_local_storage_writes_file(photo_config, tmp_path):
    url = LocalPhotoStorage(photo_config).upload(PhotoUpload("kiss.jpg", b"jpeg-bytes", "image/jpeg"))

    assert url.startswith("/media/wedding-photos/")
    assert url.endswith("-kiss.jpg")
    written = tmp_path / "media" / url[len("/media/"):]
    assert written.read_bytes() == b"jpeg-bytes"


def test_create_submission_uploads_then_stores_pending(form, photo_config):
    repository = InMemoryAnalyticsRepository()
    uploads = [PhotoUpload("a.jpg", b"1"), PhotoUpload("b.jpg", b"2"), PhotoUpload("empty.jpg", b"")]

    stored = asyncio.run(StorageManager().create_submission(form, uploads, repository, photo_config))

    assert stored.status == "pending"
    assert stored.id
    assert len(stored.photo_urls) == 2
    assert stored.couple_instagram is None
    assert repository.submissions == [stored]


def test_create_submission_requires_terms(form, photo_config):
    repository = InMemoryAnalyticsRepository()
    declined = form.model_copy(update={"terms_accepted": False})

    with pytest.raises(SubmissionError, match="Terms"):
        asyncio.run(StorageManager().create_submission(declined, [PhotoUpload("a.jpg", b"1")], repository, photo_config))

    assert repository.submissions == []


def test_create_submission_requires_a_photo(form, photo_config):
    with pytest.raises(SubmissionError, match="photo"):
        asyncio.run(
            StorageManager().create_submission(form, [], InMemoryAnalyticsRepository(), photo_config)
        )


def test_upload_rejects_oversized_photos(tmp_path):
    config = PhotoStorageConfig(local_directory=str(tmp_path), max_upload_bytes=4)

    with pytest.raises(SubmissionError):
        asyncio.run(StorageManager().upload_photos([PhotoUpload("big.jpg", b"12345")], config))


def test_oversized_photo_later_in_batch_writes_nothing(tmp_path):
    config = PhotoStorageConfig(local_directory=str(tmp_path), max_upload_bytes=4)
    uploads = [PhotoUpload("ok.jpg", b"123"), PhotoUpload("big.jpg", b"123456")]

    with pytest.raises(SubmissionError, match="big.jpg"):
        asyncio.run(StorageManager().upload_photos(uploads, config))

    assert [path for path in tmp_path.rglob("*") if path.is_file()] == []


def test_disabled_provider_rejects_uploads(tmp_path):
    with pytest.raises(SubmissionError):
        StorageManager().get_photo_storage(PhotoStorageConfig(provider="none"))


def test_aliyun_storage_puts_object_and_returns_public_url():
    config = PhotoStorageConfig(
        provider="aliyun_oss",
        bucket="dailyido",
        endpoint="https://oss-us-west-1.aliyuncs.com",
        access_key_id="id",
        access_key_secret="secret",
    )
    fake_oss = mock.MagicMock()

    with mock.patch.object(storage, "oss2", fake_oss):
        backend = StorageManager().get_photo_storage(config)
        url = backend.upload(PhotoUpload("vows.jpg", b"data", "image/jpeg"))

    key = fake_oss.Bucket.return_value.put_object.call_args.args[0]
    assert key.startswith("wedding-photos/") and key.endswith("-vows.jpg")
    assert url == f"https://dailyido.oss-us-west-1.aliyuncs.com/{key}"
    fake_oss.Auth.assert_called_once_with("id", "secret")


def test_aliyun_storage_requires_credentials():
    with mock.patch.object(storage, "oss2", mock.MagicMock()):
        with pytest.raises(ValueError):
            StorageManager().get_photo_storage(PhotoStorageConfig(provider="aliyun_oss", bucket="b"))


def test_load_storage_config_reads_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("DAILYIDO_DATABASE_URL", "sqlite:///x.db")
    monkeypatch.setenv("DAILYIDO_CREATE_TABLES", "yes")
    monkeypatch.setenv("PHOTO_STORAGE_PROVIDER", "aliyun_oss")
    monkeypatch.setenv("PHOTO_BUCKET", "dailyido")
    monkeypatch.setenv("PHOTO_LOCAL_DIRECTORY", str(tmp_path))
    monkeypatch.setenv("PHOTO_MAX_UPLOAD_BYTES", "not-a-number")

    cfg = load_storage_config(None)

    assert cfg.database.url == "sqlite:///x.db"
    assert cfg.database.create_tables is True
    assert cfg.photos.provider == "aliyun_oss"
    assert cfg.photos.bucket == "dailyido"
    assert cfg.photos.local_directory == str(tmp_path)
    assert cfg.photos.max_upload_bytes == 20 * 1024 * 1024


def test_load_storage_config_from_runnable_config():
    config = {"configurable": {"storage": {"photos": {"provider": "none", "prefix": "uploads/"}}}}

    cfg = load_storage_config(config)

    assert cfg.database.url is None
    assert cfg.photos.provider == "none"
    assert cfg.photos.prefix == "uploads/"
