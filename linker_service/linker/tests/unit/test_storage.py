import pytest
import io
import re
import time
from types import SimpleNamespace
from unittest.mock import patch, MagicMock

from linker.storage import (
    ObjectStore, StorageError, UploadRejected, create_object_store,
    is_mime_type_allowed, guess_mime_type, get_file_extension, generate_object_key
)

def test_is_mime_type_allowed():
    allowed = ["image/*", "application/pdf"]

    assert is_mime_type_allowed("image/png", allowed)
    assert is_mime_type_allowed("image/svg+xml", allowed)
    assert is_mime_type_allowed("application/pdf", allowed)
    assert not is_mime_type_allowed("application/zip", allowed)
    assert not is_mime_type_allowed("imagery/png", allowed)

    # Empty allow-list accepts everything
    assert is_mime_type_allowed("application/x-anything", [])

def test_guess_mime_type():
    assert guess_mime_type("report.pdf") == "application/pdf"
    assert guess_mime_type("no-extension") == "application/octet-stream"
    assert guess_mime_type("") == "application/octet-stream"

def test_get_file_extension():
    assert get_file_extension("Photo.JPG") == ".jpg"
    assert get_file_extension("archive.tar.gz") == ".gz"
    assert get_file_extension("README") == ""

def test_generate_object_key():
    key = generate_object_key("photo.png")
    assert re.fullmatch(r"\d{4}/\d{2}/\d{2}/[0-9a-f-]{36}\.png", key)
    assert generate_object_key("photo.png") != key

@pytest.mark.asyncio
async def test_put_get_delete(object_store, fake_minio):
    await object_store.put("a/b.txt", io.BytesIO(b"payload"), 7, "text/plain")
    assert fake_minio.objects[("test-bucket", "a/b.txt")]["data"] == b"payload"

    assert b"".join(await object_store.get("a/b.txt")) == b"payload"

    await object_store.delete("a/b.txt")
    assert fake_minio.objects == {}

@pytest.mark.asyncio
async def test_get_streams_in_chunks(fake_minio):
    store = ObjectStore(fake_minio, "bucket", chunk_size=4)
    await store.put("k", io.BytesIO(b"0123456789"), 10, "text/plain")

    assert list(await store.get("k")) == [b"0123", b"4567", b"89"]

@pytest.mark.asyncio
async def test_get_releases_connection_after_streaming(object_store, fake_minio):
    response = MagicMock()
    response.stream.return_value = iter([b"da", b"ta"])

    with patch.object(fake_minio, "get_object", return_value=response):
        body = await object_store.get("k")

    # Connection stays open until the body is consumed
    response.close.assert_not_called()

    assert b"".join(body) == b"data"
    response.close.assert_called_once()
    response.release_conn.assert_called_once()

@pytest.mark.asyncio
async def test_get_releases_connection_when_stream_fails(object_store, fake_minio):
    response = MagicMock()
    response.stream.side_effect = ConnectionError("reset")

    with patch.object(fake_minio, "get_object", return_value=response):
        body = await object_store.get("k")

    with pytest.raises(ConnectionError):
        list(body)
    response.release_conn.assert_called_once()

@pytest.mark.asyncio
async def test_upload(object_store, fake_minio):
    result = await object_store.upload("notes.txt", io.BytesIO(b"hello"), 5, "text/plain")

    assert result.size == 5
    assert result.mime_type == "text/plain"
    assert result.key.endswith(".txt")

    stored = fake_minio.objects[("test-bucket", result.key)]
    assert stored["data"] == b"hello"
    assert stored["content_type"] == "text/plain"
    assert stored["metadata"]["original-filename"] == "notes.txt"

@pytest.mark.asyncio
async def test_upload_rejects_large_file(fake_minio):
    store = ObjectStore(fake_minio, "bucket", max_file_size_mb=1)
    limit = 1024 * 1024

    stream = MagicMock()
    with pytest.raises(UploadRejected):
        await store.upload("big.bin", stream, limit + 1, "application/octet-stream")
    # Rejected before any byte is read
    stream.read.assert_not_called()
    assert fake_minio.objects == {}

    result = await store.upload("ok.bin", io.BytesIO(b"x" * limit), limit, "application/octet-stream")
    assert result.size == limit

@pytest.mark.asyncio
async def test_upload_rejects_mime_type(object_store, fake_minio):
    with pytest.raises(UploadRejected):
        await object_store.upload("tool.exe", io.BytesIO(b"MZ"), 2, "application/x-msdownload")
    assert fake_minio.objects == {}

@pytest.mark.asyncio
async def test_client_errors_become_storage_errors(object_store, fake_minio):
    with pytest.raises(StorageError):
        await object_store.get("missing")

    fake_minio.fail_remove = True
    with pytest.raises(StorageError):
        await object_store.delete("anything")

@pytest.mark.asyncio
async def test_timeouts(fake_minio):
    store = ObjectStore(fake_minio, "bucket", download_timeout=0.05, delete_timeout=0.05)

    def slow(*args, **kwargs):
        time.sleep(0.5)

    with patch.object(fake_minio, "get_object", side_effect=slow):
        with pytest.raises(StorageError, match="Таймаут"):
            await store.get("k")

    with patch.object(fake_minio, "remove_object", side_effect=slow):
        with pytest.raises(StorageError, match="Таймаут"):
            await store.delete("k")

def test_create_object_store_disabled():
    assert create_object_store(SimpleNamespace(S3_ENABLED=False)) is None

def make_settings(**overrides):
    values = dict(
        S3_ENABLED=True, S3_ENDPOINT="minio:9000", S3_ACCESS_KEY_ID="key", S3_SECRET_ACCESS_KEY="secret",
        S3_USE_SSL=False, S3_REGION="us-east-1", S3_BUCKET_NAME="files", S3_MAX_FILE_SIZE_MB=5,
        S3_ALLOWED_MIME_TYPES=["text/*"], S3_UPLOAD_TIMEOUT=1.0, S3_DOWNLOAD_TIMEOUT=2.0, S3_DELETE_TIMEOUT=3.0
    )
    values.update(overrides)
    return SimpleNamespace(**values)

def test_create_object_store_creates_bucket():
    client = MagicMock()
    client.bucket_exists.return_value = False

    with patch("linker.storage.Minio", return_value=client) as mock_minio:
        store = create_object_store(make_settings())

    mock_minio.assert_called_once_with(
        "minio:9000", access_key="key", secret_key="secret", secure=False, region="us-east-1"
    )
    client.make_bucket.assert_called_once_with("files")
    assert store.bucket == "files"
    assert store.max_file_size == 5 * 1024 * 1024
    assert store.allowed_mime_types == ["text/*"]
    assert store.delete_timeout == 3.0

def test_create_object_store_unreachable():
    client = MagicMock()
    client.bucket_exists.side_effect = ConnectionError("refused")

    with patch("linker.storage.Minio", return_value=client):
        assert create_object_store(make_settings()) is None
