import os

os.environ["TESTING"] = "True"

import io
import pytest
import fakeredis
from fastapi.testclient import TestClient
from datetime import datetime, timezone

from linker.database import Base, get_db, SessionLocal, engine
from linker.main import app as fastapi_app
from linker.dependencies import get_client_info, get_object_store
from linker.storage import ObjectStore
import linker.cache
from fastapi import Request

# Mock Redis client
@pytest.fixture(scope="function")
def redis_mock():
    original_redis = linker.cache.redis_client

    fake_redis = fakeredis.FakeStrictRedis(decode_responses=True)

    linker.cache.redis_client = fake_redis

    yield fake_redis

    linker.cache.redis_client = original_redis

@pytest.fixture(scope="function")
def db():
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

        Base.metadata.drop_all(bind=engine)

async def mock_client_info(request: Request = None):
    return {
        "ip_address": "127.0.0.1",
        "user_agent": "Test Client",
        "referer": "https://test.com",
        "timestamp": datetime.now(timezone.utc)
    }

class FakeObject:
    def __init__(self, data: bytes):
        self.data = data
        self.closed = False
        self.released = False

    def stream(self, amt=65536):
        for start in range(0, len(self.data), amt):
            yield self.data[start:start + amt]

    def close(self):
        self.closed = True

    def release_conn(self):
        self.released = True

class FakeMinio:
    """In-memory stand-in for the minio client"""

    def __init__(self):
        self.objects = {}
        self.fail_get = False
        self.fail_remove = False

    def put_object(self, bucket, key, data, length, content_type=None, metadata=None):
        self.objects[(bucket, key)] = {
            "data": data.read(length),
            "content_type": content_type,
            "metadata": metadata,
        }

    def get_object(self, bucket, key):
        if self.fail_get or (bucket, key) not in self.objects:
            raise RuntimeError(f"no such object: {key}")
        return FakeObject(self.objects[(bucket, key)]["data"])

    def remove_object(self, bucket, key):
        if self.fail_remove:
            raise RuntimeError("remove failed")
        self.objects.pop((bucket, key), None)

@pytest.fixture
def fake_minio():
    return FakeMinio()

@pytest.fixture
def object_store(fake_minio):
    return ObjectStore(fake_minio, "test-bucket", allowed_mime_types=["text/*", "image/png", "application/pdf"])

@pytest.fixture
def client(db, redis_mock):
    def override_get_db():
        try:
            yield db
        finally:
            pass

    fastapi_app.dependency_overrides[get_db] = override_get_db
    fastapi_app.dependency_overrides[get_client_info] = mock_client_info

    with TestClient(fastapi_app) as client:
        yield client

    fastapi_app.dependency_overrides = {}

@pytest.fixture
def storage_client(client, object_store):
    fastapi_app.dependency_overrides[get_object_store] = lambda: object_store
    return client

def register(client, username="testuser", password="testpassword"):
    response = client.post(
        "/api/v1/auth/register",
        json={"username": username, "email": f"{username}@example.com", "password": password}
    )
    assert response.status_code == 201
    return response.json()

@pytest.fixture
def auth_client(client):
    token = register(client)["token"]

    client.headers = {"Authorization": f"Bearer {token}"}
    return client

@pytest.fixture
def auth_headers(client):
    """Headers for a second, independent user"""
    token = register(client, username="otheruser")["token"]
    return {"Authorization": f"Bearer {token}"}

@pytest.fixture
def upload(storage_client):
    """Posts a multipart upload; extra keyword arguments become form fields"""
    def _upload(content=b"hello world", filename="hello.txt", content_type="text/plain", headers=None, **fields):
        return storage_client.post(
            "/api/v1/files",
            files={"file": (filename, io.BytesIO(content), content_type)},
            data=fields,
            headers=headers
        )
    return _upload
