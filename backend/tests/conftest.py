"""Shared test fixtures for the CloudDrive backend test suite.

Tests run against a throwaway SQLite file created for the session. Every
test starts from empty tables. Payloads go to ``InMemoryStorage`` instead
of a real backend.
"""

import os
import tempfile

_TMP_DIR = tempfile.mkdtemp(prefix="clouddrive-tests-")

# Point the app at the temporary database before any app imports.
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP_DIR, 'test.db')}"
os.environ["STORAGE_CONFIG_PATH"] = os.path.join(_TMP_DIR, "storage_config.json")
os.environ["LOG_FORMAT"] = "text"
os.environ["RATE_LIMIT_PER_MINUTE"] = "1000"

from typing import Dict, List, Sequence

import pytest
from fastapi.testclient import TestClient

from clouddrive.api.deps import get_optional_storage, get_storage
from clouddrive.core.token_factory import now_ms
from clouddrive.database import SessionLocal, get_db, init_db
from clouddrive.exceptions import StorageObjectNotFoundError
from clouddrive.main import app
from clouddrive.middleware.request_context import _rate_buckets
from clouddrive.models import AuthToken, Folder, StoredFile, User
from clouddrive.services import auth_service
from clouddrive.services.file_service import FileService
from clouddrive.services.lifecycle_service import LifecycleService
from clouddrive.storage.base import DownloadResult, RemoteObject, StorageBackend, UploadResult

init_db()

# Children before parents.
_TABLES = [StoredFile, Folder, AuthToken, User]


class InMemoryStorage(StorageBackend):
    """Dict-backed payload store that records every removal request."""

    name = "memory"

    def __init__(self):
        self.objects: Dict[str, bytes] = {}
        self.removed: List[str] = []

    def upload(self, stream, file_name, content_type, user_id, folder_id):
        key = f"{user_id}/{folder_id}/{file_name}"
        self.objects[key] = stream.read()
        return UploadResult(physical_id=key)

    def download(self, physical_id, user_id):
        if physical_id not in self.objects:
            raise StorageObjectNotFoundError(physical_id, self.name)
        data = self.objects[physical_id]
        return DownloadResult(stream=iter([data]), content_length=len(data))

    def remove(self, files: Sequence, folders: Sequence, user_id: int) -> None:
        for file in files:
            if file.physical_id:
                self.objects.pop(file.physical_id, None)
                self.removed.append(file.physical_id)

    def list(self, prefix: str) -> List[RemoteObject]:
        return [
            RemoteObject(physical_id=key, size=len(data), updated_at=now_ms())
            for key, data in sorted(self.objects.items())
            if key.startswith(prefix)
        ]


@pytest.fixture(autouse=True)
def _clean_tables():
    """Empty every table before each test for isolation."""
    db = SessionLocal()
    try:
        for model in _TABLES:
            db.query(model).delete(synchronize_session=False)
        db.commit()
    finally:
        db.close()
    yield


@pytest.fixture()
def db():
    """Per-test database session."""
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture()
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture()
def client(db, storage):
    """TestClient sharing the test session and the in-memory backend."""

    def _override_get_db():
        try:
            yield db
        except Exception:
            db.rollback()
            raise

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_optional_storage] = lambda: storage
    _rate_buckets.clear()
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def user(db) -> User:
    """A registered user (the first one, so also admin) with a root folder."""
    return auth_service.register_user(db, "alice", "secret123")


@pytest.fixture()
def other_user(db, user) -> User:
    return auth_service.register_user(db, "bob", "secret123")


@pytest.fixture()
def root(db, user) -> Folder:
    return auth_service.ensure_root_folder(db, user.id)


@pytest.fixture()
def login(client):
    """Register (if needed) and log in; returns auth headers."""

    def _login(username: str = "alice", password: str = "secret123") -> dict:
        client.post("/api/auth/register", json={"username": username, "password": password})
        resp = client.post("/api/auth/login", json={"username": username, "password": password})
        assert resp.status_code == 200, resp.text
        return {"Authorization": f"Bearer {resp.json()['token']}"}

    return _login


@pytest.fixture()
def auth_headers(login) -> dict:
    return login()


@pytest.fixture()
def make_file(db):
    """Register a file row directly, bypassing the backend."""

    def _make(folder_id: int, user_id: int, name: str, size: int = 10, physical_id: str = None) -> StoredFile:
        return FileService(db).add_file(
            folder_id, user_id, name, size,
            physical_id=physical_id or f"{user_id}/{folder_id}/{name}",
        )

    return _make


@pytest.fixture()
def make_folder(db):
    def _make(name: str, parent_id: int, user_id: int) -> Folder:
        return LifecycleService(db).create_folder(name, parent_id, user_id)

    return _make
