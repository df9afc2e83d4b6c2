"""
Shared fixtures for the gateway tests.

- an in-memory SQLite engine per test (StaticPool so every session sees it)
- a tmp_path upload root wired into the storage dependencies
- helpers to create users and authenticate requests as a given role
"""

from __future__ import annotations

import itertools
import json
import os

# settings are read at import time
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("RATE_LIMIT_MAX_CALLS", "100000")
for _name in (
    "GOOGLE_CLIENT_ID",
    "GOOGLE_CLIENT_SECRET",
    "GOOGLE_REFRESH_TOKEN",
    "GOOGLE_SERVICE_ACCOUNT_KEY",
    "GOOGLE_DRIVE_ROOT_FOLDER_ID",
):
    os.environ[_name] = ""

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from docgate.auth.deps import get_db
from docgate.auth.gate import Role
from docgate.auth.service import create_user, issue_session
from docgate.db.session import init_db
from docgate.main import app
from docgate.models.resident import Billing, Resident
from docgate.storage.deps import get_artifact_resolver, get_storage_router
from docgate.storage.gdrive import GoogleDriveBackend, OAuthRefreshCredentials
from docgate.storage.local import LocalBackend
from docgate.storage.resolver import ArtifactResolver
from docgate.storage.router import StorageRouter
from docgate.utils.security import sign_session_cookie

PASSWORD = "correct-horse-battery"


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def upload_root(tmp_path):
    # deliberately not created: tests assert on whether it ever appears
    return tmp_path / "uploads"


@pytest.fixture
def local_backend(upload_root):
    return LocalBackend(upload_root)


@pytest.fixture
def remote_backend():
    return None


@pytest.fixture
def client(session_factory, local_backend, remote_backend):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_storage_router] = lambda: StorageRouter(
        local_backend, remote_backend, remote_timeout=5
    )
    app.dependency_overrides[get_artifact_resolver] = lambda: ArtifactResolver(
        local_backend, remote_backend, remote_timeout=5
    )
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    counter = itertools.count(1)

    def _make(role: Role = Role.STAFF, password: str = PASSWORD):
        n = next(counter)
        return create_user(
            db,
            username=f"{role.value}{n}",
            email=f"{role.value}{n}@example.com",
            full_name=f"{role.value.title()} {n}",
            password=password,
            role=role,
        )

    return _make


@pytest.fixture
def headers_for(db, make_user):
    """Return Authorization headers for a fresh session of a new user with `role`."""

    def _headers(role: Role) -> dict[str, str]:
        user = make_user(role)
        token = issue_session(db, user)
        return {"Authorization": f"Bearer {sign_session_cookie(token)}"}

    return _headers


@pytest.fixture
def resident(db):
    r = Resident(full_name="Ada Lovelace")
    db.add(r)
    db.commit()
    db.refresh(r)
    return r


@pytest.fixture
def billing(db, resident):
    b = Billing(resident_id=resident.id)
    db.add(b)
    db.commit()
    db.refresh(b)
    return b


class FakeDrive:
    """In-memory stand-in for the Drive REST API behind an httpx.MockTransport."""

    def __init__(self, fail_with: int | None = None):
        self.fail_with = fail_with
        self.requests: list[httpx.Request] = []
        self.folders: dict[tuple[str, str], str] = {}
        self.files: dict[str, bytes] = {}
        self.token_calls = 0

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.host == "oauth2.googleapis.com":
            self.token_calls += 1
            return httpx.Response(200, json={"access_token": f"tok-{self.token_calls}", "expires_in": 3600})
        if self.fail_with is not None:
            return httpx.Response(self.fail_with, json={"error": "unavailable"})

        path = request.url.path
        if request.method == "GET" and path == "/drive/v3/files":
            q = request.url.params["q"]
            name = q.split("name='", 1)[1].split("'", 1)[0]
            parent = q.split("and '", 1)[1].split("'", 1)[0]
            folder_id = self.folders.get((parent, name))
            return httpx.Response(200, json={"files": [{"id": folder_id, "name": name}] if folder_id else []})
        if request.method == "POST" and path == "/drive/v3/files":
            body = json.loads(request.content)
            folder_id = f"folder-{len(self.folders) + 1}"
            self.folders[(body["parents"][0], body["name"])] = folder_id
            return httpx.Response(200, json={"id": folder_id})
        if request.method == "POST" and path == "/upload/drive/v3/files":
            file_id = f"file-{len(self.files) + 1}"
            # last part of the multipart/related body is the payload
            payload = request.content.rsplit(b"\r\n\r\n", 1)[1].rsplit(b"\r\n--", 1)[0]
            self.files[file_id] = payload
            return httpx.Response(200, json={
                "id": file_id,
                "name": "x",
                "webViewLink": f"https://drive.google.com/file/d/{file_id}/view",
            })
        if path.startswith("/drive/v3/files/"):
            file_id = path.rsplit("/", 1)[1]
            if file_id not in self.files:
                return httpx.Response(404, json={"error": "notFound"})
            if request.method == "DELETE":
                del self.files[file_id]
                return httpx.Response(204)
            return httpx.Response(200, content=self.files[file_id])
        return httpx.Response(400)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self._handle)

    def backend(self, root_folder_id: str = "root") -> GoogleDriveBackend:
        creds = OAuthRefreshCredentials(client_id="cid", client_secret="secret", refresh_token="refresh")
        return GoogleDriveBackend(creds, root_folder_id=root_folder_id, timeout=5, transport=self.transport)


@pytest.fixture
def fake_drive():
    return FakeDrive()
