# =============================================================================
# tests/conftest.py - Pytest Configuration
# =============================================================================
# Environment variables are set before anything from dropshare is imported,
# because dropshare.core.config builds its Settings at import time.
# =============================================================================

import io
import os
import tempfile
import uuid

_TEST_ROOT = tempfile.mkdtemp(prefix="dropshare-tests-")

os.environ.setdefault("SQLALCHEMY_DATABASE_URI", f"sqlite:///{os.path.join(_TEST_ROOT, 'test.db')}")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("UPLOAD_DIR", os.path.join(_TEST_ROOT, "uploads"))
os.environ.setdefault("STORAGE_BACKEND", "local")
os.environ.setdefault("DEFAULT_STORAGE_LIMIT", str(10 * 1024 * 1024))
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from fastapi.testclient import TestClient

from dropshare import crud, models, schemas
from dropshare.api import deps
from dropshare.core.security import create_access_token
from dropshare.db.base import Base
from dropshare.db.session import SessionLocal, engine
from dropshare.main import app
from dropshare.services.storage import LocalStorage


# =============================================================================
# Database and storage
# =============================================================================

@pytest.fixture(autouse=True)
def _fresh_tables():
    """Every test starts from empty tables."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def storage(tmp_path):
    return LocalStorage(str(tmp_path / "objects"))


@pytest.fixture
def client(storage):
    app.dependency_overrides[deps.get_storage] = lambda: storage
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


# =============================================================================
# Factories
# =============================================================================

@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make_user(username=None, password="password123", **fields):
        counter["n"] += 1
        username = username or f"user{counter['n']}"
        user = crud.user.create(
            db,
            obj_in=schemas.UserCreate(username=username, email=f"{username}@example.com", password=password),
        )
        if fields:
            user = crud.user.update(db, db_obj=user, obj_in=fields)
        return user

    return _make_user


@pytest.fixture
def make_file(db, storage):
    def _make_file(user, name="report.txt", content=b"hello world", folder=None, mime_type="text/plain"):
        key = f"uploads/{user.id}/{uuid.uuid4().hex}"
        storage.put(key, io.BytesIO(content), mime_type)
        return crud.file.create_for_user(
            db,
            user_id=user.id,
            folder_id=folder.id if folder else None,
            original_name=name,
            mime_type=mime_type,
            size=len(content),
            storage_key=key,
        )

    return _make_file


@pytest.fixture
def make_folder(db):
    def _make_folder(user, name="docs", parent=None):
        return crud.folder.create_with_user(
            db,
            obj_in=schemas.FolderCreate(name=name, parent_id=parent.id if parent else None),
            user_id=user.id,
        )

    return _make_folder


@pytest.fixture
def make_link(db):
    def _make_link(user, file=None, folder=None, token_factory=None, **options):
        kwargs = {}
        if token_factory is not None:
            kwargs["token_factory"] = token_factory
        return crud.share.create_with_owner(
            db,
            obj_in=schemas.ShareLinkCreate(**options),
            user_id=user.id,
            file_id=file.id if file else None,
            folder_id=folder.id if folder else None,
            **kwargs,
        )

    return _make_link


@pytest.fixture
def headers_for():
    def _headers_for(user: models.User) -> dict:
        return {"Authorization": f"Bearer {create_access_token(user.id)}"}

    return _headers_for
