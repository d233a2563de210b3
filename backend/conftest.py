"""
Shared fixtures: an in-memory sqlite key-value store, a temp-dir blob store
and a TestClient wired to both.
"""
import os
import tempfile

# Must be set before viewsync.config is imported anywhere
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("BASE_STORAGE_PATH", tempfile.mkdtemp(prefix="viewsync-test-"))

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from viewsync.config import Settings
from viewsync.database import Base
from viewsync.models import KeyValueEntry  # noqa: F401  registers the table
from viewsync.models.video import VideoRecord, Viewer
from viewsync.services.catalog import VideoCatalog
from viewsync.services.persistence import SqlKeyValueStore
from viewsync.services.storage import LocalBlobStore
from viewsync.services.uploads import UploadTracker, VideoUploadService


@pytest.fixture
def store():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    yield SqlKeyValueStore(sessionmaker(autocommit=False, autoflush=False, bind=engine))
    engine.dispose()


@pytest.fixture
def settings(tmp_path):
    return Settings(BASE_STORAGE_PATH=tmp_path / "storage")


@pytest.fixture
def blob_store(settings):
    return LocalBlobStore(settings.UPLOAD_DIR, url_prefix="/storage/uploads", chunk_size=1024)


@pytest.fixture
def catalog(store, blob_store):
    return VideoCatalog(store, blob_store)


@pytest.fixture
def video():
    return VideoRecord(id="vid1", name="Quarterly review", url="/storage/uploads/vid1/review.mp4",
                       duration_seconds=10)


@pytest.fixture
def viewer():
    return Viewer(id="3f2c9a1e-7b4d-4e8a-9c1f-2d5e6a7b8c9d", name="Alice")


@pytest.fixture
def upload_service(catalog, blob_store, settings):
    return VideoUploadService(catalog, blob_store, UploadTracker(), settings,
                              probe_duration=lambda path: 12.4)
