"""
FastAPI dependency providers. Each component receives its storage handles
from here; tests swap them through app.dependency_overrides.
"""
from functools import lru_cache
from fastapi import Depends
from viewsync.config import get_settings
from viewsync.database import SessionLocal
from viewsync.services.catalog import VideoCatalog
from viewsync.services.persistence import KeyValueStore, SqlKeyValueStore
from viewsync.services.playback_sessions import PlaybackSessionManager
from viewsync.services.storage import BlobStore, create_blob_store
from viewsync.services.uploads import UploadTracker, VideoUploadService


@lru_cache()
def get_key_value_store() -> KeyValueStore:
    return SqlKeyValueStore(SessionLocal)


@lru_cache()
def get_blob_store() -> BlobStore:
    return create_blob_store(get_settings())


@lru_cache()
def get_upload_tracker() -> UploadTracker:
    return UploadTracker()


@lru_cache()
def get_session_manager() -> PlaybackSessionManager:
    settings = get_settings()
    return PlaybackSessionManager(
        get_key_value_store(),
        tolerance=settings.MERGE_TOLERANCE_SECONDS,
        checkpoint_interval=settings.CHECKPOINT_INTERVAL_SECONDS,
        idle_timeout=settings.SESSION_IDLE_TIMEOUT_SECONDS
    )


def get_catalog(
    store: KeyValueStore = Depends(get_key_value_store),
    blob_store: BlobStore = Depends(get_blob_store)
) -> VideoCatalog:
    return VideoCatalog(store, blob_store)


def get_upload_service(
    catalog: VideoCatalog = Depends(get_catalog),
    blob_store: BlobStore = Depends(get_blob_store),
    tracker: UploadTracker = Depends(get_upload_tracker)
) -> VideoUploadService:
    return VideoUploadService(catalog, blob_store, tracker)
