"""
Tests for the upload pipeline
"""
import io

import pytest

from viewsync.exceptions import (
    BlobErrorCategory, BlobTransferError, MetadataUnavailableError, PersistenceWriteError, UploadRejectedError
)
from viewsync.services.uploads import UploadTracker, VideoUploadService


def uploaded_files(blob_store):
    return [p for p in blob_store.root_dir.rglob("*") if p.is_file()]


def test_successful_upload_commits_record(upload_service, catalog, blob_store):
    """Test 1: The record is committed after the transfer with a rounded duration"""
    seen = []
    video = upload_service.upload(io.BytesIO(b"v" * 3000), "clip.mp4", name="Team sync",
                                  on_progress=seen.append)
    
    assert video.name == "Team sync"
    assert video.duration_seconds == 12
    assert video.url == f"/storage/uploads/{video.id}/clip.mp4"
    assert "-" not in video.id
    assert catalog.list_videos() == [video]
    assert [p.bytes_transferred for p in seen] == [1024, 2048, 3000]
    assert len(uploaded_files(blob_store)) == 1


def test_name_defaults_to_filename(upload_service):
    video = upload_service.upload(io.BytesIO(b"v" * 10), "holiday.MOV")
    assert video.name == "holiday.MOV"


def test_duration_rounds_half_up(catalog, blob_store, settings):
    service = VideoUploadService(catalog, blob_store, UploadTracker(), settings, probe_duration=lambda path: 7.5)
    assert service.upload(io.BytesIO(b"v"), "clip.mp4").duration_seconds == 8


def test_unprobeable_file_commits_nothing(catalog, blob_store, settings):
    """Test 2: No record and no blob when the duration cannot be read"""
    def probe(path):
        raise MetadataUnavailableError("no video stream")
    
    service = VideoUploadService(catalog, blob_store, UploadTracker(), settings, probe_duration=probe)
    
    with pytest.raises(MetadataUnavailableError):
        service.upload(io.BytesIO(b"not a video"), "clip.mp4")
    
    assert catalog.list_videos() == []
    assert uploaded_files(blob_store) == []
    assert list(settings.TEMP_DIR.iterdir()) == []


@pytest.mark.parametrize("filename,payload", [
    ("notes.txt", b"text"),
    ("clip.mp4", b""),
    ("", b"data"),
])
def test_rejected_uploads(upload_service, catalog, filename, payload):
    with pytest.raises(UploadRejectedError):
        upload_service.upload(io.BytesIO(payload), filename)
    assert catalog.list_videos() == []


def test_oversized_upload_rejected(upload_service):
    with pytest.raises(UploadRejectedError):
        upload_service.validate("clip.mp4", upload_service.settings.max_upload_size_bytes + 1)


def test_cancel_commits_nothing(upload_service, catalog, blob_store):
    """Test 3: Canceling through the tracker aborts the transfer"""
    def cancel_midway(progress):
        upload_service.tracker.cancel("up-1")
    
    with pytest.raises(BlobTransferError) as exc_info:
        upload_service.upload(io.BytesIO(b"v" * 4096), "clip.mp4", upload_id="up-1", on_progress=cancel_midway)
    
    assert exc_info.value.category == BlobErrorCategory.CANCELED
    assert catalog.list_videos() == []
    assert uploaded_files(blob_store) == []
    assert upload_service.tracker.get("up-1") is None


def test_catalog_failure_discards_blob(upload_service, catalog, blob_store, monkeypatch):
    def fail(video):
        raise PersistenceWriteError("disk full", key="videos")
    
    monkeypatch.setattr(catalog, "add_video", fail)
    
    with pytest.raises(PersistenceWriteError):
        upload_service.upload(io.BytesIO(b"v" * 100), "clip.mp4")
    
    assert uploaded_files(blob_store) == []


def test_tracker_cancel_unknown_upload():
    assert UploadTracker().cancel("nope") is False
