"""
End-to-end tests through the HTTP API
"""
import pytest
from fastapi.testclient import TestClient

from viewsync.dependencies import (
    get_blob_store, get_key_value_store, get_session_manager, get_upload_service, get_upload_tracker
)
from viewsync.exceptions import PersistenceError
from viewsync.main import app
from viewsync.services.persistence import SqlKeyValueStore
from viewsync.services.playback_sessions import PlaybackSessionManager
from viewsync.services.watch_records import WatchRecordRepository


class UnreachableStore(SqlKeyValueStore):
    """Every read fails the way a dropped database connection does"""

    def get(self, key):
        raise PersistenceError(f"Read failed for key {key}: connection refused", key=key)


def override_dependencies(store, blob_store, upload_service):
    # Checkpoints are driven by events in these tests, not by the timer
    sessions = PlaybackSessionManager(store, checkpoint_interval=3600)
    
    app.dependency_overrides[get_key_value_store] = lambda: store
    app.dependency_overrides[get_blob_store] = lambda: blob_store
    app.dependency_overrides[get_upload_tracker] = lambda: upload_service.tracker
    app.dependency_overrides[get_upload_service] = lambda: upload_service
    app.dependency_overrides[get_session_manager] = lambda: sessions
    return sessions


@pytest.fixture
def client(store, blob_store, upload_service):
    override_dependencies(store, blob_store, upload_service)
    with TestClient(app) as test_client:
        yield test_client
    
    app.dependency_overrides.clear()


def upload(client, name="Demo"):
    response = client.post(
        "/api/videos/upload",
        files={"file": ("clip.mp4", b"v" * 2048, "video/mp4")},
        data={"name": name}
    )
    assert response.status_code == 200, response.text
    return response.json()["video"]


def register(client, name="Alice"):
    response = client.post("/api/viewers", json={"name": name})
    assert response.status_code == 200, response.text
    return response.json()


def open_session(client, video_id):
    response = client.post(f"/api/videos/{video_id}/sessions")
    assert response.status_code == 200, response.text
    return response.json()["session_id"]


def send(client, session_id, event_type, position):
    response = client.post(f"/api/sessions/{session_id}/events", json={"type": event_type, "position": position})
    assert response.status_code == 200, response.text
    return response.json()["state"]


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}


def test_viewer_identity(client):
    """Test 1: Registering a name stores the identity in a cookie"""
    assert client.get("/api/viewers/me").status_code == 404
    
    viewer = register(client, "  Alice  ")
    
    assert viewer["name"] == "Alice"
    assert client.get("/api/viewers/me").json() == viewer


@pytest.mark.parametrize("name", ["A", "x" * 51])
def test_viewer_name_length(client, name):
    assert client.post("/api/viewers", json={"name": name}).status_code == 422


def test_upload_and_list(client):
    video = upload(client)
    
    assert video["name"] == "Demo"
    assert video["duration"] == 12
    assert "createdAt" in video
    
    listing = client.get("/api/videos/").json()
    assert listing["total"] == 1
    assert listing["videos"][0]["id"] == video["id"]
    
    share = client.get(f"/api/videos/{video['id']}/share").json()
    assert share["watch_url"].endswith(f"/watch/{video['id']}")


def test_upload_rejects_bad_extension(client):
    response = client.post("/api/videos/upload", files={"file": ("notes.txt", b"hello", "text/plain")})
    assert response.status_code == 400
    assert client.get("/api/videos/").json()["total"] == 0


def test_unknown_upload_progress(client):
    assert client.get("/api/videos/uploads/nope").status_code == 404
    assert client.post("/api/videos/uploads/nope/cancel").status_code == 404


def test_session_requires_viewer(client):
    video = upload(client)
    assert client.post(f"/api/videos/{video['id']}/sessions").status_code == 401


def test_session_for_unknown_video(client):
    register(client)
    assert client.post("/api/videos/missing/sessions").status_code == 404


def test_watch_flow_feeds_analytics(client):
    """Test 2: Playback events become watch records and analytics"""
    video = upload(client)
    viewer = register(client)
    session_id = open_session(client, video["id"])
    
    # The empty record is visible as soon as the session opens
    analytics = client.get(f"/api/videos/{video['id']}/analytics").json()
    assert analytics["viewer_count"] == 1
    assert analytics["summaries"][0]["total_watch_seconds"] == 0
    
    assert send(client, session_id, "play", 0) == "tracking"
    send(client, session_id, "timeupdate", 3)
    send(client, session_id, "seek", 8)
    assert send(client, session_id, "pause", 10) == "idle"
    
    response = client.request("DELETE", f"/api/sessions/{session_id}", json={"position": 10})
    assert response.json()["watched_segments"] == [[0, 3], [8, 10]]
    
    analytics = client.get(f"/api/videos/{video['id']}/analytics").json()
    summary = analytics["summaries"][0]
    assert summary["viewer_id"] == viewer["id"]
    assert summary["viewer_name"] == "Alice"
    # Seconds 0-3 and 8-10 of a 12 second video
    assert summary["total_watch_seconds"] == 7
    assert summary["completion_percent"] == 58
    assert len(summary["retention_samples"]) == 12
    assert summary["retention_samples"][11] == {"time_label": "00:11", "watched": 0}


def test_returning_viewer_resumes_record(client):
    video = upload(client)
    register(client)
    
    first = open_session(client, video["id"])
    send(client, first, "play", 0)
    send(client, first, "ended", 5)
    client.delete(f"/api/sessions/{first}")
    
    response = client.post(f"/api/videos/{video['id']}/sessions")
    assert response.json()["watched_segments"] == [[0, 5]]


def test_unknown_session(client):
    assert client.post("/api/sessions/nope/events", json={"type": "play", "position": 0}).status_code == 404
    assert client.delete("/api/sessions/nope").status_code == 404


def test_delete_video_removes_analytics(client, store):
    """Test 3: Deleting a video removes its file, entry and watch records"""
    video = upload(client)
    register(client)
    session_id = open_session(client, video["id"])
    send(client, session_id, "play", 0)
    send(client, session_id, "pause", 2)
    client.delete(f"/api/sessions/{session_id}")
    
    response = client.delete(f"/api/videos/{video['id']}")
    
    assert response.status_code == 200
    assert client.get(f"/api/videos/{video['id']}").status_code == 404
    assert client.get(f"/api/videos/{video['id']}/analytics").status_code == 404
    assert store.list_keys(f"analytics-{video['id']}-") == []
    assert client.delete(f"/api/videos/{video['id']}").status_code == 404


def test_delete_video_drops_open_sessions(client, store):
    """Test 4: A session still open on a deleted video cannot recreate its records"""
    video = upload(client)
    register(client)
    session_id = open_session(client, video["id"])
    send(client, session_id, "play", 0)
    send(client, session_id, "timeupdate", 4)
    
    assert client.delete(f"/api/videos/{video['id']}").status_code == 200
    
    assert client.delete(f"/api/sessions/{session_id}").status_code == 404
    assert client.post(f"/api/sessions/{session_id}/events",
                       json={"type": "pause", "position": 6}).status_code == 404
    assert store.list_keys(f"analytics-{video['id']}-") == []


def test_storage_failures_return_503(client, store):
    """Test 5: An unreachable store is reported as unavailable, not as a crash"""
    video = upload(client)
    register(client)
    app.dependency_overrides[get_key_value_store] = lambda: UnreachableStore(store.session_factory)
    
    assert client.get("/api/videos/").status_code == 503
    assert client.get(f"/api/videos/{video['id']}").status_code == 503
    assert client.get(f"/api/videos/{video['id']}/analytics").status_code == 503
    assert client.get(f"/api/videos/{video['id']}/analytics/stream").status_code == 503
    assert client.get(f"/api/videos/{video['id']}/share").status_code == 503
    assert client.post(f"/api/videos/{video['id']}/sessions").status_code == 503
    assert client.delete(f"/api/videos/{video['id']}").status_code == 503


def test_shutdown_flushes_open_sessions(store, blob_store, upload_service):
    override_dependencies(store, blob_store, upload_service)
    try:
        with TestClient(app) as client:
            video = upload(client)
            viewer = register(client)
            session_id = open_session(client, video["id"])
            send(client, session_id, "play", 0)
            send(client, session_id, "timeupdate", 6)
        
        record = WatchRecordRepository(store).load(video["id"], viewer["id"])
        assert record.watched_segments == [(0, 6)]
    finally:
        app.dependency_overrides.clear()
