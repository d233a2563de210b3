from fastapi import APIRouter, Cookie, Depends, HTTPException, Response
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, Field
from typing import Optional
from viewsync.dependencies import get_catalog, get_session_manager
from viewsync.exceptions import PersistenceError, PlaybackSessionNotFoundError, VideoNotFoundError
from viewsync.services.catalog import VideoCatalog
from viewsync.services.playback_sessions import PlaybackEventType, PlaybackSessionManager
from viewsync.services.viewers import VIEWER_KEY, decode_viewer, encode_viewer, new_viewer
import logging

logger = logging.getLogger(__name__)
router = APIRouter()

VIEWER_COOKIE_MAX_AGE = 60 * 60 * 24 * 365


class ViewerRequest(BaseModel):
    name: str = Field(min_length=2, max_length=50)


class PlaybackEventRequest(BaseModel):
    type: PlaybackEventType
    position: float = Field(ge=0)


class CloseSessionRequest(BaseModel):
    position: Optional[float] = Field(default=None, ge=0)


@router.post("/viewers")
def register_viewer(request: ViewerRequest, response: Response):
    """Create the viewer identity for this browser"""
    viewer = new_viewer(request.name)
    response.set_cookie(VIEWER_KEY, encode_viewer(viewer), max_age=VIEWER_COOKIE_MAX_AGE, samesite="lax")
    logger.info(f"Registered viewer {viewer.id}")
    return viewer.model_dump()


@router.get("/viewers/me")
def current_viewer(viewer: Optional[str] = Cookie(default=None)):
    identity = decode_viewer(viewer)
    if identity is None:
        raise HTTPException(status_code=404, detail="No viewer identity. Register a name first.")
    return identity.model_dump()


@router.post("/videos/{video_id}/sessions")
async def open_session(
    video_id: str,
    viewer: Optional[str] = Cookie(default=None),
    catalog: VideoCatalog = Depends(get_catalog),
    sessions: PlaybackSessionManager = Depends(get_session_manager)
):
    """Start tracking a viewer's playback of a video"""
    identity = decode_viewer(viewer)
    if identity is None:
        raise HTTPException(status_code=401, detail="Viewer identity required. Register a name first.")
    
    try:
        video = await run_in_threadpool(catalog.get_video, video_id)
        session = await sessions.open_session(video, identity)
    except VideoNotFoundError:
        raise HTTPException(status_code=404, detail="Video not found")
    except PersistenceError as e:
        logger.error(f"Cannot open playback session for {video_id}: {e}")
        raise HTTPException(status_code=503, detail="Video catalog unavailable")
    
    return {
        "session_id": session.id,
        "video": video.model_dump(by_alias=True),
        "viewer": identity.model_dump(),
        "watched_segments": session.recorder.segments
    }


@router.post("/sessions/{session_id}/events")
async def playback_event(
    session_id: str,
    event: PlaybackEventRequest,
    sessions: PlaybackSessionManager = Depends(get_session_manager)
):
    try:
        state = sessions.handle_event(session_id, event.type, event.position)
    except PlaybackSessionNotFoundError:
        raise HTTPException(status_code=404, detail="Playback session not found")
    return {"session_id": session_id, "state": state.value}


@router.delete("/sessions/{session_id}")
async def close_session(
    session_id: str,
    request: Optional[CloseSessionRequest] = None,
    sessions: PlaybackSessionManager = Depends(get_session_manager)
):
    """Page teardown: flush the open segment and forget the session"""
    position = request.position if request else None
    try:
        session = await sessions.close_session(session_id, position)
    except PlaybackSessionNotFoundError:
        raise HTTPException(status_code=404, detail="Playback session not found")
    return {"session_id": session_id, "watched_segments": session.recorder.segments}
