from fastapi import APIRouter, UploadFile, File, Depends, HTTPException, Form
from fastapi.concurrency import run_in_threadpool
from typing import Optional
from viewsync.config import get_settings
from viewsync.dependencies import get_catalog, get_session_manager, get_upload_service, get_upload_tracker
from viewsync.exceptions import (
    BlobErrorCategory, BlobTransferError, MetadataUnavailableError,
    PersistenceError, UploadRejectedError, VideoNotFoundError
)
from viewsync.services.catalog import VideoCatalog
from viewsync.services.playback_sessions import PlaybackSessionManager
from viewsync.services.uploads import UploadTracker, VideoUploadService
import logging

logger = logging.getLogger(__name__)
settings = get_settings()
router = APIRouter()

_BLOB_ERROR_STATUS = {
    BlobErrorCategory.QUOTA_EXCEEDED: 507,
    BlobErrorCategory.UNAUTHORIZED: 502,
    BlobErrorCategory.UNAUTHENTICATED: 502,
    BlobErrorCategory.CANCELED: 409,
    BlobErrorCategory.NETWORK: 502,
    BlobErrorCategory.UNKNOWN: 502,
}


def blob_error_response(e: BlobTransferError) -> HTTPException:
    return HTTPException(
        status_code=_BLOB_ERROR_STATUS[e.category],
        detail={"category": e.category.value, "message": e.description}
    )


def catalog_unavailable(e: PersistenceError) -> HTTPException:
    logger.error(f"Video catalog unavailable: {e}")
    return HTTPException(status_code=503, detail="Video catalog unavailable")


@router.get("/")
def list_videos(catalog: VideoCatalog = Depends(get_catalog)):
    """List all videos, newest first"""
    try:
        videos = catalog.list_videos()
    except PersistenceError as e:
        raise catalog_unavailable(e)
    return {
        "total": len(videos),
        "videos": [v.model_dump(by_alias=True) for v in videos]
    }


@router.post("/")
@router.post("/upload")  # Alias for convenience
def upload_video(
    file: UploadFile = File(...),
    name: str = Form(None),
    upload_id: str = Form(None),
    uploads: VideoUploadService = Depends(get_upload_service)
):
    """
    Upload a video. The record is only created once the transfer finished.
    Pass an upload_id to be able to cancel the upload from another request.
    """
    try:
        video = uploads.upload(file.file, file.filename, name=name, upload_id=upload_id)
    except UploadRejectedError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except MetadataUnavailableError as e:
        raise HTTPException(status_code=422, detail=f"Could not determine video duration: {e}")
    except BlobTransferError as e:
        logger.error(f"Upload failed ({e.category.value}): {e}")
        raise blob_error_response(e)
    except PersistenceError as e:
        raise catalog_unavailable(e)
    
    return {
        "video": video.model_dump(by_alias=True),
        "watch_url": f"{settings.PUBLIC_BASE_URL}/watch/{video.id}",
        "analytics_url": f"{settings.PUBLIC_BASE_URL}/analytics/{video.id}",
        "message": "Upload complete."
    }


@router.get("/uploads/{upload_id}")
def get_upload_progress(upload_id: str, tracker: UploadTracker = Depends(get_upload_tracker)):
    active = tracker.get(upload_id)
    if active is None:
        raise HTTPException(status_code=404, detail="No upload in progress")
    return {
        "upload_id": upload_id,
        "bytes_transferred": active.progress.bytes_transferred,
        "total_bytes": active.progress.total_bytes,
        "percent": round(active.progress.percent, 1)
    }


@router.post("/uploads/{upload_id}/cancel")
def cancel_upload(upload_id: str, tracker: UploadTracker = Depends(get_upload_tracker)):
    if not tracker.cancel(upload_id):
        raise HTTPException(status_code=404, detail="No upload in progress")
    return {"upload_id": upload_id, "status": "canceling"}


@router.get("/{video_id}")
def get_video(video_id: str, catalog: VideoCatalog = Depends(get_catalog)):
    try:
        video = catalog.get_video(video_id)
    except VideoNotFoundError:
        raise HTTPException(status_code=404, detail="Video not found")
    except PersistenceError as e:
        raise catalog_unavailable(e)
    return video.model_dump(by_alias=True)


@router.delete("/{video_id}")
async def delete_video(
    video_id: str,
    catalog: VideoCatalog = Depends(get_catalog),
    sessions: PlaybackSessionManager = Depends(get_session_manager)
):
    """Delete the video file, its catalog entry and all of its analytics"""
    # Open sessions would write the video's watch records again after the cascade
    await sessions.discard_video_sessions(video_id)
    try:
        await run_in_threadpool(catalog.delete_video, video_id)
    except VideoNotFoundError:
        raise HTTPException(status_code=404, detail="Video not found")
    except BlobTransferError as e:
        logger.error(f"Failed to delete video {video_id}: {e}")
        raise blob_error_response(e)
    except PersistenceError as e:
        raise catalog_unavailable(e)
    
    return {"video_id": video_id, "status": "deleted"}
