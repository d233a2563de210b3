from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import StreamingResponse
from viewsync.config import get_settings
from viewsync.dependencies import get_catalog, get_key_value_store
from viewsync.exceptions import PersistenceError, VideoNotFoundError
from viewsync.services.analytics import AnalyticsMonitor, build_video_analytics
from viewsync.services.catalog import VideoCatalog
from viewsync.services.persistence import KeyValueStore
import logging

logger = logging.getLogger(__name__)
settings = get_settings()
router = APIRouter()


def _get_video_or_404(catalog: VideoCatalog, video_id: str):
    try:
        return catalog.get_video(video_id)
    except VideoNotFoundError:
        raise HTTPException(status_code=404, detail="Video not found")
    except PersistenceError as e:
        logger.error(f"Video catalog unavailable: {e}")
        raise HTTPException(status_code=503, detail="Video catalog unavailable")


@router.get("/{video_id}/analytics")
def get_analytics(
    video_id: str,
    catalog: VideoCatalog = Depends(get_catalog),
    store: KeyValueStore = Depends(get_key_value_store)
):
    """Per-viewer retention for a video, most engaged viewers first"""
    video = _get_video_or_404(catalog, video_id)
    try:
        analytics = build_video_analytics(store, video)
    except PersistenceError as e:
        logger.error(f"Analytics unavailable for {video_id}: {e}")
        raise HTTPException(status_code=503, detail="Analytics storage unavailable")
    return analytics.model_dump()


@router.get("/{video_id}/analytics/stream")
async def stream_analytics(
    video_id: str,
    request: Request,
    catalog: VideoCatalog = Depends(get_catalog),
    store: KeyValueStore = Depends(get_key_value_store)
):
    """Server-sent events: a new analytics snapshot on every refresh"""
    video = await run_in_threadpool(_get_video_or_404, catalog, video_id)
    monitor = AnalyticsMonitor(store, video, poll_interval=settings.ANALYTICS_POLL_INTERVAL_SECONDS)

    async def events():
        async for analytics in monitor.snapshots():
            if await request.is_disconnected():
                break
            yield f"data: {analytics.model_dump_json()}\n\n"

    return StreamingResponse(events(), media_type="text/event-stream")


@router.get("/{video_id}/share")
def share_link(video_id: str, catalog: VideoCatalog = Depends(get_catalog)):
    video = _get_video_or_404(catalog, video_id)
    return {
        "video_id": video.id,
        "name": video.name,
        "watch_url": f"{settings.PUBLIC_BASE_URL}/watch/{video.id}"
    }
