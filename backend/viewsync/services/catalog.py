"""
Video catalog stored as one JSON list under the "videos" key, newest first.
"""
from typing import List, Optional
from pydantic import TypeAdapter
from viewsync.exceptions import VideoNotFoundError
from viewsync.models.video import VideoRecord
from viewsync.services.persistence import KeyValueStore
from viewsync.services.storage import BlobStore
from viewsync.services.watch_records import WatchRecordRepository
import logging

logger = logging.getLogger(__name__)

VIDEOS_KEY = "videos"

_video_list = TypeAdapter(List[VideoRecord])


class VideoCatalog:
    def __init__(self, store: KeyValueStore, blob_store: Optional[BlobStore] = None):
        self.store = store
        self.blob_store = blob_store
        self.watch_records = WatchRecordRepository(store)

    def list_videos(self) -> List[VideoRecord]:
        raw = self.store.get(VIDEOS_KEY)
        if raw is None:
            return []
        try:
            return _video_list.validate_json(raw)
        except ValueError as e:
            logger.error(f"Video catalog is corrupt, treating it as empty: {e}")
            return []

    def get_video(self, video_id: str) -> VideoRecord:
        for video in self.list_videos():
            if video.id == video_id:
                return video
        raise VideoNotFoundError(video_id)

    def add_video(self, video: VideoRecord) -> VideoRecord:
        videos = [video] + [v for v in self.list_videos() if v.id != video.id]
        self._write(videos)
        logger.info(f"Video {video.id} added to catalog ({video.duration_seconds}s)")
        return video

    def delete_video(self, video_id: str) -> VideoRecord:
        """
        Remove a video as a unit: blob first, then every watch record, then
        the catalog entry. A blob failure leaves everything in place.
        """
        video = self.get_video(video_id)
        
        if self.blob_store is not None:
            self.blob_store.delete(video.url)
        
        self.watch_records.remove_for_video(video_id)
        self._write([v for v in self.list_videos() if v.id != video_id])
        
        logger.info(f"Deleted video {video_id} and its analytics")
        return video

    def _write(self, videos: List[VideoRecord]) -> None:
        self.store.set(VIDEOS_KEY, _video_list.dump_json(videos, by_alias=True))
