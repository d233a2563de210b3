"""
WatchRecord persistence under the analytics-{videoId}-{viewerId} key convention.
"""
from typing import List, Optional, Tuple
from viewsync.exceptions import PersistenceReadError
from viewsync.models.watch import WatchRecord
from viewsync.services.persistence import KeyValueStore
import logging

logger = logging.getLogger(__name__)


def analytics_prefix(video_id: str) -> str:
    return f"analytics-{video_id}-"


def analytics_key(video_id: str, viewer_id: str) -> str:
    return f"{analytics_prefix(video_id)}{viewer_id}"


class WatchRecordRepository:
    """Reads and writes WatchRecords through a KeyValueStore handle"""

    def __init__(self, store: KeyValueStore):
        self.store = store

    def load(self, video_id: str, viewer_id: str) -> Optional[WatchRecord]:
        """
        Returns None when no record exists.
        Raises PersistenceReadError when the stored bytes do not parse.
        """
        key = analytics_key(video_id, viewer_id)
        raw = self.store.get(key)
        if raw is None:
            return None
        return self._parse(key, raw)

    def save(self, video_id: str, viewer_id: str, record: WatchRecord) -> None:
        self.store.set(analytics_key(video_id, viewer_id), record.to_json())

    def list_for_video(self, video_id: str) -> List[Tuple[str, Optional[WatchRecord]]]:
        """
        All (viewer_id, record) pairs stored for a video, in insertion order.
        Corrupt records are logged and returned as None so callers can skip them.
        """
        prefix = analytics_prefix(video_id)
        results = []
        for key in self.store.list_keys(prefix):
            viewer_id = key[len(prefix):]
            raw = self.store.get(key)
            if raw is None:
                # Removed between listing and reading
                continue
            try:
                record = self._parse(key, raw)
            except PersistenceReadError as e:
                logger.error(f"Skipping corrupt watch record {key}: {e}")
                record = None
            results.append((viewer_id, record))
        return results

    def remove_for_video(self, video_id: str) -> int:
        keys = self.store.list_keys(analytics_prefix(video_id))
        for key in keys:
            self.store.remove(key)
        logger.info(f"Removed {len(keys)} watch records for video {video_id}")
        return len(keys)

    @staticmethod
    def _parse(key: str, raw: bytes) -> WatchRecord:
        try:
            return WatchRecord.from_json(raw)
        except ValueError as e:
            raise PersistenceReadError(f"Unparseable watch record: {e}", key=key) from e
