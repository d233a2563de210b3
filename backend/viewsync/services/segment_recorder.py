"""
Segment Recorder

Tracks one viewer's playback of one video and keeps the merged set of
watched ranges in persistence. The recorder is a two-state machine:

    IDLE --play--> TRACKING --pause/ended/teardown--> IDLE
    TRACKING --checkpoint--> TRACKING (segment flushed and reopened)

Closing a segment appends [start, position] to the in-memory set, merges it
and writes the whole record. Writes are best-effort: a failed write is
logged and tracking continues, the in-memory copy stays authoritative until
the next successful flush.
"""
from typing import Callable, List, Optional
from viewsync.exceptions import PersistenceError
from viewsync.models.video import Viewer
from viewsync.models.watch import Segment, WatchRecord
from viewsync.services.segment_merger import DEFAULT_MERGE_TOLERANCE, merge_segments
from viewsync.services.watch_records import WatchRecordRepository
import asyncio
import enum
import logging

logger = logging.getLogger(__name__)

PositionSource = Callable[[], float]


class RecorderState(str, enum.Enum):
    IDLE = "idle"
    TRACKING = "tracking"


class SegmentRecorder:
    def __init__(
        self,
        repository: WatchRecordRepository,
        video_id: str,
        viewer: Viewer,
        position_source: PositionSource,
        tolerance: float = DEFAULT_MERGE_TOLERANCE
    ):
        """
        Args:
            repository: Where the WatchRecord is persisted
            video_id: Video being watched
            viewer: Viewer watching it
            position_source: Returns the current playback position in seconds
            tolerance: Merge tolerance passed to merge_segments
        """
        self.repository = repository
        self.video_id = video_id
        self.viewer = viewer
        self.position_source = position_source
        self.tolerance = tolerance
        
        self.state = RecorderState.IDLE
        self.segment_start: Optional[float] = None
        self._segments: List[Segment] = []

    @property
    def segments(self) -> List[Segment]:
        return list(self._segments)

    def load(self) -> None:
        """
        Seed the in-memory set from the stored record. When there is none, or
        it cannot be read, start empty and persist the empty record right away
        so readers see the viewer before any watching happens.
        """
        try:
            record = self.repository.load(self.video_id, self.viewer.id)
        except PersistenceError as e:
            logger.error(f"Could not read watch record for {self.video_id}/{self.viewer.id}, reinitializing: {e}")
            record = None
        
        if record is not None:
            self._segments = merge_segments(record.watched_segments, self.tolerance)
            logger.info(f"Resumed watch record for {self.video_id}/{self.viewer.id} with {len(self._segments)} segments")
        else:
            self._segments = []
            self._flush()

    def on_play(self) -> None:
        if self.state is RecorderState.TRACKING:
            return
        self.segment_start = self.position_source()
        self.state = RecorderState.TRACKING

    def on_stop(self) -> None:
        """Pause, end of media, or session teardown"""
        if self.state is not RecorderState.TRACKING:
            return
        self._close_segment()
        self.segment_start = None
        self.state = RecorderState.IDLE

    def on_seek(self, target: float) -> None:
        """
        Playback jumped to target. The position source must still report the
        pre-seek position when this is called.
        """
        if self.state is not RecorderState.TRACKING:
            return
        self._close_segment()
        self.segment_start = target

    def checkpoint(self) -> bool:
        """Flush the open segment and reopen it at the current position"""
        if self.state is not RecorderState.TRACKING:
            return False
        self._close_segment()
        self.segment_start = self.position_source()
        return True

    async def checkpoint_loop(self, interval: float, until: Optional[Callable[[], bool]] = None) -> None:
        """
        Checkpoint every interval seconds until cancelled, or until `until()`
        returns True. The open segment is left for the caller to close.
        """
        while True:
            await asyncio.sleep(interval)
            if until is not None and until():
                return
            if self.checkpoint():
                logger.debug(f"Checkpoint flushed for {self.video_id}/{self.viewer.id}")

    def _close_segment(self) -> None:
        start = self.segment_start
        end = self.position_source()
        
        # No forward progress (seek without play, or a backwards jump)
        if start is None or end <= start:
            return
        
        self._segments = merge_segments(self._segments + [(start, end)], self.tolerance)
        self._flush()

    def _flush(self) -> None:
        record = WatchRecord(viewer_name=self.viewer.name, watched_segments=self._segments)
        try:
            self.repository.save(self.video_id, self.viewer.id, record)
        except PersistenceError as e:
            logger.warning(f"Watch record flush failed for {self.video_id}/{self.viewer.id}: {e}")
