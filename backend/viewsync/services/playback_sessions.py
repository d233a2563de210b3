"""
Server-side playback sessions.

The player reports events with its current position; each open session owns
one SegmentRecorder and the asyncio task that checkpoints it. Recorders are
only touched from the event loop, so a recorder is never mutated
concurrently. Checkpoint flushes are single-row writes and run inline on the
loop; the initial record load runs in a worker thread before the session is
visible to anything else.

A session that receives no events for idle_timeout seconds (a killed tab) is
closed by its own checkpoint task with a final flush.
"""
from contextlib import suppress
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional
from viewsync.exceptions import PlaybackSessionNotFoundError
from viewsync.models.video import VideoRecord, Viewer
from viewsync.services.persistence import KeyValueStore
from viewsync.services.segment_merger import DEFAULT_MERGE_TOLERANCE
from viewsync.services.segment_recorder import RecorderState, SegmentRecorder
from viewsync.services.watch_records import WatchRecordRepository
import asyncio
import enum
import logging
import time
import uuid

logger = logging.getLogger(__name__)


class PlaybackEventType(str, enum.Enum):
    PLAY = "play"
    PAUSE = "pause"
    ENDED = "ended"
    SEEK = "seek"
    TIMEUPDATE = "timeupdate"


@dataclass
class PlaybackSession:
    video: VideoRecord
    viewer: Viewer
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    position: float = 0.0
    recorder: Optional[SegmentRecorder] = None
    checkpoint_task: Optional[asyncio.Task] = None
    last_event_at: float = 0.0


class PlaybackSessionManager:
    def __init__(
        self,
        store: KeyValueStore,
        tolerance: float = DEFAULT_MERGE_TOLERANCE,
        checkpoint_interval: float = 10.0,
        idle_timeout: float = 600.0,
        clock: Callable[[], float] = time.monotonic
    ):
        self.repository = WatchRecordRepository(store)
        self.tolerance = tolerance
        self.checkpoint_interval = checkpoint_interval
        self.idle_timeout = idle_timeout
        self.clock = clock
        self.sessions: Dict[str, PlaybackSession] = {}

    async def open_session(self, video: VideoRecord, viewer: Viewer) -> PlaybackSession:
        session = PlaybackSession(video=video, viewer=viewer, last_event_at=self.clock())
        session.recorder = SegmentRecorder(
            self.repository,
            video.id,
            viewer,
            position_source=lambda: session.position,
            tolerance=self.tolerance
        )
        await asyncio.to_thread(session.recorder.load)
        session.checkpoint_task = asyncio.create_task(self._checkpoint_until_idle(session))
        self.sessions[session.id] = session

        logger.info(f"Opened playback session {session.id} for video {video.id}, viewer {viewer.id}")
        return session

    def get_session(self, session_id: str) -> PlaybackSession:
        session = self.sessions.get(session_id)
        if session is None:
            raise PlaybackSessionNotFoundError(session_id)
        return session

    def handle_event(self, session_id: str, event_type: PlaybackEventType, position: float) -> RecorderState:
        session = self.get_session(session_id)
        session.last_event_at = self.clock()
        recorder = session.recorder

        if event_type is PlaybackEventType.SEEK:
            # Close at the pre-seek position before moving
            recorder.on_seek(position)
            session.position = position
            return recorder.state

        session.position = position
        if event_type is PlaybackEventType.PLAY:
            recorder.on_play()
        elif event_type in (PlaybackEventType.PAUSE, PlaybackEventType.ENDED):
            recorder.on_stop()
        return recorder.state

    async def close_session(self, session_id: str, position: Optional[float] = None) -> PlaybackSession:
        """Teardown: stop checkpointing and flush whatever is still open"""
        session = self.sessions.pop(session_id, None)
        if session is None:
            raise PlaybackSessionNotFoundError(session_id)

        await self._cancel_checkpoints(session)

        if position is not None:
            session.position = position
        session.recorder.on_stop()

        logger.info(f"Closed playback session {session_id}")
        return session

    async def discard_video_sessions(self, video_id: str) -> List[PlaybackSession]:
        """
        Drop every session of a video without a final flush, so nothing
        writes its watch records again once the video is deleted.
        """
        discarded = [s for s in self.sessions.values() if s.video.id == video_id]
        for session in discarded:
            del self.sessions[session.id]
            await self._cancel_checkpoints(session)

        if discarded:
            logger.info(f"Discarded {len(discarded)} playback sessions of video {video_id}")
        return discarded

    async def close_all(self) -> None:
        for session_id in list(self.sessions):
            await self.close_session(session_id)

    def _is_idle(self, session: PlaybackSession) -> bool:
        return self.clock() - session.last_event_at >= self.idle_timeout

    async def _checkpoint_until_idle(self, session: PlaybackSession) -> None:
        await session.recorder.checkpoint_loop(self.checkpoint_interval, until=lambda: self._is_idle(session))

        # Nothing has reported in for idle_timeout; close at the last known position
        if self.sessions.pop(session.id, None) is not None:
            session.recorder.on_stop()
            logger.info(f"Expired idle playback session {session.id}")

    @staticmethod
    async def _cancel_checkpoints(session: PlaybackSession) -> None:
        task = session.checkpoint_task
        if task is None or task.done():
            return
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task
