"""
Cross-viewer analytics for one video, and the refresh loop that keeps a
dashboard view current while viewers are still watching.
"""
from typing import AsyncIterator, List, Optional, Sequence, Tuple
from viewsync.exceptions import PersistenceError
from viewsync.models.video import VideoRecord
from viewsync.models.watch import VideoAnalytics, ViewerAnalyticsSummary, WatchRecord
from viewsync.services.catalog import VIDEOS_KEY
from viewsync.services.persistence import KeyValueStore
from viewsync.services.retention import RetentionAggregator, round_half_up
from viewsync.services.watch_records import WatchRecordRepository, analytics_prefix
import asyncio
import logging
import math

logger = logging.getLogger(__name__)


class AnalyticsReducer:
    def __init__(self, aggregator: Optional[RetentionAggregator] = None):
        self.aggregator = aggregator or RetentionAggregator()

    def reduce(
        self,
        video: VideoRecord,
        records: Sequence[Tuple[str, Optional[WatchRecord]]]
    ) -> VideoAnalytics:
        """
        Summarize every viewer of a video.

        Args:
            video: The video the records belong to
            records: (viewer_id, record) pairs; None marks a record that could
                not be read. It still counts as a viewer but gets no summary.

        Returns:
            VideoAnalytics with summaries sorted by watch time, descending.
            Equal watch times keep their input order.
        """
        duration = video.duration_seconds
        summaries: List[ViewerAnalyticsSummary] = []
        
        for viewer_id, record in records:
            if record is None:
                continue
            try:
                summaries.append(self.aggregator.summarize(viewer_id, record, duration))
            except (ValueError, TypeError) as e:
                logger.error(f"Skipping watch record of viewer {viewer_id} on {video.id}: {e}")
        
        summaries.sort(key=lambda s: s.total_watch_seconds, reverse=True)
        
        average = 0
        if summaries:
            average = round_half_up(sum(s.completion_percent for s in summaries) / len(summaries))
        
        return VideoAnalytics(
            video_id=video.id,
            duration_seconds=duration,
            viewer_count=len(records),
            average_completion_percent=average,
            audience_retention=self._audience_retention(summaries, duration),
            summaries=summaries
        )

    @staticmethod
    def _audience_retention(summaries: List[ViewerAnalyticsSummary], duration: float) -> List[float]:
        """Share of summarized viewers who watched each second"""
        bound = math.ceil(duration) if duration > 0 else 0
        if not summaries:
            return [0.0] * bound
        
        counts = [0] * bound
        for summary in summaries:
            for t, sample in enumerate(summary.retention_samples):
                counts[t] += sample.watched
        return [round(count / len(summaries), 4) for count in counts]


def build_video_analytics(store: KeyValueStore, video: VideoRecord,
                          reducer: Optional[AnalyticsReducer] = None) -> VideoAnalytics:
    records = WatchRecordRepository(store).list_for_video(video.id)
    return (reducer or AnalyticsReducer()).reduce(video, records)


class AnalyticsMonitor:
    """
    Recomputes a video's analytics on a fixed cadence and as soon as the
    store reports a change to one of its keys. The change signal only
    shortens the wait; polling keeps working when writers live in other
    processes and never signal this one.
    """

    def __init__(self, store: KeyValueStore, video: VideoRecord, poll_interval: float = 2.0,
                 reducer: Optional[AnalyticsReducer] = None):
        self.store = store
        self.video = video
        self.poll_interval = poll_interval
        self.reducer = reducer or AnalyticsReducer()
        self.latest: Optional[VideoAnalytics] = None
        self._prefix = analytics_prefix(video.id)

    def refresh(self) -> Optional[VideoAnalytics]:
        """Recompute now. A storage failure keeps the previous view."""
        try:
            self.latest = build_video_analytics(self.store, self.video, self.reducer)
        except PersistenceError as e:
            logger.warning(f"Analytics refresh failed for video {self.video.id}: {e}")
        return self.latest

    async def snapshots(self) -> AsyncIterator[VideoAnalytics]:
        """Yield a fresh view after every refresh, forever"""
        loop = asyncio.get_running_loop()
        changed = asyncio.Event()

        def on_change(key: str):
            if key.startswith(self._prefix) or key == VIDEOS_KEY:
                loop.call_soon_threadsafe(changed.set)

        unsubscribe = self.store.subscribe(on_change)
        try:
            while True:
                changed.clear()
                analytics = await asyncio.to_thread(self.refresh)
                if analytics is not None:
                    yield analytics
                try:
                    await asyncio.wait_for(changed.wait(), timeout=self.poll_interval)
                except asyncio.TimeoutError:
                    pass
        finally:
            unsubscribe()
