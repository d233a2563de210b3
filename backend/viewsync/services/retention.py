"""
Per-viewer retention: which whole seconds of a video a viewer has seen.
"""
from typing import Iterable, Set
from viewsync.models.watch import RetentionSample, Segment, ViewerAnalyticsSummary, WatchRecord
import logging
import math

logger = logging.getLogger(__name__)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def format_time(seconds: float) -> str:
    """Format seconds as mm:ss (minutes are not wrapped into hours)"""
    minutes, secs = divmod(round_half_up(seconds), 60)
    return f"{minutes:02d}:{secs:02d}"


class RetentionAggregator:
    """Turns one WatchRecord into a ViewerAnalyticsSummary"""

    @staticmethod
    def watched_seconds(segments: Iterable[Segment], duration: float) -> Set[int]:
        """
        Seconds t in [0, ceil(duration)) covered by [floor(start), ceil(end)]
        of any segment. Both ends are inclusive so rounding never undercounts.
        """
        bound = math.ceil(duration) if duration > 0 else 0
        watched = set()
        for start, end in segments:
            if not (math.isfinite(start) and math.isfinite(end)) or end < start:
                logger.warning(f"Ignoring malformed segment ({start}, {end})")
                continue
            first = max(math.floor(start), 0)
            last = min(math.ceil(end), bound - 1)
            watched.update(range(first, last + 1))
        return watched

    def summarize(self, viewer_id: str, record: WatchRecord, duration: float) -> ViewerAnalyticsSummary:
        if not math.isfinite(duration) or duration < 0:
            duration = 0
        
        watched = self.watched_seconds(record.watched_segments, duration)
        bound = math.ceil(duration)
        
        samples = [
            RetentionSample(time_label=format_time(t), watched=1 if t in watched else 0)
            for t in range(bound)
        ]
        
        total = len(watched)
        completion = round_half_up(total / duration * 100) if duration > 0 else 0
        
        return ViewerAnalyticsSummary(
            viewer_id=viewer_id,
            viewer_name=record.viewer_name,
            total_watch_seconds=total,
            completion_percent=completion,
            retention_samples=samples
        )
