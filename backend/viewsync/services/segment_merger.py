"""
Interval merging for watched segments.
"""
from typing import Iterable, List
from viewsync.models.watch import Segment

DEFAULT_MERGE_TOLERANCE = 1.5


def merge_segments(segments: Iterable[Segment], tolerance: float = DEFAULT_MERGE_TOLERANCE) -> List[Segment]:
    """
    Coalesce closed intervals into the minimal sorted, non-overlapping set.

    Two intervals are joined when the next one starts no later than
    `tolerance` seconds after the current one ends, so playback that was
    split by timer jitter is stored as one range.

    Args:
        segments: (start, end) pairs in any order, start <= end
        tolerance: Largest gap (seconds) that is still bridged

    Returns:
        New list of (start, end) tuples sorted by start
    """
    ordered = sorted((float(start), float(end)) for start, end in segments)
    if not ordered:
        return []
    
    merged: List[Segment] = []
    current_start, current_end = ordered[0]
    
    for start, end in ordered[1:]:
        if start <= current_end + tolerance:
            current_end = max(current_end, end)
        else:
            merged.append((current_start, current_end))
            current_start, current_end = start, end
    
    merged.append((current_start, current_end))
    return merged
