"""
Data models for the video sharing and watch analytics service.
"""
# Persistence substrate table
from viewsync.models.key_value import KeyValueEntry

# Catalog and identity records
from viewsync.models.video import VideoRecord, Viewer

# Watch tracking and analytics
from viewsync.models.watch import (
    Segment,
    WatchRecord,
    RetentionSample,
    ViewerAnalyticsSummary,
    VideoAnalytics
)

__all__ = [
    "KeyValueEntry",
    "VideoRecord",
    "Viewer",
    "Segment",
    "WatchRecord",
    "RetentionSample",
    "ViewerAnalyticsSummary",
    "VideoAnalytics",
]
