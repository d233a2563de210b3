"""
Watch tracking records and the analytics views derived from them.
"""
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import List, Tuple
import math

Segment = Tuple[float, float]


class WatchRecord(BaseModel):
    """
    Watched time ranges of one viewer for one video.
    Stored as {"viewerName": ..., "watchedSegments": [[start, end], ...]}.
    """
    model_config = ConfigDict(populate_by_name=True)

    viewer_name: str = Field(default="", alias="viewerName")
    watched_segments: List[Segment] = Field(default_factory=list, alias="watchedSegments")

    @field_validator("watched_segments")
    @classmethod
    def validate_segments(cls, segments):
        for start, end in segments:
            if not (math.isfinite(start) and math.isfinite(end)):
                raise ValueError(f"Segment ({start}, {end}) is not finite")
            if start < 0 or start > end:
                raise ValueError(f"Segment ({start}, {end}) must satisfy 0 <= start <= end")
        return segments

    def to_json(self) -> bytes:
        return self.model_dump_json(by_alias=True).encode("utf-8")

    @classmethod
    def from_json(cls, raw: bytes) -> "WatchRecord":
        return cls.model_validate_json(raw)


class RetentionSample(BaseModel):
    time_label: str
    watched: int  # 1 if the second was viewed, else 0


class ViewerAnalyticsSummary(BaseModel):
    viewer_id: str
    viewer_name: str
    total_watch_seconds: int
    completion_percent: int
    retention_samples: List[RetentionSample]


class VideoAnalytics(BaseModel):
    """Dashboard view of one video across all of its viewers"""
    video_id: str
    duration_seconds: float
    viewer_count: int
    average_completion_percent: int
    audience_retention: List[float]
    summaries: List[ViewerAnalyticsSummary]
