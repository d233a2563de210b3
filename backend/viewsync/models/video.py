"""
Video catalog and viewer identity records.
Field aliases keep the JSON layout used by the browser client.
"""
from pydantic import BaseModel, ConfigDict, Field
import time
import uuid


def new_video_id() -> str:
    # Hex ids never contain "-", so analytics key prefixes stay unambiguous
    return uuid.uuid4().hex


def now_millis() -> int:
    return int(time.time() * 1000)


class VideoRecord(BaseModel):
    """An uploaded video. Immutable once committed to the catalog."""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=new_video_id)
    name: str
    created_at: int = Field(default_factory=now_millis, alias="createdAt")  # epoch millis
    url: str
    duration_seconds: float = Field(alias="duration", ge=0)


class Viewer(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str = Field(min_length=2, max_length=50)
