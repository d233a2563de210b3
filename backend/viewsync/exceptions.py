"""
Error kinds raised across the watch tracking, persistence and upload layers.
"""
import enum
from typing import Optional


class ViewSyncError(Exception):
    """Base class for all application errors"""


class PersistenceError(ViewSyncError):
    """The key-value substrate could not serve a request"""

    def __init__(self, message: str, key: Optional[str] = None):
        super().__init__(message)
        self.key = key


class PersistenceReadError(PersistenceError):
    """A stored record is corrupt or cannot be parsed"""


class PersistenceWriteError(PersistenceError):
    """A set or remove did not reach the substrate"""


class BlobErrorCategory(str, enum.Enum):
    """Why a blob transfer failed"""
    QUOTA_EXCEEDED = "quota_exceeded"
    UNAUTHORIZED = "unauthorized"
    UNAUTHENTICATED = "unauthenticated"
    CANCELED = "canceled"
    NETWORK = "network"
    UNKNOWN = "unknown"


_BLOB_ERROR_DESCRIPTIONS = {
    BlobErrorCategory.QUOTA_EXCEEDED: "Storage quota exceeded. Delete other videos or raise the bucket quota.",
    BlobErrorCategory.UNAUTHORIZED: "The storage backend rejected the upload. Check the bucket access rules.",
    BlobErrorCategory.UNAUTHENTICATED: "The storage backend requires valid credentials.",
    BlobErrorCategory.CANCELED: "The upload was canceled.",
    BlobErrorCategory.NETWORK: "The upload was interrupted by a network error.",
    BlobErrorCategory.UNKNOWN: "An unexpected storage error occurred.",
}


class BlobTransferError(ViewSyncError):
    """Upload or delete against the blob store failed"""

    def __init__(self, category: BlobErrorCategory, message: Optional[str] = None):
        self.category = BlobErrorCategory(category)
        self.description = _BLOB_ERROR_DESCRIPTIONS[self.category]
        super().__init__(message or self.description)


class MetadataUnavailableError(ViewSyncError):
    """Video duration could not be determined"""


class VideoNotFoundError(ViewSyncError):
    def __init__(self, video_id: str):
        super().__init__(f"Video {video_id} not found")
        self.video_id = video_id


class PlaybackSessionNotFoundError(ViewSyncError):
    def __init__(self, session_id: str):
        super().__init__(f"Playback session {session_id} not found")
        self.session_id = session_id


class UploadRejectedError(ViewSyncError):
    """The file failed validation before any transfer started"""
