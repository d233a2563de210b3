"""
Upload pipeline: validate, probe the duration, transfer to the blob store,
and only then commit the VideoRecord. Anything that stops the pipeline
early (rejection, cancellation, transfer error) commits nothing.
"""
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Callable, Dict, Optional
from viewsync.config import get_settings
from viewsync.exceptions import BlobTransferError, PersistenceError, UploadRejectedError
from viewsync.models.video import VideoRecord, new_video_id
from viewsync.services.catalog import VideoCatalog
from viewsync.services.retention import round_half_up
from viewsync.services.storage import BlobStore, UploadProgress, UploadTask
from viewsync.services.video_processor import VideoProcessor
import logging
import shutil
import threading

logger = logging.getLogger(__name__)


@dataclass
class ActiveUpload:
    task: UploadTask
    progress: UploadProgress


class UploadTracker:
    """In-flight uploads by upload id, so another request can cancel them"""

    def __init__(self):
        self._uploads: Dict[str, ActiveUpload] = {}
        self._lock = threading.Lock()

    def register(self, upload_id: str, task: UploadTask) -> None:
        with self._lock:
            self._uploads[upload_id] = ActiveUpload(task, UploadProgress(0, task.total_bytes))

    def update(self, upload_id: str, progress: UploadProgress) -> None:
        with self._lock:
            if upload_id in self._uploads:
                self._uploads[upload_id].progress = progress

    def get(self, upload_id: str) -> Optional[ActiveUpload]:
        with self._lock:
            return self._uploads.get(upload_id)

    def cancel(self, upload_id: str) -> bool:
        with self._lock:
            active = self._uploads.get(upload_id)
        if active is None:
            return False
        active.task.cancel()
        logger.info(f"Upload {upload_id} cancel requested")
        return True

    def discard(self, upload_id: str) -> None:
        with self._lock:
            self._uploads.pop(upload_id, None)


class VideoUploadService:
    def __init__(
        self,
        catalog: VideoCatalog,
        blob_store: BlobStore,
        tracker: Optional[UploadTracker] = None,
        settings=None,
        probe_duration: Callable[[str], float] = VideoProcessor.probe_duration
    ):
        self.catalog = catalog
        self.blob_store = blob_store
        self.tracker = tracker or UploadTracker()
        self.settings = settings or get_settings()
        self.probe_duration = probe_duration

    def validate(self, filename: Optional[str], size: int) -> str:
        """Returns the sanitized filename"""
        if not filename:
            raise UploadRejectedError("No file provided")
        
        safe_name = Path(filename).name
        file_ext = Path(safe_name).suffix.lower()
        if file_ext not in self.settings.ALLOWED_VIDEO_EXTENSIONS:
            raise UploadRejectedError(
                f"File type not allowed. Allowed: {self.settings.ALLOWED_VIDEO_EXTENSIONS}"
            )
        if size <= 0:
            raise UploadRejectedError("File is empty")
        if size > self.settings.max_upload_size_bytes:
            raise UploadRejectedError(
                f"File exceeds the {self.settings.MAX_UPLOAD_SIZE_MB}MB upload limit"
            )
        return safe_name

    def upload(
        self,
        source: BinaryIO,
        filename: str,
        name: Optional[str] = None,
        upload_id: Optional[str] = None,
        on_progress: Optional[Callable[[UploadProgress], None]] = None
    ) -> VideoRecord:
        """
        Run the whole pipeline for one file.

        Raises:
            UploadRejectedError: validation failed
            MetadataUnavailableError: the duration could not be probed
            BlobTransferError: the transfer failed or was canceled
        """
        if not filename:
            raise UploadRejectedError("No file provided")
        
        video_id = new_video_id()
        upload_id = upload_id or video_id
        temp_dir = self.settings.TEMP_DIR / video_id
        
        try:
            # Stage locally first; the probe needs a file path
            temp_dir.mkdir(parents=True, exist_ok=True)
            staged = temp_dir / (Path(filename).name or "upload")
            with open(staged, "wb") as buffer:
                shutil.copyfileobj(source, buffer)
            
            size = staged.stat().st_size
            safe_name = self.validate(filename, size)
            duration = self.probe_duration(str(staged))
            
            with open(staged, "rb") as payload:
                task = self.blob_store.upload(payload, f"{video_id}/{safe_name}", size)
                self.tracker.register(upload_id, task)
                locator = self._run_transfer(upload_id, task, on_progress)
            
            video = VideoRecord(
                id=video_id,
                name=name or safe_name,
                url=locator,
                duration_seconds=round_half_up(duration)
            )
            try:
                self.catalog.add_video(video)
            except PersistenceError:
                # Never leave a blob without a catalog entry
                self._discard_blob(locator)
                raise
            logger.info(f"Media uploaded: {video_id} ({size} bytes, {duration:.2f}s)")
            return video
        finally:
            self.tracker.discard(upload_id)
            shutil.rmtree(temp_dir, ignore_errors=True)

    def _run_transfer(self, upload_id: str, task: UploadTask,
                      on_progress: Optional[Callable[[UploadProgress], None]]) -> str:
        next_log_percent = 10
        for progress in task:
            self.tracker.update(upload_id, progress)
            if on_progress:
                on_progress(progress)
            if progress.percent >= next_log_percent:
                logger.info(f"Upload {upload_id}: {progress.bytes_transferred}/{progress.total_bytes} bytes ({progress.percent:.0f}%)")
                next_log_percent = (int(progress.percent) // 10 + 1) * 10
        return task.locator

    def _discard_blob(self, locator: str) -> None:
        try:
            self.blob_store.delete(locator)
        except BlobTransferError as e:
            logger.error(f"Could not remove orphaned blob {locator}: {e}")
