"""
Blob storage for uploaded video files.

An upload is an UploadTask: iterate it to drive the transfer and observe
progress, call cancel() from anywhere to abort it. A canceled or failed
transfer never leaves a partial object behind.
"""
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Iterator, Optional
from urllib.parse import quote, unquote
from viewsync.config import get_settings
from viewsync.exceptions import BlobErrorCategory, BlobTransferError
import errno
import logging
import queue
import threading
import requests

logger = logging.getLogger(__name__)


@dataclass
class UploadProgress:
    bytes_transferred: int
    total_bytes: int

    @property
    def percent(self) -> float:
        if not self.total_bytes:
            return 100.0
        return self.bytes_transferred / self.total_bytes * 100


class UploadTask(ABC):
    """A single in-flight upload"""

    def __init__(self, source: BinaryIO, total_bytes: int, chunk_size: int):
        self.source = source
        self.total_bytes = total_bytes
        self.chunk_size = chunk_size
        self.locator: Optional[str] = None
        self._canceled = threading.Event()

    def cancel(self):
        self._canceled.set()

    @property
    def canceled(self) -> bool:
        return self._canceled.is_set()

    def __iter__(self) -> Iterator[UploadProgress]:
        return self._transfer()

    def wait(self) -> str:
        """Run the transfer to completion and return the locator"""
        for _ in self:
            pass
        return self.locator

    def _raise_if_canceled(self):
        if self.canceled:
            raise BlobTransferError(BlobErrorCategory.CANCELED)

    @abstractmethod
    def _transfer(self) -> Iterator[UploadProgress]:
        pass


class BlobStore(ABC):
    @abstractmethod
    def upload(self, source: BinaryIO, destination: str, total_bytes: int) -> UploadTask:
        """Prepare an upload of source to destination ("<video_id>/<filename>")"""

    @abstractmethod
    def delete(self, locator: str) -> None:
        """Delete the object behind a locator returned by a finished upload"""


class LocalUploadTask(UploadTask):
    def __init__(self, source, total_bytes, chunk_size, target: Path, locator: str):
        super().__init__(source, total_bytes, chunk_size)
        self.target = target
        self._final_locator = locator

    def _transfer(self) -> Iterator[UploadProgress]:
        partial = self.target.with_name(self.target.name + ".part")
        transferred = 0
        try:
            self.target.parent.mkdir(parents=True, exist_ok=True)
            with open(partial, "wb") as out:
                while True:
                    self._raise_if_canceled()
                    chunk = self.source.read(self.chunk_size)
                    if not chunk:
                        break
                    out.write(chunk)
                    transferred += len(chunk)
                    yield UploadProgress(transferred, self.total_bytes)
            self._raise_if_canceled()
            partial.replace(self.target)
        except OSError as e:
            partial.unlink(missing_ok=True)
            category = BlobErrorCategory.QUOTA_EXCEEDED if e.errno == errno.ENOSPC else BlobErrorCategory.UNKNOWN
            logger.error(f"Local upload to {self.target} failed: {e}")
            raise BlobTransferError(category, str(e)) from e
        except BaseException:
            # Cancellation, or the consumer abandoned the transfer
            partial.unlink(missing_ok=True)
            raise
        
        self.locator = self._final_locator
        logger.info(f"Saved upload: {self.target} ({transferred} bytes)")


class LocalBlobStore(BlobStore):
    """Files under a local directory, served by the app at url_prefix"""

    def __init__(self, root_dir: Path, url_prefix: str = "/storage/uploads", chunk_size: int = 5 * 1024 * 1024):
        self.root_dir = Path(root_dir)
        self.url_prefix = url_prefix.rstrip("/")
        self.chunk_size = chunk_size

    def upload(self, source: BinaryIO, destination: str, total_bytes: int) -> UploadTask:
        target = self._resolve(destination)
        relative = target.relative_to(self.root_dir.resolve()).as_posix()
        locator = f"{self.url_prefix}/{quote(relative)}"
        return LocalUploadTask(source, total_bytes, self.chunk_size, target, locator)

    def delete(self, locator: str) -> None:
        if not locator.startswith(self.url_prefix + "/"):
            raise BlobTransferError(BlobErrorCategory.UNKNOWN, f"Locator {locator} is not a local upload")
        
        path = self._resolve(unquote(locator[len(self.url_prefix) + 1:]))
        if not path.exists():
            logger.warning(f"Blob already gone: {path}")
            return
        
        try:
            path.unlink()
            # Also remove the video directory if empty
            if path.parent != self.root_dir.resolve() and not any(path.parent.iterdir()):
                path.parent.rmdir()
        except OSError as e:
            logger.error(f"Failed to delete {path}: {e}")
            raise BlobTransferError(BlobErrorCategory.UNKNOWN, str(e)) from e
        
        logger.info(f"Deleted blob: {path}")

    def _resolve(self, relative: str) -> Path:
        root = self.root_dir.resolve()
        path = (root / relative).resolve()
        if root not in path.parents:
            raise BlobTransferError(BlobErrorCategory.UNAUTHORIZED, f"Destination {relative} escapes the storage root")
        return path


def _category_for_status(status_code: int) -> BlobErrorCategory:
    if status_code == 401:
        return BlobErrorCategory.UNAUTHENTICATED
    if status_code == 403:
        return BlobErrorCategory.UNAUTHORIZED
    if status_code == 413:
        return BlobErrorCategory.QUOTA_EXCEEDED
    return BlobErrorCategory.UNKNOWN


class SupabaseUploadTask(UploadTask):
    def __init__(self, source, total_bytes, chunk_size, store: "SupabaseBlobStore", storage_path: str):
        super().__init__(source, total_bytes, chunk_size)
        self.store = store
        self.storage_path = storage_path

    def _body(self, progress: "queue.Queue[int]") -> Iterator[bytes]:
        sent = 0
        while True:
            self._raise_if_canceled()
            chunk = self.source.read(self.chunk_size)
            if not chunk:
                break
            sent += len(chunk)
            yield chunk
            progress.put(sent)

    def _transfer(self) -> Iterator[UploadProgress]:
        progress: "queue.Queue[int]" = queue.Queue()
        
        # requests consumes the body on its own thread; progress comes back through the queue
        with ThreadPoolExecutor(max_workers=1) as pool:
            future = pool.submit(self.store.post_object, self.storage_path, self._body(progress))
            try:
                while not future.done() or not progress.empty():
                    try:
                        sent = progress.get(timeout=0.1)
                    except queue.Empty:
                        continue
                    yield UploadProgress(sent, self.total_bytes)
            except GeneratorExit:
                self.cancel()
                raise
            future.result()
        
        self.locator = self.store.public_url(self.storage_path)
        logger.info(f"File uploaded successfully: {self.locator}")


class SupabaseBlobStore(BlobStore):
    """Supabase Storage REST API"""

    def __init__(self, supabase_url: str, supabase_key: str, bucket: str, chunk_size: int = 5 * 1024 * 1024,
                 timeout: int = 600):
        if not supabase_url or not supabase_key:
            raise ValueError("SUPABASE_URL and SUPABASE_KEY are required for the supabase blob backend")
        self.supabase_url = supabase_url.rstrip("/")
        self.supabase_key = supabase_key
        self.bucket = bucket
        self.chunk_size = chunk_size
        self.timeout = timeout

    def upload(self, source: BinaryIO, destination: str, total_bytes: int) -> UploadTask:
        storage_path = destination.strip("/")
        return SupabaseUploadTask(source, total_bytes, self.chunk_size, self, storage_path)

    def delete(self, locator: str) -> None:
        prefix = f"{self.supabase_url}/storage/v1/object/public/{self.bucket}/"
        if not locator.startswith(prefix):
            raise BlobTransferError(BlobErrorCategory.UNKNOWN, f"Locator {locator} is not in bucket {self.bucket}")
        
        storage_path = unquote(locator[len(prefix):])
        response = self._request("DELETE", self._object_url(storage_path))
        if response.status_code == 404:
            logger.warning(f"Blob already gone: {storage_path}")
            return
        self._raise_for_status(response)
        logger.info(f"Deleted blob: {storage_path}")

    def post_object(self, storage_path: str, body: Iterator[bytes]) -> None:
        logger.info(f"Uploading to Supabase storage, bucket: {self.bucket}, path: {storage_path}")
        response = self._request(
            "POST",
            self._object_url(storage_path),
            data=body,
            headers={"Content-Type": "application/octet-stream", "x-upsert": "true"},
        )
        self._raise_for_status(response)

    def public_url(self, storage_path: str) -> str:
        return f"{self.supabase_url}/storage/v1/object/public/{self.bucket}/{self._encode(storage_path)}"

    def _object_url(self, storage_path: str) -> str:
        return f"{self.supabase_url}/storage/v1/object/{self.bucket}/{self._encode(storage_path)}"

    @staticmethod
    def _encode(storage_path: str) -> str:
        # Encode each path segment separately, then join with /
        return "/".join(quote(part, safe="") for part in storage_path.split("/"))

    def _request(self, method: str, url: str, headers: Optional[dict] = None, **kwargs) -> requests.Response:
        all_headers = {
            "Authorization": f"Bearer {self.supabase_key}",
            "apikey": self.supabase_key,  # Supabase requires both Authorization and apikey
        }
        all_headers.update(headers or {})
        try:
            return requests.request(method, url, headers=all_headers, timeout=self.timeout, **kwargs)
        except (requests.ConnectionError, requests.Timeout) as e:
            logger.error(f"{method} {url} failed: {e}")
            raise BlobTransferError(BlobErrorCategory.NETWORK, str(e)) from e

    @staticmethod
    def _raise_for_status(response: requests.Response) -> None:
        if response.status_code < 400:
            return
        error_text = response.text[:1000] if response.text else "No error message"
        logger.error(f"Supabase storage error ({response.status_code}): {error_text}")
        raise BlobTransferError(_category_for_status(response.status_code), error_text)


def create_blob_store(settings=None) -> BlobStore:
    settings = settings or get_settings()
    if settings.BLOB_BACKEND == "supabase":
        return SupabaseBlobStore(
            settings.SUPABASE_URL,
            settings.SUPABASE_KEY,
            settings.SUPABASE_BUCKET,
            chunk_size=settings.chunk_size_bytes,
        )
    return LocalBlobStore(settings.UPLOAD_DIR, url_prefix="/storage/uploads", chunk_size=settings.chunk_size_bytes)
