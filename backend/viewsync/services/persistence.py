"""
Key-value persistence substrate.

Every component talks to storage through a KeyValueStore handle that is
passed in, never through module-level globals.
"""
from abc import ABC, abstractmethod
from typing import Callable, List, Optional
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from viewsync.database import SessionLocal
from viewsync.exceptions import PersistenceError, PersistenceWriteError
from viewsync.models.key_value import KeyValueEntry
import logging
import threading

logger = logging.getLogger(__name__)

ChangeListener = Callable[[str], None]


class KeyValueStore(ABC):
    """
    get/set/remove/list_keys plus a change signal fired after every
    successful mutation. No transactions: last write wins.
    """

    def __init__(self):
        self._listeners: List[ChangeListener] = []
        self._listeners_lock = threading.Lock()

    @abstractmethod
    def get(self, key: str) -> Optional[bytes]:
        """Return the stored bytes, or None when the key is absent"""

    @abstractmethod
    def _write(self, key: str, value: bytes) -> None:
        pass

    @abstractmethod
    def _delete(self, key: str) -> bool:
        pass

    @abstractmethod
    def list_keys(self, prefix: str = "") -> List[str]:
        """Keys starting with prefix, in insertion order"""

    def set(self, key: str, value: bytes) -> None:
        self._write(key, value)
        self._notify(key)

    def remove(self, key: str) -> None:
        if self._delete(key):
            self._notify(key)

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Register a change listener. Returns a callable that unsubscribes it."""
        with self._listeners_lock:
            self._listeners.append(listener)

        def unsubscribe():
            with self._listeners_lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, key: str) -> None:
        with self._listeners_lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(key)
            except Exception as e:
                logger.error(f"Change listener failed for key {key}: {e}")


class SqlKeyValueStore(KeyValueStore):
    """KeyValueStore backed by the kv_entries table"""

    def __init__(self, session_factory=SessionLocal):
        super().__init__()
        self.session_factory = session_factory

    def get(self, key: str) -> Optional[bytes]:
        try:
            with self.session_factory() as db:
                entry = db.execute(
                    select(KeyValueEntry).where(KeyValueEntry.key == key)
                ).scalar_one_or_none()
                return bytes(entry.value) if entry else None
        except SQLAlchemyError as e:
            logger.error(f"Read failed for key {key}: {e}")
            raise PersistenceError(f"Read failed for key {key}: {e}", key=key) from e

    def _write(self, key: str, value: bytes) -> None:
        try:
            with self.session_factory() as db:
                entry = db.execute(
                    select(KeyValueEntry).where(KeyValueEntry.key == key)
                ).scalar_one_or_none()
                if entry:
                    entry.value = value
                else:
                    db.add(KeyValueEntry(key=key, value=value))
                db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Write failed for key {key}: {e}")
            raise PersistenceWriteError(f"Write failed for key {key}: {e}", key=key) from e

    def _delete(self, key: str) -> bool:
        try:
            with self.session_factory() as db:
                entry = db.execute(
                    select(KeyValueEntry).where(KeyValueEntry.key == key)
                ).scalar_one_or_none()
                if not entry:
                    return False
                db.delete(entry)
                db.commit()
                return True
        except SQLAlchemyError as e:
            logger.error(f"Remove failed for key {key}: {e}")
            raise PersistenceWriteError(f"Remove failed for key {key}: {e}", key=key) from e

    def list_keys(self, prefix: str = "") -> List[str]:
        try:
            with self.session_factory() as db:
                query = select(KeyValueEntry.key).order_by(KeyValueEntry.id)
                if prefix:
                    query = query.where(KeyValueEntry.key.startswith(prefix, autoescape=True))
                return list(db.execute(query).scalars())
        except SQLAlchemyError as e:
            logger.error(f"Key listing failed for prefix {prefix!r}: {e}")
            raise PersistenceError(f"Key listing failed for prefix {prefix!r}: {e}") from e
