"""
Message store adapter.

A narrow interface over the embedded database: `append` one accepted message,
`recent(n)` to read the last n back in ascending time order. The SQLAlchemy
implementation is the reference one; the in-memory one backs tests and
disk-less runs.
"""
import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from chatrelay.core.memory.db import create_db_engine, init_db, make_session_factory, session_scope
from chatrelay.core.memory.models import MESSAGE_MAX_LEN, NAME_MAX_LEN
from chatrelay.core.memory.repository import MessageRepository, as_utc
from chatrelay.core.schemas import MessageOut

logger = logging.getLogger(__name__)


class StoreError(RuntimeError):
    """Raised when the store cannot persist or read messages."""
    pass


def _check_bounds(name: str, message: str) -> None:
    if not 1 <= len(name) <= NAME_MAX_LEN:
        raise StoreError(f"name length {len(name)} outside 1..{NAME_MAX_LEN}")
    if not 1 <= len(message) <= MESSAGE_MAX_LEN:
        raise StoreError(f"message length {len(message)} outside 1..{MESSAGE_MAX_LEN}")


def _ascending(records: List[MessageOut]) -> List[MessageOut]:
    return sorted(records, key=lambda r: r.time)


class MessageStore(ABC):
    """Persistence contract used by the session loop and the history route."""

    def init(self) -> None:
        """Prepare storage (create schema). Default: nothing to do."""

    def close(self) -> None:
        """Release resources. Default: nothing to do."""

    @abstractmethod
    def append(self, name: str, message: str, created_at: datetime) -> None:
        """Persist one record. Raises StoreError on failure."""

    @abstractmethod
    def recent(self, n: int) -> List[MessageOut]:
        """Up to n most recent records, ascending by time. Raises StoreError on failure."""


class SqlMessageStore(MessageStore):
    """SQLite-backed store via SQLAlchemy."""

    def __init__(self, database_path: Optional[str] = None, echo: Optional[bool] = None) -> None:
        self.engine = create_db_engine(database_path, echo=echo)
        self._session_factory = make_session_factory(self.engine)

    def init(self) -> None:
        try:
            init_db(self.engine)
        except SQLAlchemyError as e:
            raise StoreError(f"schema init failed: {e}") from e

    def close(self) -> None:
        self.engine.dispose()

    def append(self, name: str, message: str, created_at: datetime) -> None:
        _check_bounds(name, message)
        try:
            with session_scope(self._session_factory) as db:
                MessageRepository.create(db, name=name, message=message, created_at=created_at)
        except SQLAlchemyError as e:
            raise StoreError(f"append failed: {e}") from e

    def recent(self, n: int) -> List[MessageOut]:
        if n <= 0:
            return []
        try:
            with session_scope(self._session_factory) as db:
                rows = MessageRepository.get_recent(db, limit=n)
                records = [
                    MessageOut(name=r.name, message=r.message, time=as_utc(r.created_at))
                    for r in rows
                ]
        except SQLAlchemyError as e:
            raise StoreError(f"recent query failed: {e}") from e
        return _ascending(records)


class MemoryMessageStore(MessageStore):
    """Thread-safe in-process store; keeps at most `capacity` records."""

    def __init__(self, capacity: int = 1000) -> None:
        self._records: List[MessageOut] = []
        self._capacity = capacity
        self._lock = threading.Lock()

    def append(self, name: str, message: str, created_at: datetime) -> None:
        _check_bounds(name, message)
        record = MessageOut(name=name, message=message, time=as_utc(created_at))
        with self._lock:
            self._records.append(record)
            if len(self._records) > self._capacity:
                del self._records[: len(self._records) - self._capacity]

    def recent(self, n: int) -> List[MessageOut]:
        if n <= 0:
            return []
        with self._lock:
            newest_first = sorted(self._records, key=lambda r: r.time, reverse=True)[:n]
        return _ascending(newest_first)
