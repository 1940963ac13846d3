"""
Server clock used to stamp accepted messages.
"""
import threading
from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class MonotonicUtcClock:
    """
    Wall-clock UTC that never goes backwards: if the system clock steps back,
    the last issued instant is repeated instead.
    """

    def __init__(self) -> None:
        self._last: Optional[datetime] = None
        self._lock = threading.Lock()

    def __call__(self) -> datetime:
        now = utc_now()
        with self._lock:
            if self._last is not None and now < self._last:
                now = self._last
            self._last = now
        return now
