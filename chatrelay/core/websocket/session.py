"""
One live client connection.

A Session wraps the Starlette WebSocket with a write lock (outbound frames are
serialized), a write deadline, the time the peer was last heard from, and a
closing flag.
Only the hub dispatcher writes; only the session loop reads.
"""
import asyncio
import itertools
import logging
import time
from enum import Enum
from typing import Any, Dict, Optional

from starlette.websockets import WebSocketState

logger = logging.getLogger(__name__)

PING_FRAME: Dict[str, Any] = {"type": "ping", "payload": "ping"}

_ids = itertools.count(1)


class SessionState(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


class Session:
    """Per-connection state shared by the session loop and the dispatcher."""

    def __init__(self, websocket: Any, write_timeout: float = 10.0, read_timeout: float = 60.0) -> None:
        self.id = next(_ids)
        self.websocket = websocket
        self.write_timeout = write_timeout
        self.read_timeout = read_timeout
        self.state = SessionState.CONNECTING
        self.last_seen = time.monotonic()
        self._write_lock = asyncio.Lock()
        self._closed = False

    def __repr__(self) -> str:
        return f"<Session id={self.id} state={self.state.value}>"

    @property
    def closing(self) -> bool:
        return self.state in (SessionState.CLOSING, SessionState.CLOSED)

    def mark_open(self) -> None:
        self.state = SessionState.OPEN
        self.mark_seen()

    def mark_seen(self) -> None:
        """Record inbound activity (any frame or pong); the read deadline is measured from here."""
        self.last_seen = time.monotonic()

    def read_deadline_remaining(self) -> float:
        return self.last_seen + self.read_timeout - time.monotonic()

    async def send_json(self, obj: Dict[str, Any]) -> None:
        """Write one JSON text frame under the write deadline. Raises on failure."""
        if self.closing:
            raise ConnectionError(f"session {self.id} is closing")
        async with self._write_lock:
            await asyncio.wait_for(self.websocket.send_json(obj), timeout=self.write_timeout)

    async def send_ping(self) -> None:
        await self.send_json(PING_FRAME)

    async def close(self, code: int = 1000, reason: Optional[str] = None) -> bool:
        """
        Close the underlying socket once. Returns False if it was already closed.
        """
        if self._closed:
            return False
        self._closed = True
        self.state = SessionState.CLOSING
        try:
            if (
                getattr(self.websocket, "application_state", None) != WebSocketState.DISCONNECTED
                and getattr(self.websocket, "client_state", None) != WebSocketState.DISCONNECTED
            ):
                await asyncio.wait_for(
                    self.websocket.close(code=code, reason=reason), timeout=self.write_timeout
                )
        except Exception as e:
            logger.debug("Close session %s: %s", self.id, e)
        finally:
            self.state = SessionState.CLOSED
        return True
