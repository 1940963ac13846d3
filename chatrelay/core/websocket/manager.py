"""
Connection registry: the live set of sessions.

Register and unregister take the lock; the dispatcher iterates over a copied
snapshot so no lock is held across a network write.
"""
import asyncio
import logging
from typing import List, Set

from chatrelay.core.websocket.session import Session

logger = logging.getLogger(__name__)


class ConnectionRegistry:
    """Set of live sessions."""

    def __init__(self) -> None:
        self._sessions: Set[Session] = set()
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session: Session) -> bool:
        return session in self._sessions

    async def register(self, session: Session) -> None:
        """Add a session. Callers register each session exactly once."""
        async with self._lock:
            self._sessions.add(session)
        logger.info("WebSocket registered session_id=%s (%s live)", session.id, len(self._sessions))

    async def discard(self, session: Session) -> bool:
        """Remove the session without closing it. Returns True if it was present."""
        async with self._lock:
            if session not in self._sessions:
                return False
            self._sessions.remove(session)
            return True

    async def unregister(self, session: Session, code: int = 1000, reason: str = "") -> bool:
        """
        Remove the session and close its socket. Returns True on the first call
        for a session; later calls are no-ops and return False.
        """
        removed = await self.discard(session)
        closed = await session.close(code=code, reason=reason or None)
        if removed or closed:
            logger.info("WebSocket unregistered session_id=%s (%s live)", session.id, len(self._sessions))
        return removed or closed

    async def snapshot(self) -> List[Session]:
        """Copy of the current sessions, safe to iterate while others register."""
        async with self._lock:
            return list(self._sessions)
