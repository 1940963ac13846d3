"""
Shared fakes for hub, registry and session loop tests.
"""
import asyncio
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest

from chatrelay.core.config import Settings
from chatrelay.core.memory.store import MemoryMessageStore, StoreError


class FakeWebSocket:
    """Stands in for a Starlette WebSocket: records writes, replays queued reads."""

    def __init__(self, block_send: bool = False, fail_send: bool = False) -> None:
        self.sent: List[Dict[str, Any]] = []
        self.block_send = block_send
        self.fail_send = fail_send
        self.close_calls = 0
        self.close_code: Optional[int] = None
        self._incoming: List[Dict[str, Any]] = []

    async def send_json(self, obj: Dict[str, Any]) -> None:
        if self.fail_send:
            raise RuntimeError("connection reset by peer")
        if self.block_send:
            await asyncio.Event().wait()
        self.sent.append(obj)

    async def close(self, code: int = 1000, reason: Optional[str] = None) -> None:
        self.close_calls += 1
        self.close_code = code

    def feed_text(self, text: str) -> None:
        self._incoming.append({"type": "websocket.receive", "text": text})

    def feed_disconnect(self, code: int = 1000) -> None:
        self._incoming.append({"type": "websocket.disconnect", "code": code})

    async def receive(self) -> Dict[str, Any]:
        # Nothing queued: behave like an idle peer until something is fed
        while not self._incoming:
            await asyncio.sleep(0.01)
        return self._incoming.pop(0)


class FailingStore(MemoryMessageStore):
    """Store whose writes always fail."""

    def append(self, name, message, created_at):
        raise StoreError("disk I/O error")

    def recent(self, n):
        raise StoreError("database is locked")


class StepClock:
    """Deterministic clock: each call advances by one second."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        self.current = start or datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        value = self.current
        self.current = self.current + timedelta(seconds=1)
        return value


async def wait_until(predicate, timeout: float = 2.0, interval: float = 0.01) -> bool:
    """Poll predicate on the running loop until true or timeout."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        await asyncio.sleep(interval)
    return predicate()


@pytest.fixture
def memory_store():
    return MemoryMessageStore()


@pytest.fixture
def step_clock():
    return StepClock()


@pytest.fixture
def test_settings(tmp_path):
    return Settings(database_path=str(tmp_path / "chat.db"))
