"""
Session loop: read frames, sanitize, persist, then hand the record to the hub.

Persist precedes broadcast. A store failure is logged and the frame is not
broadcast, but the connection stays open.
"""
import asyncio
import json
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from chatrelay.core.memory.store import MessageStore, StoreError
from chatrelay.core.schemas import InboundMessage, MessageOut
from chatrelay.core.websocket.hub import BroadcastHub
from chatrelay.core.websocket.sanitize import sanitize
from chatrelay.core.websocket.session import Session, SessionState

logger = logging.getLogger(__name__)

MAX_FRAME_SIZE = 1 << 20  # bytes
MAX_NAME_LENGTH = 32
MAX_MESSAGE_LENGTH = 512

# Peer close codes that are not worth a warning
NORMAL_CLOSE_CODES = {1000, 1001, 1005}

CLOSE_READ_TIMEOUT = 4001

# Application-level control frames; never persisted or broadcast
CONTROL_TYPES = ("ping", "pong")


class FrameError(ValueError):
    """Inbound frame that ends the session (too big, not JSON, wrong shape)."""

    def __init__(self, message: str, close_code: int) -> None:
        super().__init__(message)
        self.close_code = close_code


def parse_frame(raw: Any, max_size: int = MAX_FRAME_SIZE) -> Dict[str, Any]:
    """Decode one text or binary frame into a JSON object."""
    if isinstance(raw, str):
        size = len(raw.encode("utf-8"))
    else:
        size = len(raw)
    if size > max_size:
        raise FrameError(f"Frame too large ({size} > {max_size} bytes)", 1009)
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise FrameError(f"Invalid JSON: {e}", 1007)
    if not isinstance(data, dict):
        raise FrameError("Frame must be a JSON object", 1003)
    return data


class ChatSessionHandler:
    """Runs the read loop for one session."""

    def __init__(
        self,
        session: Session,
        hub: BroadcastHub,
        store: MessageStore,
        clock: Callable[[], datetime],
        max_frame_size: int = MAX_FRAME_SIZE,
        max_name_length: int = MAX_NAME_LENGTH,
        max_message_length: int = MAX_MESSAGE_LENGTH,
    ) -> None:
        self.session = session
        self.hub = hub
        self.store = store
        self.clock = clock
        self.max_frame_size = max_frame_size
        self.max_name_length = max_name_length
        self.max_message_length = max_message_length

    async def handle_frame(self, data: Dict[str, Any]) -> Optional[MessageOut]:
        """
        Process one decoded frame. Returns the broadcast record, or None when
        the frame was a control frame, empty after sanitize, or not persisted.
        Raises FrameError for payloads that must end the session.
        """
        if data.get("type") in CONTROL_TYPES:
            self.session.mark_seen()
            return None
        try:
            inbound = InboundMessage.model_validate(data)
        except ValidationError as e:
            raise FrameError(f"Invalid message fields: {e.error_count()} error(s)", 1007)

        name = sanitize(inbound.name, self.max_name_length)
        message = sanitize(inbound.message, self.max_message_length)
        if not name or not message:
            self.hub.metrics.incr("dropped_empty")
            logger.debug("Dropped empty frame from session %s", self.session.id)
            return None

        created_at = self.clock()
        try:
            await run_in_threadpool(self.store.append, name, message, created_at)
        except StoreError as e:
            self.hub.metrics.incr("store_failures")
            logger.error("Store append failed for session %s: %s", self.session.id, e)
            return None

        record = MessageOut(name=name, message=message, time=created_at)
        self.hub.submit(record)
        return record

    async def run(self) -> None:
        """Read until the peer closes, the read deadline lapses, or a frame is fatal."""
        websocket = self.session.websocket
        while True:
            remaining = self.session.read_deadline_remaining()
            try:
                if remaining <= 0:
                    raise asyncio.TimeoutError
                event = await asyncio.wait_for(websocket.receive(), timeout=remaining)
            except asyncio.TimeoutError:
                logger.info("WebSocket read deadline exceeded for session %s", self.session.id)
                self.session.state = SessionState.CLOSING
                await self.hub.registry.unregister(self.session, code=CLOSE_READ_TIMEOUT, reason="read_timeout")
                return

            if event["type"] == "websocket.disconnect":
                code = event.get("code", 1000)
                if code in NORMAL_CLOSE_CODES:
                    logger.debug("Session %s closed by peer (%s)", self.session.id, code)
                else:
                    logger.warning("Session %s read ended with close code %s", self.session.id, code)
                self.session.state = SessionState.CLOSING
                return

            self.session.mark_seen()
            raw = event.get("text")
            if raw is None:
                raw = event.get("bytes") or b""
            try:
                data = parse_frame(raw, self.max_frame_size)
                await self.handle_frame(data)
            except FrameError as e:
                logger.warning("Session %s sent a bad frame: %s", self.session.id, e)
                self.session.state = SessionState.CLOSING
                await self.hub.registry.unregister(self.session, code=e.close_code, reason=str(e)[:120])
                return
