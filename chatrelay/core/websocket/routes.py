"""
WebSocket route: /api/ws (and legacy /ws). Accept, register, run the session
loop, unregister on every exit path.
"""
import logging

from fastapi import WebSocket

from chatrelay.core.websocket.handler import ChatSessionHandler
from chatrelay.core.websocket.session import Session

logger = logging.getLogger(__name__)


async def websocket_endpoint(websocket: WebSocket) -> None:
    """Upgrade and serve one chat client. Any origin is accepted."""
    state = websocket.app.state
    settings = state.settings
    hub = state.hub

    session = Session(
        websocket,
        write_timeout=settings.write_timeout,
        read_timeout=settings.read_timeout,
    )
    await websocket.accept()
    session.mark_open()
    await hub.registry.register(session)
    hub.metrics.incr("sessions_opened")

    handler = ChatSessionHandler(
        session,
        hub=hub,
        store=state.store,
        clock=state.clock,
        max_frame_size=settings.max_frame_bytes,
        max_name_length=settings.max_name_length,
        max_message_length=settings.max_message_length,
    )
    try:
        await handler.run()
    except Exception as e:
        logger.exception("Session %s loop failed: %s", session.id, e)
    finally:
        await hub.registry.unregister(session)
        hub.metrics.incr("sessions_closed")
