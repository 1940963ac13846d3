"""
WebSocket layer: connection registry, broadcast hub, and per-connection session loop.

One dispatcher writes to every socket; each session loop only reads.
Ping every 25s; read deadline 60s, renewed by any inbound frame.
"""

from chatrelay.core.websocket.hub import BroadcastHub
from chatrelay.core.websocket.manager import ConnectionRegistry
from chatrelay.core.websocket.sanitize import sanitize
from chatrelay.core.websocket.session import Session

__all__ = ["BroadcastHub", "ConnectionRegistry", "Session", "sanitize"]
