"""
Health check endpoint.

Returns service status plus live hub counters.
"""
from datetime import datetime, timezone

from fastapi import APIRouter, Request

router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
def health(request: Request):
    """
    Health check endpoint.

    Returns:
        Service status, live connection count, queue depth and hub metrics
    """
    hub = request.app.state.hub
    return {
        "status": "ok",
        "service": "chatrelay",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "connections": len(hub.registry),
        "queue_depth": hub.queue_depth,
        "dispatcher_running": hub.running,
        "metrics": hub.metrics.snapshot(),
    }
