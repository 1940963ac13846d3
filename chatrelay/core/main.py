"""
Chat relay - Main FastAPI application.

Clients connect over WebSocket, send `{name, message}` frames and receive every
accepted message; recent messages are available from /api/history.
"""
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Callable, Optional
import logging

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from chatrelay.core.config import Settings, settings as default_settings
from chatrelay.core.memory.store import MessageStore, SqlMessageStore
from chatrelay.core.api import health, history
from chatrelay.core.utils.clock import MonotonicUtcClock
from chatrelay.core.websocket.hub import BroadcastHub
from chatrelay.core.websocket.routes import websocket_endpoint

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[MessageStore] = None,
    clock: Optional[Callable[[], datetime]] = None,
    hub: Optional[BroadcastHub] = None,
) -> FastAPI:
    """
    Build the application. The hub and store are created here and shared by
    every route through `app.state`.
    """
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Handle application startup and shutdown."""
        logger.info("Initializing message store...")
        app.state.store.init()
        logger.info("Message store initialized")
        app.state.hub.start()
        logger.info("Chat relay binding on %s:%s", settings.api_host, settings.api_port)
        yield
        await app.state.hub.stop()
        app.state.store.close()
        logger.info("Chat relay shutting down")

    app = FastAPI(
        title="Chat Relay",
        description="Real-time chat relay with a short persistent history",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.store = store or SqlMessageStore(settings.database_path, echo=settings.database_echo)
    app.state.clock = clock or MonotonicUtcClock()
    app.state.hub = hub or BroadcastHub(
        capacity=settings.queue_capacity,
        ping_interval=settings.ping_interval,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Request logging middleware
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all HTTP requests. Health checks at DEBUG to reduce log spam."""
        path = request.url.path
        level = logger.debug if path == "/health" else logger.info
        level("%s %s", request.method, path)
        response = await call_next(request)
        level("%s %s - %s", request.method, path, response.status_code)
        return response

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle general exceptions."""
        logger.error("Unhandled exception: %s", exc, exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "Internal server error",
                "error": str(exc) if settings.debug else None,
            },
        )

    # WebSocket upgrade; /ws is the legacy mount
    app.add_api_websocket_route("/api/ws", websocket_endpoint)
    app.add_api_websocket_route("/ws", websocket_endpoint)

    app.include_router(health.router)
    app.include_router(history.router)
    # Legacy history mount
    app.add_api_route("/history", history.get_history, methods=["GET"])
    app.add_api_route(
        "/history",
        history.history_method_not_allowed,
        methods=history.WRITE_METHODS,
        include_in_schema=False,
    )
    return app


configure_logging(default_settings)
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "chatrelay.core.main:app",
        host=default_settings.api_host,
        port=default_settings.api_port,
        reload=default_settings.debug,
        ws_max_size=default_settings.max_frame_bytes,
        ws_ping_interval=default_settings.ping_interval,
        ws_ping_timeout=default_settings.read_timeout - default_settings.ping_interval,
    )
