"""
History endpoint.

Returns the most recent messages as a JSON array, oldest first. History is
pull-only; connected clients never get it pushed.
"""
import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from chatrelay.core.memory.store import StoreError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["history"])

DEFAULT_HISTORY_LIMIT = 10

# The front-end is served from a separate origin
CORS_HEADERS = {"Access-Control-Allow-Origin": "*"}

WRITE_METHODS = ["POST", "PUT", "PATCH", "DELETE"]


@router.get("/history")
def get_history(request: Request):
    """
    Recent messages.

    Returns:
        200 with `[{name, message, time}, ...]` ascending by time, or 500 with
        a plain-text error when the store query fails.
    """
    state = request.app.state
    limit = getattr(state.settings, "history_limit", DEFAULT_HISTORY_LIMIT)
    try:
        records = state.store.recent(limit)
    except StoreError as e:
        logger.error("History query failed: %s", e)
        return PlainTextResponse(str(e), status_code=500, headers=CORS_HEADERS)
    return JSONResponse(content=[r.to_wire() for r in records], headers=CORS_HEADERS)


@router.api_route("/history", methods=WRITE_METHODS, include_in_schema=False)
def history_method_not_allowed():
    return PlainTextResponse(
        "Method not allowed",
        status_code=405,
        headers={"Allow": "GET", **CORS_HEADERS},
    )
