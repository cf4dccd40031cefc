"""Map unexpected handler failures to a generic error payload."""

from __future__ import annotations

from fastapi import Request
from fastapi.responses import JSONResponse

from core.logging import get_logger

logger = get_logger(__name__)


async def handler_failure_middleware(request: Request, call_next):
    try:
        return await call_next(request)
    except Exception:
        logger.exception("Unhandled error while serving %s %s", request.method, request.url.path)
        detail = {"code": "server.error", "message": "Internal server error."}
        return JSONResponse(status_code=500, content={"detail": detail})


__all__ = ["handler_failure_middleware"]
