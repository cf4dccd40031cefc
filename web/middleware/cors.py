"""Permissive CORS headers and preflight short-circuit."""

from __future__ import annotations

from fastapi import Request
from fastapi.responses import Response

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "*",
    "Access-Control-Allow-Methods": "*",
    "Access-Control-Expose-Headers": "*",
}


def _apply_cors_headers(response: Response) -> Response:
    for name, value in CORS_HEADERS.items():
        response.headers[name] = value
    return response


async def cors_gate_middleware(request: Request, call_next):
    if request.method == "OPTIONS":
        return _apply_cors_headers(Response(status_code=200))
    response = await call_next(request)
    return _apply_cors_headers(response)


__all__ = ["CORS_HEADERS", "cors_gate_middleware"]
