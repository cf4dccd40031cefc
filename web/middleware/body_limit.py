"""Cap request bodies, whether declared up front or streamed in chunks."""

from __future__ import annotations

import json
from dataclasses import dataclass

from starlette.types import ASGIApp, Message, Receive, Scope, Send

from core.config import MAX_BODY_BYTES
from core.logging import get_logger

logger = get_logger(__name__)


class RequestTooLarge(Exception):
    """Raised from ``receive`` once the body passes the cap."""


@dataclass
class _CountingReceive:
    receive: Receive
    max_body_bytes: int
    received: int = 0

    async def __call__(self) -> Message:
        message = await self.receive()
        if message["type"] == "http.request":
            self.received += len(message.get("body", b""))
            if self.received > self.max_body_bytes:
                raise RequestTooLarge()
        return message


@dataclass
class _StartTrackingSend:
    send: Send
    started: bool = False

    async def __call__(self, message: Message) -> None:
        if message["type"] == "http.response.start":
            self.started = True
        await self.send(message)


def _declared_length(scope: Scope) -> int | None:
    for key, value in scope.get("headers", []):
        if key.lower() == b"content-length":
            raw = value.decode("latin-1").strip()
            return int(raw) if raw.isdigit() else None
    return None


async def _send_too_large(send: Send) -> None:
    body = json.dumps(
        {"detail": {"code": "request.too_large", "message": "Request body exceeds the allowed size."}}
    ).encode("utf-8")
    await send(
        {
            "type": "http.response.start",
            "status": 413,
            "headers": [
                (b"content-type", b"application/json"),
                (b"content-length", str(len(body)).encode("ascii")),
            ],
        }
    )
    await send({"type": "http.response.body", "body": body})


class BodyLimitMiddleware:
    """Rejects bodies above ``max_body_bytes`` with 413 ``request.too_large``."""

    def __init__(self, app: ASGIApp, *, max_body_bytes: int = MAX_BODY_BYTES) -> None:
        self.app = app
        self.max_body_bytes = max_body_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        declared = _declared_length(scope)
        if declared is not None and declared > self.max_body_bytes:
            await _send_too_large(send)
            return

        counting = _CountingReceive(receive, self.max_body_bytes)
        tracking = _StartTrackingSend(send)
        try:
            await self.app(scope, counting, tracking)
        except RequestTooLarge:
            logger.info("Rejected %s %s after %d body bytes", scope["method"], scope["path"], counting.received)
            if tracking.started:
                raise
            await _send_too_large(send)


__all__ = ["BodyLimitMiddleware", "RequestTooLarge"]
