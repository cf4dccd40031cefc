"""Deadline for long-running upload requests."""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import Callable

from starlette.types import ASGIApp, Message, Receive, Scope, Send

from core.config import DEFAULT_UPLOAD_TIMEOUT_SECONDS
from core.logging import get_logger
from web.routing import is_upload_path

logger = get_logger(__name__)

EXPIRED_STATE_KEY = "upload_expired"


@dataclass
class GuardedSend:
    """Forwards ``send`` until the request expires; afterwards every write is dropped."""

    send: Send
    expired: bool = False
    response_started: bool = False

    async def __call__(self, message: Message) -> None:
        if self.expired:
            logger.debug("Dropping %s for expired request", message["type"])
            return
        if message["type"] == "http.response.start":
            self.response_started = True
        await self.send(message)

    async def expire(self) -> None:
        """Mark the request expired and send the timeout response if nothing was sent yet."""
        if self.expired:
            return
        if not self.response_started:
            body = json.dumps(
                {"detail": {"code": "upload.timeout", "message": "Upload did not complete in time."}}
            ).encode("utf-8")
            await self.send(
                {
                    "type": "http.response.start",
                    "status": 503,
                    "headers": [
                        (b"content-type", b"application/json"),
                        (b"content-length", str(len(body)).encode("ascii")),
                    ],
                }
            )
            await self.send({"type": "http.response.body", "body": body})
            self.response_started = True
        self.expired = True


class TimeoutGuardMiddleware:
    """Bounds matching requests (the upload route by default) by a fixed deadline."""

    def __init__(
        self,
        app: ASGIApp,
        *,
        timeout_seconds: float = DEFAULT_UPLOAD_TIMEOUT_SECONDS,
        applies_to: Callable[[str], bool] = is_upload_path,
    ) -> None:
        self.app = app
        self.timeout_seconds = timeout_seconds
        self.applies_to = applies_to

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or not self.applies_to(scope["path"]):
            await self.app(scope, receive, send)
            return

        guarded = GuardedSend(send)
        state = scope.setdefault("state", {})
        state[EXPIRED_STATE_KEY] = False
        task = asyncio.ensure_future(self.app(scope, receive, guarded))
        try:
            done, _ = await asyncio.wait({task}, timeout=self.timeout_seconds)
        except asyncio.CancelledError:
            task.cancel()
            raise
        if task in done:
            task.result()
            return

        logger.warning("Request to %s exceeded %.0fs deadline", scope["path"], self.timeout_seconds)
        state[EXPIRED_STATE_KEY] = True
        await guarded.expire()
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.exception("Upload handler failed after its deadline")


__all__ = ["EXPIRED_STATE_KEY", "GuardedSend", "TimeoutGuardMiddleware"]
