"""ASGI middleware writing a size-bounded audit record for every exchange."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import List, Optional

from starlette.types import ASGIApp, Message, Receive, Scope, Send

from core.logging import get_audit_logger
from services.audit_render import MAX_LOGGED_BODY_CHARS, RenderedBody, render_body
from web.routing import classify_request

_DEFAULT_CAPTURE_LIMIT = 1024 * 1024


@dataclass
class AuditRecord:
    method: str
    path: str
    started_at: float = field(default_factory=time.time)
    _started_clock: float = field(default_factory=time.monotonic, repr=False)
    status_code: Optional[int] = None
    duration_ms: Optional[int] = None

    def finish(self, status_code: int) -> None:
        self.status_code = status_code
        self.duration_ms = int((time.monotonic() - self._started_clock) * 1000)


def _header(headers: List[tuple], name: bytes) -> Optional[str]:
    for key, value in headers:
        if key.lower() == name:
            return value.decode("latin-1")
    return None


@dataclass
class ResponseCapture:
    """Wraps the ASGI ``send`` callable, recording what is written before forwarding it."""

    send: Send
    capture_limit: int = _DEFAULT_CAPTURE_LIMIT
    status_code: Optional[int] = None
    content_type: Optional[str] = None
    byte_count: int = 0
    overflowed: bool = False
    _chunks: List[bytes] = field(default_factory=list)

    async def __call__(self, message: Message) -> None:
        if message["type"] == "http.response.start":
            self.status_code = message["status"]
            self.content_type = _header(list(message.get("headers", [])), b"content-type")
        elif message["type"] == "http.response.body":
            chunk = message.get("body", b"")
            self.byte_count += len(chunk)
            if self.byte_count <= self.capture_limit:
                self._chunks.append(chunk)
            else:
                self.overflowed = True
                self._chunks.clear()
        await self.send(message)

    @property
    def started(self) -> bool:
        return self.status_code is not None

    @property
    def body(self) -> bytes:
        return b"".join(self._chunks)


class AuditLoggerMiddleware:
    """Logs request line and body on entry, status, duration and body on completion."""

    def __init__(
        self,
        app: ASGIApp,
        *,
        logger: Optional[logging.Logger] = None,
        max_body_chars: int = MAX_LOGGED_BODY_CHARS,
        capture_limit: int = _DEFAULT_CAPTURE_LIMIT,
    ) -> None:
        self.app = app
        self.logger = logger or get_audit_logger()
        self.max_body_chars = max_body_chars
        self.capture_limit = capture_limit

    def _emit(self, rendered: Optional[RenderedBody]) -> None:
        if rendered is None:
            return
        self.logger.info("%s %s", rendered.label, rendered.fields, extra={"audit": rendered.fields})

    def _log_body(self, body: bytes, content_type: Optional[str], *, phase: str) -> None:
        self._emit(render_body(body, content_type, phase=phase, limit=self.max_body_chars))

    async def _read_body(self, receive: Receive) -> tuple[bytes, List[Message]]:
        messages: List[Message] = []
        chunks: List[bytes] = []
        while True:
            message = await receive()
            messages.append(message)
            if message["type"] != "http.request":
                break
            chunks.append(message.get("body", b""))
            if not message.get("more_body", False):
                break
        return b"".join(chunks), messages

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return
        method = scope["method"]
        path = scope["path"]
        if not classify_request(method, path).audited:
            await self.app(scope, receive, send)
            return

        query = scope.get("query_string", b"").decode("latin-1")
        url = f"{path}?{query}" if query else path
        record = AuditRecord(method=method, path=url)
        self.logger.info(
            "Incoming Request %s %s", method, url, extra={"audit": {"method": method, "url": url}}
        )

        body, buffered = await self._read_body(receive)
        self._log_body(body, _header(list(scope.get("headers", [])), b"content-type"), phase="Request")

        async def replay() -> Message:
            if buffered:
                return buffered.pop(0)
            return await receive()

        capture = ResponseCapture(send, capture_limit=self.capture_limit)
        try:
            await self.app(scope, replay, capture)
        finally:
            record.finish(capture.status_code if capture.started else 500)
            self.logger.info(
                "Outgoing Response %s %s status=%s duration=%sms",
                method,
                url,
                record.status_code,
                record.duration_ms,
                extra={
                    "audit": {
                        "method": method,
                        "url": url,
                        "statusCode": record.status_code,
                        "duration": record.duration_ms,
                    }
                },
            )
            if capture.overflowed:
                self._emit(
                    RenderedBody("Response Body (truncated)", {"length": capture.byte_count}, truncated=True)
                )
            else:
                self._log_body(capture.body, capture.content_type, phase="Response")


__all__ = ["AuditLoggerMiddleware", "AuditRecord", "ResponseCapture"]
