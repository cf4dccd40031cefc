"""Size-bounded rendering of request/response bodies for the audit log."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

MAX_LOGGED_BODY_CHARS = 800

UNRENDERABLE_LABEL = "Body present but unrenderable"


class BodyKind(str, Enum):
    STRUCTURED = "object"
    BINARY = "raw"
    TEXT = "string"


@dataclass(frozen=True)
class RenderedBody:
    """One audit log line: a message label plus the structured fields to log."""

    label: str
    fields: Dict[str, Any] = field(default_factory=dict)
    truncated: bool = False


def classify_content_type(content_type: Optional[str], *, phase: str) -> Optional[BodyKind]:
    media_type = (content_type or "").split(";", 1)[0].strip().lower()
    if media_type == "application/json" or media_type.endswith("+json"):
        return BodyKind.STRUCTURED
    if media_type == "application/octet-stream":
        return BodyKind.BINARY
    if media_type.startswith("text/"):
        return BodyKind.TEXT if phase == "Response" else BodyKind.BINARY
    return None


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, (dict, list, str, bytes)) and len(value) == 0)


def render_structured(value: Any, *, phase: str, limit: int = MAX_LOGGED_BODY_CHARS) -> RenderedBody:
    rendered = json.dumps(value, indent=2, ensure_ascii=False)
    if len(rendered) > limit:
        return RenderedBody(f"{phase} Body (object, truncated)", {"length": len(rendered)}, truncated=True)
    payload = value if isinstance(value, dict) else {"body": value}
    return RenderedBody(f"{phase} Body", payload)


def render_binary(value: bytes, *, phase: str, limit: int = MAX_LOGGED_BODY_CHARS) -> RenderedBody:
    text = value.decode("utf-8", errors="replace")
    if len(text) > limit:
        return RenderedBody(f"{phase} Body (raw, truncated)", {"length": len(text)}, truncated=True)
    return RenderedBody(f"{phase} Body (raw)", {"body": text})


def render_text(value: str, *, phase: str, limit: int = MAX_LOGGED_BODY_CHARS) -> RenderedBody:
    if len(value) > limit:
        return RenderedBody(f"{phase} Body (string, truncated)", {"length": len(value)}, truncated=True)
    return RenderedBody(f"{phase} Body", {"body": value})


def render_body(
    body: bytes,
    content_type: Optional[str],
    *,
    phase: str,
    limit: int = MAX_LOGGED_BODY_CHARS,
) -> Optional[RenderedBody]:
    """Render ``body`` for logging, or None when there is nothing to log.

    Never raises: anything that cannot be rendered degrades to a
    "Body present but unrenderable" line.
    """
    if not body:
        return None
    try:
        kind = classify_content_type(content_type, phase=phase)
        if kind is BodyKind.STRUCTURED:
            try:
                value = json.loads(body)
            except ValueError:
                return render_binary(body, phase=phase, limit=limit)
            if _is_empty(value):
                return None
            return render_structured(value, phase=phase, limit=limit)
        if kind is BodyKind.TEXT:
            return render_text(body.decode("utf-8", errors="replace"), phase=phase, limit=limit)
        return render_binary(body, phase=phase, limit=limit)
    except Exception as exc:
        return RenderedBody(f"{phase} {UNRENDERABLE_LABEL}", {"error": type(exc).__name__})


__all__ = [
    "BodyKind",
    "MAX_LOGGED_BODY_CHARS",
    "RenderedBody",
    "UNRENDERABLE_LABEL",
    "classify_content_type",
    "render_binary",
    "render_body",
    "render_structured",
    "render_text",
]
