"""Static route table and the exemption rules applied by the pipeline."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Pattern, Tuple

API_PREFIX = "/api/v1"


class RouteCategory(str, Enum):
    UPLOAD = "upload"
    PUBLIC = "public"
    EVICTION = "eviction"
    AUTHENTICATED = "authenticated"

    @property
    def requires_identity(self) -> bool:
        return self is RouteCategory.AUTHENTICATED

    @property
    def requires_payment(self) -> bool:
        return self is RouteCategory.AUTHENTICATED

    @property
    def audited(self) -> bool:
        return self is not RouteCategory.UPLOAD


@dataclass(frozen=True)
class RouteRule:
    method: str
    pattern: Pattern[str]
    category: RouteCategory

    def matches(self, method: str, path: str) -> bool:
        return (self.method == "*" or self.method == method.upper()) and bool(self.pattern.fullmatch(path))


ROUTE_TABLE: Tuple[RouteRule, ...] = (
    RouteRule("POST", re.compile(rf"{API_PREFIX}/upload/[^/]+/[^/]+/?"), RouteCategory.UPLOAD),
    RouteRule("GET", re.compile(rf"{API_PREFIX}/public/?"), RouteCategory.PUBLIC),
    RouteRule("POST", re.compile(rf"{API_PREFIX}/evict-globally/?"), RouteCategory.EVICTION),
)


def classify_request(method: str, path: str) -> RouteCategory:
    """Return the pipeline category for a request; unknown routes get the full pipeline."""
    for rule in ROUTE_TABLE:
        if rule.matches(method, path):
            return rule.category
    return RouteCategory.AUTHENTICATED


def is_upload_path(path: str) -> bool:
    return classify_request("POST", path) is RouteCategory.UPLOAD


__all__ = ["API_PREFIX", "ROUTE_TABLE", "RouteCategory", "RouteRule", "classify_request", "is_upload_path"]
