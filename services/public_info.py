"""Process-local cache for the public info payload."""

from __future__ import annotations

import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple


class PublicInfoCache:
    def __init__(self, ttl_seconds: float = 60.0) -> None:
        self._ttl = ttl_seconds
        self._lock = threading.Lock()
        self._entries: Dict[str, Tuple[float, Any]] = {}

    def get_or_load(self, key: str, loader: Callable[[], Any]) -> Any:
        now = time.monotonic()
        with self._lock:
            entry = self._entries.get(key)
            if entry and now - entry[0] < self._ttl:
                return entry[1]
        value = loader()
        with self._lock:
            self._entries[key] = (now, value)
        return value

    def evict(self, key: Optional[str] = None) -> int:
        """Drop one entry (or all when ``key`` is None); returns how many were removed."""
        with self._lock:
            if key is None:
                removed = len(self._entries)
                self._entries.clear()
                return removed
            return 1 if self._entries.pop(key, None) is not None else 0


__all__ = ["PublicInfoCache"]
