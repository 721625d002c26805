"""
Detection result cache with a per-kind TTL.
"""

from __future__ import annotations

import threading
import time

from harbor.domain.types import DetectionResult, RuntimeKind


class DetectionCache:
    """Thread-safe cache of detection results, keyed by runtime kind."""

    def __init__(self, ttl: float = 60) -> None:
        self.ttl = ttl
        self._lock = threading.Lock()
        self._entries: dict[RuntimeKind, tuple[float, DetectionResult]] = {}

    def get(self, kind: RuntimeKind) -> DetectionResult | None:
        with self._lock:
            entry = self._entries.get(kind)
            if entry is None:
                return None
            expires_at, result = entry
            if time.monotonic() >= expires_at:
                del self._entries[kind]
                return None
            return result

    def set(self, kind: RuntimeKind, result: DetectionResult) -> None:
        with self._lock:
            self._entries[kind] = (time.monotonic() + self.ttl, result)

    def clear(self, kind: RuntimeKind | None = None) -> None:
        with self._lock:
            if kind is None:
                self._entries.clear()
            else:
                self._entries.pop(kind, None)
