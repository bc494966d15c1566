"""Per-key in-flight tracking for skip-if-busy runs."""

from __future__ import annotations

from threading import Lock
from typing import Set


class InFlightRegistry:
    """Thread-safe set of keys (config or article ids) with work in progress."""

    def __init__(self) -> None:
        self._busy: Set[str] = set()
        self._lock = Lock()

    def try_acquire(self, key: str) -> bool:
        """Mark key busy. Returns False when it was already busy."""
        with self._lock:
            if key in self._busy:
                return False
            self._busy.add(key)
            return True

    def release(self, key: str) -> bool:
        with self._lock:
            if key not in self._busy:
                return False
            self._busy.discard(key)
            return True

    def is_busy(self, key: str) -> bool:
        with self._lock:
            return key in self._busy
