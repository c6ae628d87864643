"""Monotonic request tokens for superseding in-flight lookups.

Each ``issue(key)`` returns a token larger than any previously issued
for that key. A result is only applied when its token is still the
current one; anything older was superseded by a newer request.
"""
from __future__ import annotations

import threading


class RequestSequencer:
    """Per-key monotonic sequence numbers."""

    def __init__(self) -> None:
        self._current: dict[str, int] = {}
        self._lock = threading.Lock()

    def issue(self, key: str) -> int:
        with self._lock:
            token = self._current.get(key, 0) + 1
            self._current[key] = token
            return token

    def is_current(self, key: str, token: int) -> bool:
        with self._lock:
            return self._current.get(key) == token

    def current(self, key: str) -> int:
        with self._lock:
            return self._current.get(key, 0)
