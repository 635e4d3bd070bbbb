"""Per-session lock registry."""

from __future__ import annotations

import threading


class SessionLocks:
    """Hands out one lock per session id.

    The registry lock only guards creation of entries; sessions never wait
    on each other.
    """

    def __init__(self) -> None:
        self._locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def get(self, session_id: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(session_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[session_id] = lock
            return lock

    def discard(self, session_id: str) -> None:
        with self._registry_lock:
            self._locks.pop(session_id, None)
