from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List

from ..errors import SessionNotFoundError


@dataclass
class _Entry:
    value: Any
    expires_at: float


class SessionStore:
    """Process-wide session table with a sliding TTL.

    Expired entries are dropped lazily: ``purge_expired()`` is called by the
    controller on create/step, and ``get()`` refuses anything past its TTL.
    """

    def __init__(self, ttl_seconds: float = 1800.0, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._entries: Dict[str, _Entry] = {}
        self._lock = threading.Lock()

    def put(self, session_id: str, value: Any) -> None:
        with self._lock:
            self._entries[session_id] = _Entry(value, self.clock() + self.ttl_seconds)

    def get(self, session_id: str) -> Any:
        now = self.clock()
        with self._lock:
            entry = self._entries.get(session_id)
            if entry is None:
                raise SessionNotFoundError(session_id)
            if entry.expires_at <= now:
                del self._entries[session_id]
                raise SessionNotFoundError(session_id)
            entry.expires_at = now + self.ttl_seconds
            return entry.value

    def purge_expired(self) -> List[str]:
        now = self.clock()
        with self._lock:
            gone = [sid for sid, e in self._entries.items() if e.expires_at <= now]
            for sid in gone:
                del self._entries[sid]
        if gone:
            logging.getLogger(__name__).info(f"Purged {len(gone)} expired session(s)")
        return gone

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
