"""Bookkeeping for live exec / log sessions.

The registry only records activity; whoever owns it decides when to sweep
idle sessions with :meth:`SessionRegistry.cleanup_expired`.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

DEFAULT_SESSION_TIMEOUT = 300.0  # 5 minutes


@dataclass
class SessionRecord:
    session_id: str
    target_id: str
    last_activity: float = field(default_factory=time.monotonic)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def touch(self) -> None:
        with self._lock:
            self.last_activity = time.monotonic()

    def is_expired(self, timeout: float = DEFAULT_SESSION_TIMEOUT, now: float | None = None) -> bool:
        now = time.monotonic() if now is None else now
        with self._lock:
            return now - self.last_activity > timeout


class SessionRegistry:
    """Thread-safe map of session id → :class:`SessionRecord`."""

    def __init__(self) -> None:
        self._sessions: dict[str, SessionRecord] = {}
        self._lock = threading.Lock()

    def add(self, record: SessionRecord) -> None:
        with self._lock:
            self._sessions[record.session_id] = record

    def get(self, session_id: str) -> SessionRecord | None:
        with self._lock:
            return self._sessions.get(session_id)

    def remove(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)

    def cleanup_expired(self, timeout: float = DEFAULT_SESSION_TIMEOUT) -> list[str]:
        """Drop every session idle for longer than *timeout*; return their ids."""
        now = time.monotonic()
        with self._lock:
            expired = [sid for sid, rec in self._sessions.items() if rec.is_expired(timeout, now)]
            for sid in expired:
                del self._sessions[sid]
        if expired:
            logger.debug("Expired %d idle session(s): %s", len(expired), expired)
        return expired

    def active_count(self) -> int:
        with self._lock:
            return len(self._sessions)
