"""
Server-side sessions.

The application keeps session data in a :class:`SessionStore` keyed by a
random id that travels in the ``pype_session`` cookie. Handlers and
middleware see the data through ``request.session``.
"""

import secrets
import threading
import time
from typing import Any, Callable, Dict, Iterator, MutableMapping, Optional, Tuple

SESSION_COOKIE = "pype_session"
FLASH_PREFIX = "flash_"
DEFAULT_IDLE_TIMEOUT = 7200


class Session(MutableMapping):
    """Dict-like session data for one client."""

    def __init__(self, data: Optional[Dict[str, Any]] = None, session_id: Optional[str] = None):
        self._data: Dict[str, Any] = dict(data or {})
        self.id = session_id or secrets.token_urlsafe(32)
        self.is_new = session_id is None
        self.modified = False
        self.previous_id: Optional[str] = None

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self._data[key] = value
        self.modified = True

    def __delitem__(self, key: str) -> None:
        del self._data[key]
        self.modified = True

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def flash(self, key: str, message: Any) -> None:
        """Store a message that survives until it is read once."""
        self[FLASH_PREFIX + key] = message

    def get_flash(self, key: str, default: Any = None) -> Any:
        if FLASH_PREFIX + key not in self._data:
            return default
        return self.pop(FLASH_PREFIX + key)

    def regenerate(self) -> None:
        """Issue a new id for the same data, e.g. after login."""
        if not self.is_new:
            self.previous_id = self.id
        self.id = secrets.token_urlsafe(32)
        self.is_new = True
        self.modified = True

    def invalidate(self) -> None:
        self._data.clear()
        self.regenerate()

    def to_dict(self) -> Dict[str, Any]:
        return dict(self._data)


class SessionStore:
    """In-process session storage.

    Entries idle for longer than ``idle_timeout`` seconds are dropped.
    Expired entries are purged whenever the store is read or written.
    """

    def __init__(self, idle_timeout: float = DEFAULT_IDLE_TIMEOUT, clock: Callable[[], float] = time.monotonic):
        self.idle_timeout = idle_timeout
        self.clock = clock
        self._sessions: Dict[str, Tuple[Dict[str, Any], float]] = {}
        self._lock = threading.Lock()

    def load(self, session_id: Optional[str]) -> Session:
        now = self.clock()
        with self._lock:
            self._purge(now)
            entry = self._sessions.get(session_id) if session_id else None
            if entry is not None:
                self._sessions[session_id] = (entry[0], now)
                return Session(entry[0], session_id=session_id)
        return Session()

    def save(self, session: Session) -> None:
        now = self.clock()
        with self._lock:
            self._purge(now)
            self._sessions[session.id] = (session.to_dict(), now)

    def delete(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)

    def _purge(self, now: float) -> None:
        expired = [sid for sid, (_, seen) in self._sessions.items() if now - seen > self.idle_timeout]
        for session_id in expired:
            del self._sessions[session_id]

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
