"""
Small helpers shared across Pype Web: a TTL cache and text utilities.
"""

import re
import threading
import time
import unicodedata
from typing import Any, Callable, Dict, Optional, Tuple

_TAG_RE = re.compile(r"<[^>]*>")


class CacheManager:
    """
    In-memory cache with per-entry expiry.

    Entries expire ``ttl`` seconds after they are set. ``clock`` can be
    replaced in tests.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._store: Dict[str, Tuple[Any, Optional[float]]] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def set(self, key: str, value: Any, ttl: Optional[int] = 300) -> None:
        now = self._clock()
        expires = now + ttl if ttl else None
        with self._lock:
            self._sweep(now)
            self._store[key] = (value, expires)

    def _sweep(self, now: float) -> None:
        expired = [key for key, (_, expires) in self._store.items() if expires is not None and expires <= now]
        for key in expired:
            del self._store[key]

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return default
            value, expires = entry
            if expires is not None and expires <= self._clock():
                del self._store[key]
                return default
            return value

    def has(self, key: str) -> bool:
        sentinel = object()
        return self.get(key, sentinel) is not sentinel

    def forget(self, key: str) -> None:
        with self._lock:
            self._store.pop(key, None)

    def ttl(self, key: str) -> Optional[float]:
        """Seconds until ``key`` expires, ``None`` if missing or permanent."""
        with self._lock:
            entry = self._store.get(key)
        if entry is None or entry[1] is None:
            return None
        return max(entry[1] - self._clock(), 0.0)

    def get_or_compute(self, key: str, compute_func: Callable[[], Any], ttl: Optional[int] = 300) -> Any:
        """Get from cache or compute and store the result."""
        sentinel = object()
        value = self.get(key, sentinel)
        if value is sentinel:
            value = compute_func()
            self.set(key, value, ttl)
        return value

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)


def strip_tags(text: str) -> str:
    return _TAG_RE.sub("", text)


def slugify(value: str, separator: str = "-") -> str:
    """URL-friendly slug: ``"Hello World @ Home"`` -> ``"hello-world-at-home"``."""
    flip = "_" if separator == "-" else "-"
    value = unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode("ascii")
    value = re.sub(re.escape(flip) + "+", separator, value)
    value = value.replace("@", f"{separator}at{separator}")
    value = re.sub(r"[^" + re.escape(separator) + r"\w\s]+", "", value.lower())
    value = re.sub(r"[" + re.escape(separator) + r"\s_]+", separator, value)
    return value.strip(separator)


def excerpt(html: str, length: int = 150, suffix: str = "...") -> str:
    """Plain-text excerpt cut at a word boundary."""
    text = strip_tags(html)
    if len(text) <= length:
        return text
    cut = text[:length]
    space = cut.rfind(" ")
    return (cut[:space] if space > 0 else cut) + suffix


def reading_time(content: str, words_per_minute: int = 200) -> int:
    """Estimated reading time in whole minutes, at least 1."""
    words = len(re.findall(r"[A-Za-z'-]+", strip_tags(content)))
    return max(words // words_per_minute, 1)
