"""A small time-to-live cache kept in memory."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Generic, Optional, TypeVar

K = TypeVar("K")
V = TypeVar("V")

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CacheEntry(Generic[V]):
    """A cached value together with the moment it stops being valid."""

    data: V
    expires_at: datetime

    def is_expired(self) -> bool:
        return _utc_now() > self.expires_at


class InMemoryCache(Generic[K, V]):
    """Maps keys to values that expire after a time-to-live."""

    def __init__(self, default_ttl: timedelta, clock: Optional[Clock] = None) -> None:
        self.default_ttl = default_ttl
        self._clock: Clock = clock or _utc_now
        self._entries: Dict[K, CacheEntry[V]] = {}
        self._lock = threading.Lock()

    def get(self, key: K) -> Optional[V]:
        """Return the value stored under key, or None if absent or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or self._clock() > entry.expires_at:
                return None
            return entry.data

    def insert(self, key: K, value: V) -> None:
        """Store value under key with the default time-to-live."""
        self.insert_with_ttl(key, value, self.default_ttl)

    def insert_with_ttl(self, key: K, value: V, ttl: timedelta) -> None:
        """Store value under key with the given time-to-live."""
        entry = CacheEntry(value, self._clock() + ttl)
        with self._lock:
            self._entries[key] = entry

    def remove(self, key: K) -> Optional[V]:
        """Remove key and return its value, expired or not."""
        with self._lock:
            entry = self._entries.pop(key, None)
        return None if entry is None else entry.data

    def cleanup_expired(self) -> None:
        """Drop every entry whose expiry moment is not in the future."""
        now = self._clock()
        with self._lock:
            self._entries = {
                key: entry for key, entry in self._entries.items() if entry.expires_at > now
            }

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)