"""A thread-safe key/value cache with per-item expiry."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

T = TypeVar("T")

# Passing this as an expiration selects the cache's default expiration.
DEFAULT_CACHE_EXPIRATION = 0.0


def _seconds_to_ns(seconds: float) -> int:
    return int(round(seconds * 1_000_000_000))


@dataclass(frozen=True)
class CacheItem(Generic[T]):
    """A cached value and its expiry time in Unix nanoseconds (0 means never)."""

    item: T
    expires: int


class Cache(Generic[T]):
    """String-keyed cache whose entries expire after a number of seconds."""

    def __init__(self, expiration: float) -> None:
        self.default_expiration = expiration
        self._lock = threading.Lock()
        self._data: dict[str, CacheItem[T]] = {}

    def set(self, key: str, value: T, expire: float = DEFAULT_CACHE_EXPIRATION) -> None:
        """Store ``value``; a non-positive lifetime means it never expires."""
        if expire == DEFAULT_CACHE_EXPIRATION:
            expire = self.default_expiration
        expires = time.time_ns() + _seconds_to_ns(expire) if expire > 0 else 0
        with self._lock:
            self._data[key] = CacheItem(value, expires)

    def _live(self, key: str) -> Optional[CacheItem[T]]:
        with self._lock:
            entry = self._data.get(key)
        if entry is None:
            return None
        if entry.expires > 0 and time.time_ns() > entry.expires:
            return None
        return entry

    def get(self, key: str) -> Optional[T]:
        """Return the value for ``key``, or None if missing or expired."""
        entry = self._live(key)
        return None if entry is None else entry.item

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self._live(key) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def keys(self) -> list[str]:
        """Return all stored keys, expired or not."""
        with self._lock:
            return list(self._data)

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def clear_expired(self) -> None:
        """Remove every entry whose expiry time has passed."""
        now = time.time_ns()
        with self._lock:
            expired = [k for k, e in self._data.items() if e.expires > 0 and now > e.expires]
            for key in expired:
                del self._data[key]


class IntervalCacheCleaner(Generic[T]):
    """Periodically evicts expired entries until stopped."""

    def __init__(self, interval: float) -> None:
        self.interval = interval
        self._stopped = threading.Event()

    def run(self, cache: Cache[T]) -> None:
        """Block, clearing expired entries every interval, until ``stop``."""
        while not self._stopped.wait(self.interval):
            cache.clear_expired()

    def stop(self) -> None:
        self._stopped.set()