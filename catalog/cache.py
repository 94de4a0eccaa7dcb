"""Small thread-safe TTL cache for single-game lookups."""

from __future__ import annotations

import time
from collections import OrderedDict
from threading import Lock
from typing import Callable, Generic, Hashable, TypeVar

V = TypeVar("V")


class TTLCache(Generic[V]):
    """Bounded mapping whose entries expire ``ttl`` seconds after insertion."""

    def __init__(
        self,
        *,
        ttl: float,
        max_size: int = 1000,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._ttl = ttl
        self._max_size = max(1, int(max_size))
        self._clock = clock or time.monotonic
        self._lock = Lock()
        self._entries: OrderedDict[Hashable, tuple[float, V]] = OrderedDict()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, key: Hashable) -> V | None:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if expires_at <= now:
                del self._entries[key]
                return None
            return value

    def set(self, key: Hashable, value: V, ttl: float | None = None) -> None:
        expires_at = self._clock() + (self._ttl if ttl is None else ttl)
        with self._lock:
            self._entries.pop(key, None)
            while len(self._entries) >= self._max_size:
                self._entries.popitem(last=False)
            self._entries[key] = (expires_at, value)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


__all__ = ["TTLCache"]
