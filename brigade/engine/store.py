"""
brigade.engine.store — Keyed In-Memory Store with TTL Eviction
===============================================================

Transient, process-local state (rate-limit windows, pending approvals)
lives behind the small :class:`KeyedStore` protocol so call sites never
touch a bare dict.  :class:`MemoryStore` is the only backend shipped: a
thread-safe dict whose entries are created on first use and evicted once
their TTL has passed.

Nothing here survives a restart.  A durable backend only has to satisfy
:class:`KeyedStore`.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Hashable
from threading import RLock
from typing import Generic, Protocol, TypeVar

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

Clock = Callable[[], float]


class KeyedStore(Protocol[K, V]):
    def get(self, key: K) -> V | None: ...

    def set(self, key: K, value: V, *, ttl: float | None = None) -> None: ...

    def get_or_create(self, key: K, factory: Callable[[], V]) -> V: ...

    def pop(self, key: K) -> V | None: ...

    def keys(self) -> list[K]: ...

    def clear(self) -> None: ...

    def sweep(self) -> int: ...

    def __contains__(self, key: object) -> bool: ...

    def __len__(self) -> int: ...


class MemoryStore(Generic[K, V]):
    """Dict-backed :class:`KeyedStore`.

    ``default_ttl`` of ``None`` means entries never expire on their own.
    Expired entries are dropped lazily on read and in bulk by :meth:`sweep`.
    """

    def __init__(
        self, *, default_ttl: float | None = None, clock: Clock = time.monotonic
    ) -> None:
        self._lock = RLock()
        self._clock = clock
        self._default_ttl = default_ttl
        # key → (value, expires_at or None)
        self._data: dict[K, tuple[V, float | None]] = {}

    def _expiry(self, ttl: float | None) -> float | None:
        ttl = self._default_ttl if ttl is None else ttl
        return None if ttl is None else self._clock() + ttl

    def _live(self, key: K, now: float) -> tuple[V, float | None] | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        if entry[1] is not None and entry[1] <= now:
            del self._data[key]
            return None
        return entry

    def get(self, key: K) -> V | None:
        with self._lock:
            entry = self._live(key, self._clock())
            return entry[0] if entry else None

    def set(self, key: K, value: V, *, ttl: float | None = None) -> None:
        with self._lock:
            self._data[key] = (value, self._expiry(ttl))

    def get_or_create(self, key: K, factory: Callable[[], V]) -> V:
        with self._lock:
            entry = self._live(key, self._clock())
            if entry is not None:
                return entry[0]
            value = factory()
            self._data[key] = (value, self._expiry(None))
            return value

    def touch(self, key: K, *, ttl: float | None = None) -> None:
        """Push back the expiry of *key* (no-op if absent)."""
        with self._lock:
            entry = self._data.get(key)
            if entry is not None:
                self._data[key] = (entry[0], self._expiry(ttl))

    def pop(self, key: K) -> V | None:
        with self._lock:
            entry = self._live(key, self._clock())
            if entry is None:
                return None
            del self._data[key]
            return entry[0]

    def keys(self) -> list[K]:
        with self._lock:
            now = self._clock()
            return [k for k in list(self._data) if self._live(k, now) is not None]

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def sweep(self) -> int:
        """Drop every expired entry.  Returns how many were removed."""
        with self._lock:
            now = self._clock()
            expired = [
                k for k, (_, exp) in self._data.items()
                if exp is not None and exp <= now
            ]
            for k in expired:
                del self._data[k]
        if expired:
            logger.debug("Swept %d expired store entries", len(expired))
        return len(expired)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return self._live(key, self._clock()) is not None  # type: ignore[arg-type]

    def __len__(self) -> int:
        return len(self.keys())
