"""
brigade.engine.rate_limit — Sliding-Window Rate Limiter
========================================================

Caps how many point adjustments one actor can make per window (10 per hour
by default).  Each ``(actor_id, action_class)`` pair keeps the timestamps of
its recent attempts; an attempt is allowed iff fewer than ``max_actions``
remain after pruning everything older than the window.

:meth:`SlidingWindowLimiter.hit` prunes, counts and records under a single
lock, so concurrent attempts by the same actor can never slip past the cap.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from threading import Lock

from brigade.engine.store import Clock, KeyedStore, MemoryStore
from brigade.errors import RateLimitExceeded

logger = logging.getLogger(__name__)

DEFAULT_MAX_ACTIONS = 10
DEFAULT_WINDOW_SECONDS = 3600

WindowKey = tuple[int, str]


@dataclass(frozen=True, slots=True)
class RateLimitDecision:
    allowed: bool
    count: int
    limit: int
    retry_after: float = 0.0

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.count)


class SlidingWindowLimiter:
    """Thread-safe sliding-window counter.

    Idle windows expire from the backing store after one window length.
    """

    def __init__(
        self,
        max_actions: int = DEFAULT_MAX_ACTIONS,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        *,
        clock: Clock = time.monotonic,
        store: KeyedStore[WindowKey, list[float]] | None = None,
    ) -> None:
        if max_actions < 1:
            raise ValueError("max_actions must be at least 1")
        self.max_actions = max_actions
        self.window_seconds = window_seconds
        self._clock = clock
        self._lock = Lock()
        self._store = store if store is not None else MemoryStore(
            default_ttl=window_seconds, clock=clock
        )

    def _prune(self, window: list[float], now: float) -> None:
        cutoff = now - self.window_seconds
        window[:] = [t for t in window if t > cutoff]

    def _denied(self, window: list[float], now: float) -> RateLimitDecision:
        retry_after = window[0] + self.window_seconds - now
        return RateLimitDecision(
            allowed=False,
            count=len(window),
            limit=self.max_actions,
            retry_after=max(0.0, retry_after),
        )

    def hit(self, actor_id: int, action_class: str = "points") -> RateLimitDecision:
        """Count an attempt.  Recorded only when allowed."""
        key = (actor_id, action_class)
        with self._lock:
            now = self._clock()
            window = self._store.get_or_create(key, list)
            self._prune(window, now)
            if len(window) >= self.max_actions:
                decision = self._denied(window, now)
                logger.warning(
                    "Rate limit hit for actor %s (%s): %d/%d, retry in %.0fs",
                    actor_id, action_class, decision.count, self.max_actions,
                    decision.retry_after,
                )
                return decision
            window.append(now)
            # refresh the idle TTL
            self._store.set(key, window)
            return RateLimitDecision(
                allowed=True, count=len(window), limit=self.max_actions
            )

    def enforce(self, actor_id: int, action_class: str = "points") -> RateLimitDecision:
        """:meth:`hit`, raising :class:`RateLimitExceeded` when denied."""
        decision = self.hit(actor_id, action_class)
        if not decision.allowed:
            raise RateLimitExceeded(
                f"Rate limit reached ({decision.count}/{decision.limit}).",
                retry_after=decision.retry_after,
                count=decision.count,
            )
        return decision

    def check(self, actor_id: int, action_class: str = "points") -> RateLimitDecision:
        """Same as :meth:`hit` but never records."""
        key = (actor_id, action_class)
        with self._lock:
            now = self._clock()
            window = self._store.get(key) or []
            self._prune(window, now)
            if len(window) >= self.max_actions:
                return self._denied(window, now)
            return RateLimitDecision(
                allowed=True, count=len(window), limit=self.max_actions
            )

    def reset(self, actor_id: int | None = None) -> None:
        """Clear one actor's windows, or everything when *actor_id* is None."""
        with self._lock:
            if actor_id is None:
                self._store.clear()
                return
            for key in self._store.keys():
                if key[0] == actor_id:
                    self._store.pop(key)

    def sweep(self) -> int:
        """Drop windows with no timestamps left inside the window."""
        removed = 0
        with self._lock:
            now = self._clock()
            removed += self._store.sweep()
            for key in self._store.keys():
                window = self._store.get(key)
                if window is None:
                    continue
                self._prune(window, now)
                if not window:
                    self._store.pop(key)
                    removed += 1
        return removed
