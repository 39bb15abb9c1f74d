"""
Per-client sliding-window rate limiting for the HTTP service.
"""
# @file purpose: Sliding-window request limiter keyed by client address.

from __future__ import annotations

import time
from collections import deque
from typing import Callable, Deque, Dict


class SlidingWindowLimiter:
    """At most `limit` hits per client within any `window_ms` span."""

    def __init__(
        self, limit: int, window_ms: int, clock: Callable[[], float] = time.monotonic
    ) -> None:
        self.limit = limit
        self.window = window_ms / 1000
        self.clock = clock
        self._hits: Dict[str, Deque[float]] = {}
        self._next_sweep = clock() + self.window

    def hit(self, client: str) -> float | None:
        """
        Record a request. Returns None when allowed, otherwise the seconds
        until the oldest hit leaves the window (the request is not recorded).
        """
        now = self.clock()
        if now >= self._next_sweep:
            self._sweep(now)
        key = client or "anonymous"
        entries = self._hits.get(key)
        if entries is not None:
            self._prune(entries, now)
        if entries and len(entries) >= self.limit:
            return max(entries[0] + self.window - now, 0.0)
        if self.limit <= 0:
            return self.window
        self._hits.setdefault(key, deque()).append(now)
        return None

    def tracked_clients(self) -> int:
        return len(self._hits)

    def _prune(self, entries: Deque[float], now: float) -> None:
        while entries and entries[0] <= now - self.window:
            entries.popleft()

    def _sweep(self, now: float) -> None:
        # clients that went quiet for a whole window hold no live hits
        for key in list(self._hits):
            entries = self._hits[key]
            self._prune(entries, now)
            if not entries:
                del self._hits[key]
        self._next_sweep = now + self.window
