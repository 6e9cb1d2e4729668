"""Simple in-memory rate limiting utilities."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict


@dataclass
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_after: int  # seconds until the current window closes


@dataclass
class _Window:
    started_at: float
    ends_at: float
    count: int


class InMemoryRateLimiter:
    """Fixed-window rate limiter suitable for single-node deployments.

    Windows that have closed are dropped at most once per ``sweep_interval``
    seconds, so keys for clients that stop calling do not pile up.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic, sweep_interval: float = 60.0) -> None:
        self._lock = threading.Lock()
        self._windows: Dict[str, _Window] = {}
        self._clock = clock
        self._sweep_interval = sweep_interval
        self._next_sweep = clock() + sweep_interval

    def hit(self, key: str, limit: int, window_seconds: int) -> RateLimitDecision:
        """Count one request against ``key`` and report whether it is allowed."""
        now = self._clock()

        with self._lock:
            if now >= self._next_sweep:
                self._sweep(now)

            window = self._windows.get(key)
            if window is None or now >= window.ends_at:
                window = _Window(started_at=now, ends_at=now + window_seconds, count=0)
                self._windows[key] = window

            reset_after = max(0, int(window.ends_at - now))
            if window.count >= limit:
                return RateLimitDecision(False, limit, 0, reset_after)

            window.count += 1
            return RateLimitDecision(True, limit, limit - window.count, reset_after)

    def allow(self, key: str, limit: int, window_seconds: int) -> bool:
        return self.hit(key, limit, window_seconds).allowed

    def tracked_keys(self) -> int:
        with self._lock:
            return len(self._windows)

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()

    def _sweep(self, now: float) -> None:
        # Caller holds the lock.
        stale = [key for key, window in self._windows.items() if now >= window.ends_at]
        for key in stale:
            del self._windows[key]
        self._next_sweep = now + self._sweep_interval
