"""Fixed-window request counters keyed by client address."""

from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, Dict, Tuple

API_TIER = "api"
AUTH_TIER = "auth"
SLACK_TIER = "slack"


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    retry_after: int


class FixedWindowRateLimiter:
    """Count hits per key inside a fixed window that resets when it elapses."""

    def __init__(
        self,
        *,
        limit: int,
        window: timedelta,
        timer: Callable[[], float] | None = None,
    ) -> None:
        if limit <= 0:
            raise ValueError("Rate limit must be greater than zero.")
        if window.total_seconds() <= 0:
            raise ValueError("Rate limit window must be greater than zero seconds.")
        self._limit = limit
        self._window = window.total_seconds()
        self._timer = timer or time.monotonic
        self._lock = threading.Lock()
        self._windows: Dict[str, Tuple[float, int]] = {}

    @property
    def limit(self) -> int:
        return self._limit

    def hit(self, key: str) -> RateLimitDecision:
        """Record a request for *key* and report whether it is allowed."""

        now = self._timer()
        with self._lock:
            started, count = self._windows.get(key, (now, 0))
            if now - started >= self._window:
                started, count = now, 0
            count += 1
            self._windows[key] = (started, count)
            self._prune(now)
        retry_after = max(1, math.ceil(started + self._window - now))
        if count > self._limit:
            return RateLimitDecision(False, self._limit, 0, retry_after)
        return RateLimitDecision(True, self._limit, self._limit - count, retry_after)

    def reset(self, key: str | None = None) -> None:
        with self._lock:
            if key is None:
                self._windows.clear()
            else:
                self._windows.pop(key, None)

    def _prune(self, now: float) -> None:
        # Caller holds the lock.
        if len(self._windows) < 10_000:
            return
        expired = [key for key, (started, _) in self._windows.items() if now - started >= self._window]
        for key in expired:
            del self._windows[key]
