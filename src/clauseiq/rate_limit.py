"""Per-user fixed-window rate limiting kept in process memory."""
from __future__ import annotations

import threading
import time
from typing import Callable, Dict, Tuple

from clauseiq.errors import RateLimitExceededError

_PRUNE_THRESHOLD = 10_000


class FixedWindowRateLimiter:
    """Allow ``max_requests`` per key in each window of ``window_seconds``.

    The window opens on a key's first request and the counter resets once it
    has elapsed. State is advisory and lost on restart.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        *,
        name: str = "default",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_requests <= 0:
            raise ValueError("max_requests must be positive")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.name = name
        self._clock = clock
        self._windows: Dict[str, Tuple[float, int]] = {}
        self._lock = threading.Lock()

    def hit(self, key: str) -> int:
        """Record one request for ``key`` and return how many remain in the window."""

        now = self._clock()
        with self._lock:
            if len(self._windows) > _PRUNE_THRESHOLD:
                self._prune(now)
            started, count = self._windows.get(key, (now, 0))
            if now - started >= self.window_seconds:
                started, count = now, 0
            if count >= self.max_requests:
                retry_after = max(0.0, self.window_seconds - (now - started))
                raise RateLimitExceededError(
                    "Rate limit exceeded. Please try again later.",
                    retry_after=retry_after,
                )
            self._windows[key] = (started, count + 1)
            return self.max_requests - count - 1

    def _prune(self, now: float) -> None:
        expired = [key for key, (started, _) in self._windows.items() if now - started >= self.window_seconds]
        for key in expired:
            del self._windows[key]


__all__ = ["FixedWindowRateLimiter"]
