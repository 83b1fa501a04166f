"""Sliding-window rate limiting for email dispatch."""

import threading
import time
from collections import deque
from typing import Callable, Deque, Optional

from .models import RateLimited


class SlidingWindowRateLimiter:
    """Allow at most ``limit`` acquisitions in any ``window_seconds`` span.

    Calls over the limit are rejected, never queued. The window is shared by
    every thread using the same instance.

    Args:
        limit: Acquisitions allowed per window
        window_seconds: Window length
        clock: Monotonic time source (injectable for tests)
    """

    def __init__(
        self,
        limit: int,
        window_seconds: float,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.limit = max(limit, 1)
        self.window_seconds = max(window_seconds, 1)
        self._clock = clock or time.monotonic
        self._hits: Deque[float] = deque()
        self._lock = threading.Lock()

    def _evict(self, now: float) -> None:
        cutoff = now - self.window_seconds
        while self._hits and self._hits[0] <= cutoff:
            self._hits.popleft()

    def acquire(self) -> None:
        """Record one dispatch.

        Raises:
            RateLimited: If the window is already full
        """
        with self._lock:
            now = self._clock()
            self._evict(now)
            if len(self._hits) >= self.limit:
                retry_after = self._hits[0] + self.window_seconds - now
                raise RateLimited(self.limit, int(self.window_seconds), max(retry_after, 0.0))
            self._hits.append(now)

    def remaining(self) -> int:
        with self._lock:
            self._evict(self._clock())
            return self.limit - len(self._hits)
