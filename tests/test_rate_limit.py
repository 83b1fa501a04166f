"""Tests for the sliding-window rate limiter."""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from hr_notify.notifications.models import RateLimited
from hr_notify.notifications.rate_limit import SlidingWindowRateLimiter


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class TestSlidingWindowRateLimiter:
    """Test window accounting."""

    def test_allows_up_to_limit(self):
        limiter = SlidingWindowRateLimiter(limit=3, window_seconds=60, clock=FakeClock())

        for _ in range(3):
            limiter.acquire()

        assert limiter.remaining() == 0
        with pytest.raises(RateLimited) as exc_info:
            limiter.acquire()

        assert exc_info.value.limit == 3
        assert exc_info.value.window_seconds == 60
        assert exc_info.value.retry_after == pytest.approx(60.0)

    def test_window_slides(self):
        clock = FakeClock()
        limiter = SlidingWindowRateLimiter(limit=2, window_seconds=60, clock=clock)

        limiter.acquire()
        clock.advance(30)
        limiter.acquire()

        with pytest.raises(RateLimited) as exc_info:
            limiter.acquire()
        assert exc_info.value.retry_after == pytest.approx(30.0)

        # First hit leaves the window
        clock.advance(30)
        limiter.acquire()
        assert limiter.remaining() == 0

    def test_rejected_calls_do_not_count(self):
        clock = FakeClock()
        limiter = SlidingWindowRateLimiter(limit=1, window_seconds=10, clock=clock)
        limiter.acquire()

        for _ in range(5):
            with pytest.raises(RateLimited):
                limiter.acquire()

        clock.advance(10)
        limiter.acquire()

    def test_limit_floor(self):
        limiter = SlidingWindowRateLimiter(limit=0, window_seconds=0, clock=FakeClock())

        assert limiter.limit == 1
        assert limiter.window_seconds == 1

    def test_concurrent_acquisitions_share_one_window(self):
        limiter = SlidingWindowRateLimiter(limit=25, window_seconds=3600)
        start = threading.Barrier(8)

        def worker(_):
            start.wait()
            outcomes = []
            for _ in range(10):
                try:
                    limiter.acquire()
                    outcomes.append(True)
                except RateLimited:
                    outcomes.append(False)
            return outcomes

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = [ok for batch in pool.map(worker, range(8)) for ok in batch]

        assert len(results) == 80
        assert results.count(True) == 25
        assert limiter.remaining() == 0
