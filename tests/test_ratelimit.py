"""Tests for the fixed-window limiter (taxpayer_mcp/ratelimit.py)."""

import pytest

from taxpayer_mcp.ratelimit import FixedWindowRateLimiter


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def limiter(clock):
    return FixedWindowRateLimiter(limit=2, window_seconds=60.0, clock=clock)


class TestFixedWindow:
    def test_allows_up_to_the_limit(self, limiter):
        assert limiter.acquire("10.0.0.1") is None
        assert limiter.acquire("10.0.0.1") is None
        assert limiter.acquire("10.0.0.1") == 60.0

    def test_retry_after_counts_down(self, limiter, clock):
        limiter.acquire("10.0.0.1")
        limiter.acquire("10.0.0.1")
        clock.now += 45

        assert limiter.acquire("10.0.0.1") == 15.0

    def test_window_resets(self, limiter, clock):
        for _ in range(3):
            limiter.acquire("10.0.0.1")
        clock.now += 60

        assert limiter.acquire("10.0.0.1") is None

    def test_clients_are_counted_separately(self, limiter):
        limiter.acquire("10.0.0.1")
        limiter.acquire("10.0.0.1")

        assert limiter.acquire("10.0.0.2") is None

    def test_rejected_requests_do_not_extend_the_window(self, limiter, clock):
        limiter.acquire("10.0.0.1")
        limiter.acquire("10.0.0.1")
        clock.now += 30
        limiter.acquire("10.0.0.1")
        clock.now += 30

        assert limiter.acquire("10.0.0.1") is None

    def test_expired_windows_are_dropped(self, limiter, clock):
        limiter.acquire("10.0.0.1")
        clock.now += 61
        limiter.acquire("10.0.0.2")

        assert set(limiter._windows) == {"10.0.0.2"}
