"""Unit tests for api/limiter.py -- sliding-window RateLimiter.

All timing goes through FakeClock; nothing sleeps.
"""

from __future__ import annotations

import threading
from unittest.mock import MagicMock

import pytest

from api.limiter import RateLimiter, client_address, is_loopback

_SOURCE = "203.0.113.7"


@pytest.fixture
def limiter(clock) -> RateLimiter:
    return RateLimiter(window_seconds=600, max_events=60, clock=clock)


class TestSlidingWindow:
    def test_sixty_admitted_sixty_first_rejected(self, limiter):
        assert all(limiter.check(_SOURCE) for _ in range(60))
        assert limiter.check(_SOURCE) is False

    def test_oldest_event_ageing_out_readmits(self, limiter, clock):
        assert limiter.check(_SOURCE)  # t=0
        clock.advance(300)
        for _ in range(59):
            assert limiter.check(_SOURCE)  # t=300, 60 in window
        clock.advance(300)
        # t=600: the t=0 event has left the trailing window, so this is the 60th.
        assert limiter.check(_SOURCE) is True
        assert limiter.check(_SOURCE) is False

    def test_window_fully_elapsed_readmits(self, limiter, clock):
        for _ in range(61):
            limiter.check(_SOURCE)
        clock.advance(600)
        assert limiter.check(_SOURCE) is True

    def test_window_slides_instead_of_resetting(self, clock):
        limiter = RateLimiter(window_seconds=10, max_events=2, clock=clock)
        assert limiter.check(_SOURCE)  # t=0
        clock.advance(9)
        assert limiter.check(_SOURCE)  # t=9
        clock.advance(2)  # t=11: t=0 has left, t=9 has not
        assert limiter.check(_SOURCE)
        assert limiter.check(_SOURCE) is False

    def test_rejected_attempts_are_counted(self, clock):
        limiter = RateLimiter(window_seconds=10, max_events=1, clock=clock)
        assert limiter.check(_SOURCE)
        clock.advance(5)
        assert limiter.check(_SOURCE) is False  # t=5, recorded
        clock.advance(6)  # t=11: t=0 gone, t=5 still counts
        assert limiter.check(_SOURCE) is False

    def test_sources_are_independent(self, limiter):
        for _ in range(61):
            limiter.check(_SOURCE)
        assert limiter.check("198.51.100.1") is True

    def test_per_source_storage_is_bounded(self, limiter):
        for _ in range(500):
            limiter.check(_SOURCE)
        assert len(limiter._windows[_SOURCE]) == 61

    def test_retry_after_counts_down(self, clock):
        limiter = RateLimiter(window_seconds=600, max_events=1, clock=clock)
        limiter.check(_SOURCE)
        limiter.check(_SOURCE)
        clock.advance(100)
        assert limiter.retry_after(_SOURCE) == 501
        assert limiter.retry_after("198.51.100.1") == 0

    def test_waiting_retry_after_readmits(self, clock):
        limiter = RateLimiter(window_seconds=600, max_events=1, clock=clock)
        assert limiter.check(_SOURCE)  # t=0
        clock.advance(5)
        assert limiter.check(_SOURCE) is False  # t=5, recorded
        clock.advance(limiter.retry_after(_SOURCE))
        assert limiter.check(_SOURCE) is True

    def test_retry_after_uses_event_that_decides_admission(self, clock):
        limiter = RateLimiter(window_seconds=600, max_events=3, clock=clock)
        for _ in range(3):
            assert limiter.check(_SOURCE)  # t=0
        clock.advance(100)
        assert limiter.check(_SOURCE) is False  # t=100
        # Two t=0 events and the t=100 rejection remain after the oldest goes,
        # so admission waits for the second t=0 event to leave.
        assert limiter.retry_after(_SOURCE) == 501
        clock.advance(500)
        assert limiter.check(_SOURCE) is True


class TestLoopback:
    @pytest.mark.parametrize("source", ["127.0.0.1", "127.8.9.10", "::1", "::ffff:127.0.0.1"])
    def test_loopback_always_admitted(self, limiter, source):
        assert all(limiter.check(source) for _ in range(200))
        assert len(limiter) == 0

    @pytest.mark.parametrize("source", ["10.0.0.1", "2001:db8::1", "testclient", ""])
    def test_non_loopback(self, source):
        assert is_loopback(source) is False


class TestConcurrency:
    def test_concurrent_checks_admit_exactly_the_limit(self, limiter):
        admitted: list[bool] = []
        lock = threading.Lock()
        barrier = threading.Barrier(10)

        def worker() -> None:
            barrier.wait()
            for _ in range(20):
                ok = limiter.check(_SOURCE)
                with lock:
                    admitted.append(ok)

        threads = [threading.Thread(target=worker) for _ in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert admitted.count(True) == 60
        assert admitted.count(False) == 140


class TestClientAddress:
    def _request(self, headers: dict, host: str | None = "192.0.2.10", trusted=frozenset()) -> MagicMock:
        request = MagicMock()
        request.headers = headers
        request.client = MagicMock(host=host) if host else None
        request.app.state.trusted_proxies = trusted
        return request

    def test_uses_x_real_ip_from_trusted_proxy(self):
        request = self._request({"X-Real-IP": "203.0.113.9"}, trusted=frozenset({"192.0.2.10"}))
        assert client_address(request) == "203.0.113.9"

    def test_uses_x_real_ip_from_loopback_peer(self):
        assert client_address(self._request({"X-Real-IP": "203.0.113.9"}, host="127.0.0.1")) == "203.0.113.9"

    def test_ignores_x_real_ip_from_untrusted_peer(self):
        assert client_address(self._request({"X-Real-IP": "127.0.0.1"})) == "192.0.2.10"

    def test_ignores_unparseable_header(self):
        request = self._request({"X-Real-IP": "not-an-ip"}, trusted=frozenset({"192.0.2.10"}))
        assert client_address(request) == "192.0.2.10"

    def test_falls_back_to_peer(self):
        assert client_address(self._request({})) == "192.0.2.10"

    def test_no_peer(self):
        assert client_address(self._request({}, host=None)) == "unknown"
