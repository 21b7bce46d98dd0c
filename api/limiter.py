"""
api/limiter.py -- Per-client sliding-window rate limiter.

RateLimiter.check(source) records one event for source and admits it if at most
max_events events (this one included) fall inside the trailing window. The
window slides continuously with the clock; it is not aligned to wall-clock
buckets. Rejected attempts are recorded too, so a client that keeps hammering
stays locked out until it slows down.

Loopback sources are always admitted and never recorded.

client_address() only believes X-Real-IP when the socket peer is a trusted
proxy (loopback, or listed in the TRUSTED_PROXIES setting).

Memory:
  Each source keeps at most max_events + 1 timestamps. Only the newest
  max_events + 1 events can decide whether the count exceeds max_events, so
  the bounded deque gives exactly the same answers as an unbounded list.
  Sources that stop calling are never evicted from the map -- accepted growth.

Concurrency:
  One lock guards the map. The critical section touches one source's deque
  only (O(window size of that source)).

The limiter is created in the app lifespan and stored on app.state.limiter;
enforce_rate_limit() is the FastAPI dependency mutating routes declare.
"""

from __future__ import annotations

import ipaddress
import logging
import threading
import time
from collections import deque
from collections.abc import Callable

from fastapi import Request

from core.errors import RateLimited

logger = logging.getLogger("tokenauth.limiter")

_DEFAULT_WINDOW = 10 * 60.0  # seconds
_DEFAULT_MAX_EVENTS = 60


def is_loopback(source: str) -> bool:
    try:
        addr = ipaddress.ip_address(source)
    except ValueError:
        return False
    if isinstance(addr, ipaddress.IPv6Address) and addr.ipv4_mapped is not None:
        addr = addr.ipv4_mapped
    return addr.is_loopback


class RateLimiter:
    def __init__(
        self,
        window_seconds: float = _DEFAULT_WINDOW,
        max_events: int = _DEFAULT_MAX_EVENTS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.window = window_seconds
        self.max_events = max_events
        self._clock = clock
        self._windows: dict[str, deque[float]] = {}
        self._lock = threading.Lock()

    def check(self, source: str) -> bool:
        """Record an event for source; return True if it is admitted."""
        if is_loopback(source):
            return True

        now = self._clock()
        horizon = now - self.window
        with self._lock:
            events = self._windows.get(source)
            if events is None:
                events = self._windows[source] = deque(maxlen=self.max_events + 1)
            events.append(now)
            while events and events[0] <= horizon:
                events.popleft()
            count = len(events)
        return count <= self.max_events

    def retry_after(self, source: str) -> int:
        """Seconds until the next check for source would be admitted.

        The next check appends one event, so it is admitted once at most
        max_events - 1 recorded events remain in the window. That happens
        when events[-max_events] leaves it, not the oldest event.
        """
        with self._lock:
            events = self._windows.get(source)
            if not events or len(events) < self.max_events:
                return 0
            deciding = events[len(events) - self.max_events]
        return max(1, int(deciding + self.window - self._clock()) + 1)

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)


# ---------------------------------------------------------------------------
# FastAPI integration
# ---------------------------------------------------------------------------


def client_address(request: Request) -> str:
    """Return the caller's address: X-Real-IP from a trusted proxy, else the peer.

    X-Real-IP is set by the reverse proxy in front of the service. It is only
    honoured when the socket peer is loopback or listed in
    app.state.trusted_proxies; from any other peer the header is ignored, so a
    remote client cannot claim to be 127.0.0.1. A header that is not a valid
    IP address is ignored too.
    """
    peer = request.client.host if request.client else "unknown"
    real_ip = request.headers.get("X-Real-IP", "").strip()
    if real_ip and _is_trusted_proxy(peer, request.app.state.trusted_proxies):
        try:
            return str(ipaddress.ip_address(real_ip))
        except ValueError:
            pass
    return peer


def _is_trusted_proxy(peer: str, trusted_proxies: frozenset[str]) -> bool:
    return is_loopback(peer) or peer in trusted_proxies


def enforce_rate_limit(request: Request) -> None:
    """FastAPI dependency: raise RateLimited if the caller is over its budget.

    Use on mutating endpoints:
        @router.post("/register", dependencies=[Depends(enforce_rate_limit)])
    """
    limiter: RateLimiter = request.app.state.limiter
    source = client_address(request)
    if not limiter.check(source):
        logger.info("[%s:%s] rate limited", source, request.url.path)
        raise RateLimited(retry_after=limiter.retry_after(source))
