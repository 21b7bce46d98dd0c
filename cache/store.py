"""
cache/store.py -- In-memory, single-use, time-bounded AuthToken cache.

Maps AuthToken -> (issued_at, identity). Lookups are destructive: the first
take_if_valid() for a token removes it whether or not it has aged, so every
token verifies at most once. That is the one-time-credential design, not a
cache-coherency bug -- do not make verify idempotent.

Expiry is handled by one background sweep thread per cache, started in
__init__ and stopped by close(). Every sweep_interval seconds it drops entries
older than ttl. Because the interval (60s) is longer than the ttl (15s), an
unconsumed token can survive up to ttl + interval (~75s) before eviction.

Concurrency:
  A single lock guards the map. insert/take are O(1) under the lock; a sweep
  holds it for one O(n) scan. No I/O or hashing happens while it is held, and
  it is never held while acquiring another lock.

  An exception escaping a sweep pass means the map can no longer be trusted.
  The sweep thread logs it at CRITICAL and terminates the process so the
  supervisor restarts with a clean slate; it is not turned into a normal error.

Usage:
    tokens = TokenCache(ttl_seconds=15, sweep_interval_seconds=60)
    tokens.insert(token, identity)
    identity = tokens.take_if_valid(token)   # UUID or None; second call is None
    tokens.close()
"""

from __future__ import annotations

import logging
import os
import threading
import time
from collections.abc import Callable
from typing import NamedTuple
from uuid import UUID

from auth.models import AuthToken

logger = logging.getLogger("tokenauth.cache")

_DEFAULT_TTL = 15.0  # seconds
_DEFAULT_SWEEP_INTERVAL = 60.0  # seconds
_EX_SOFTWARE = 70  # sysexits.h: internal software error


class _Entry(NamedTuple):
    issued_at: float
    identity: UUID


def _die(message: str) -> None:
    """Terminate the process immediately. Only called from the sweep thread."""
    logger.critical("%s -- terminating so the supervisor can restart with a clean token cache", message)
    logging.shutdown()
    os._exit(_EX_SOFTWARE)


class TokenCache:
    def __init__(
        self,
        ttl_seconds: float = _DEFAULT_TTL,
        sweep_interval_seconds: float = _DEFAULT_SWEEP_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl = ttl_seconds
        self.sweep_interval = sweep_interval_seconds
        self._clock = clock
        self._entries: dict[AuthToken, _Entry] = {}
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._sweeper = threading.Thread(target=self._sweep_loop, name="token-cache-sweep", daemon=True)
        self._sweeper.start()

    def insert(self, token: AuthToken, identity: UUID) -> None:
        """Store identity under token, overwriting any existing entry."""
        entry = _Entry(self._clock(), identity)
        with self._lock:
            self._entries[token] = entry

    def take_if_valid(self, token: AuthToken) -> UUID | None:
        """Remove and return the identity for token, or None if absent."""
        with self._lock:
            entry = self._entries.pop(token, None)
        return entry.identity if entry is not None else None

    def sweep(self) -> int:
        """Drop every entry older than ttl. Returns the number removed."""
        cutoff = self._clock() - self.ttl
        with self._lock:
            stale = [token for token, entry in self._entries.items() if entry.issued_at < cutoff]
            for token in stale:
                del self._entries[token]
        return len(stale)

    def _sweep_loop(self) -> None:
        # Event.wait returns True once close() is called.
        while not self._stop.wait(self.sweep_interval):
            try:
                removed = self.sweep()
            except Exception:
                logger.exception("Token cache sweep failed")
                _die("Token cache state is inconsistent")
                return
            if removed:
                logger.debug("Swept %d expired token(s)", removed)

    def close(self) -> None:
        """Stop the sweep thread. Entries are left in place."""
        self._stop.set()
        if self._sweeper.is_alive() and self._sweeper is not threading.current_thread():
            self._sweeper.join(timeout=5)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
