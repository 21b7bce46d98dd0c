"""
tests/conftest.py -- Shared test fixtures for tokenauth.

This module provides:
  - FakeClock: a settable monotonic clock for TokenCache / RateLimiter
  - _make_test_store(): isolated named shared-memory SQLite UserStore
  - _patch_lifespan(): wires test state into app.state, bypassing real startup
  - user_store / token_cache / auth_core: per-test unit fixtures
  - api_client: module-scoped TestClient over the real FastAPI app

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares one
in-memory instance across all connections in the same process.

Every TokenCache a fixture creates uses a very long sweep interval so its
background thread never fires during a test; tests call sweep() directly
and the fixture closes the cache afterwards.
"""

from __future__ import annotations

import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from api.limiter import RateLimiter
from api.main import app
from auth.core import AuthCore
from auth.hashing import prehash
from auth.store import UserStore
from cache.store import TokenCache

_NO_SWEEP = 3600.0


class FakeClock:
    """Callable clock whose time only moves when advance() is called."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _make_test_store(db_suffix: str | None = None) -> UserStore:
    """Create an isolated named shared-memory SQLite store."""
    suffix = db_suffix or uuid.uuid4().hex
    return UserStore(db_url=f"sqlite:///file:test_auth_{suffix}?mode=memory&cache=shared&uri=true")


def _patch_lifespan(state: SimpleNamespace):
    """Return an async context manager that replaces the real lifespan."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = state.user_store
        app.state.tokens = state.tokens
        app.state.limiter = state.limiter
        app.state.auth_core = state.auth_core
        app.state.trusted_proxies = state.trusted_proxies
        yield

    return test_lifespan


# ---------------------------------------------------------------------------
# Unit fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def user_store() -> Generator[UserStore, None, None]:
    store = _make_test_store()
    yield store
    store.close()


@pytest.fixture
def token_cache(clock: FakeClock) -> Generator[TokenCache, None, None]:
    cache = TokenCache(ttl_seconds=15, sweep_interval_seconds=_NO_SWEEP, clock=clock)
    yield cache
    cache.close()


@pytest.fixture
def auth_core(user_store: UserStore, token_cache: TokenCache) -> AuthCore:
    return AuthCore(user_store, token_cache)


@pytest.fixture(scope="session")
def secret1_prehash() -> str:
    """Prehash of "Secret1", computed once -- Argon2 is deliberately slow."""
    return prehash("Secret1")


@pytest.fixture(scope="session")
def wrong_prehash() -> str:
    return prehash("WrongPw")


# ---------------------------------------------------------------------------
# API fixture
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api_client() -> Generator[tuple[TestClient, SimpleNamespace], None, None]:
    """Yield (client, state) for API integration tests.

    state exposes user_store, tokens, limiter, clock, auth_core and
    trusted_proxies so tests can age tokens or swap the limiter without
    restarting the client.
    """
    clock = FakeClock()
    store = _make_test_store()
    tokens = TokenCache(ttl_seconds=15, sweep_interval_seconds=_NO_SWEEP, clock=clock)
    state = SimpleNamespace(
        user_store=store,
        tokens=tokens,
        limiter=RateLimiter(),
        clock=clock,
        auth_core=AuthCore(store, tokens),
        # TestClient reports its peer as "testclient"; trusting it lets tests
        # stand in for a reverse proxy by sending X-Real-IP.
        trusted_proxies=frozenset({"testclient"}),
    )

    app.router.lifespan_context = _patch_lifespan(state)

    with TestClient(app, raise_server_exceptions=False) as client:
        yield client, state

    tokens.close()
    store.close()
