"""Shared test fixtures.

Settings are read at import time, so the environment is primed before any
src module is imported.
"""

# ruff: noqa: E402

import os

os.environ.setdefault("JWT_SECRET", "test-secret-not-for-production")
os.environ.setdefault("RATE_LIMIT_STORE", "memory")

from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

from src.main import app
from src.rl_limiter.application.policy import PolicyResolver
from src.rl_limiter.application.service import RateLimitService
from src.rl_limiter.infrastructure.memory_store import InMemoryCounterStore
from tests.helpers import FakeClock, make_config


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> InMemoryCounterStore:
    return InMemoryCounterStore(clock=clock)


@pytest.fixture
def resolver() -> PolicyResolver:
    return PolicyResolver(make_config())


@pytest.fixture
def service(
    store: InMemoryCounterStore, resolver: PolicyResolver, clock: FakeClock
) -> RateLimitService:
    return RateLimitService(store, resolver, clock=clock)


@pytest.fixture
async def client(service: RateLimitService) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for the app, wired to the in-memory service.

    ASGITransport does not run the lifespan, so the service is attached here.
    """
    app.state.rate_limiter = service
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    del app.state.rate_limiter
