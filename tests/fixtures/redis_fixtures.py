"""Redis fixtures for testing."""

import os
from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone

import fakeredis
import pytest
import pytest_asyncio
from redis.asyncio import Redis

from app.domain.auth.session_store import SessionStore
from app.shared.storage.redis import RedisManager


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


@pytest_asyncio.fixture(scope="function")
async def redis_client() -> AsyncGenerator[Redis]:
    """
    Redis client for testing (function-scoped to avoid event loop issues).

    Uses the server at REDIS_URL_TEST when set (the database is flushed first),
    otherwise an isolated in-process fakeredis server. Either way the store
    caps in-flight operations below the pool size.
    """
    url = os.environ.get("REDIS_URL_TEST")
    if url:
        client: Redis = RedisManager.build_client(url, max_connections=64, pool_timeout=2.0)
        await client.flushdb()
    else:
        client = fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)
    yield client
    await client.aclose()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def session_store(redis_client: Redis, clock: FakeClock) -> SessionStore:
    """SessionStore on the test Redis with a one hour TTL and a manual clock."""
    return SessionStore(redis_client, ttl=timedelta(hours=1), key_prefix="test", clock=clock)
