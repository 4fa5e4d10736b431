from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import fakeredis
import fakeredis.aioredis
import pytest
import pytest_asyncio
from redis.exceptions import ConnectionError as RedisConnectionError

from services.journal.storage import BackendLink
from services.journal.store import JournalStore


class DownRedis:
    """Client whose every round trip fails as if the server were gone."""

    def __init__(self):
        self.ping = AsyncMock(side_effect=RedisConnectionError("Connection refused"))
        self.aclose = AsyncMock()


class FakeClock:
    def __init__(self, start=None):
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds=1):
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def server():
    return fakeredis.FakeServer()


@pytest.fixture
def client_factory(server):
    return lambda: fakeredis.aioredis.FakeRedis(server=server, decode_responses=True)


@pytest.fixture
def raw(server):
    """Synchronous view of the same fake server, for inspecting keys and TTLs."""
    return fakeredis.FakeRedis(server=server, decode_responses=True)


@pytest_asyncio.fixture
async def link(client_factory):
    link = BackendLink(client_factory, max_retries=3, base_delay=0, max_delay=0)
    assert await link.connect()
    yield link
    await link.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(link, clock):
    return JournalStore(link, clock=clock)


@pytest.fixture
def down_redis():
    return DownRedis()
