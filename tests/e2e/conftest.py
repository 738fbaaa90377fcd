import pytest_asyncio
from asgi_lifespan import LifespanManager
from dependency_injector import providers
from httpx import ASGITransport, AsyncClient

from tests.unit.fakes import FakeChannel


@pytest_asyncio.fixture(name="channel")
async def fake_channel():
    return FakeChannel()


@pytest_asyncio.fixture(name="client")
async def test_client(channel) -> AsyncClient:
    from allocation.entrypoints.app import app

    # 레디스 없이 발행된 이벤트를 확인한다
    with app.container.redis.override(providers.Object(channel)):
        async with LifespanManager(app):
            async with AsyncClient(
                transport=ASGITransport(app=app),
                base_url='http://localhost:13370/',
            ) as client:
                yield client
