import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from allocation.adapters.orm import metadata, start_mappers


@pytest.fixture(scope="session", autouse=True)
def mapper():
    start_mappers()


# for in-memory test

@pytest_asyncio.fixture
async def in_memory_db():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def sqlite_session_factory(in_memory_db):
    yield async_sessionmaker(
        bind=in_memory_db,
        expire_on_commit=False,
        class_=AsyncSession,
    )


@pytest_asyncio.fixture
async def file_db(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def file_session_factory(file_db):
    yield async_sessionmaker(
        bind=file_db,
        expire_on_commit=False,
        class_=AsyncSession,
    )

