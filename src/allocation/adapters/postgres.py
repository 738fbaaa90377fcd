import logging
from asyncio import current_task
from typing import Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_scoped_session,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from allocation.adapters.orm import metadata


logger = logging.getLogger(__name__)


class AsyncSQLAlchemy:
    def __init__(self, db_uri: str) -> None:
        self._db_uri = str(db_uri)
        self._engine: Optional[AsyncEngine] = None
        self._session_factory = None

    async def create_database(self) -> None:
        async with self._engine.begin() as conn:
            await conn.run_sync(metadata.create_all)

    async def connect(self, **kwargs):
        if self._db_uri.startswith("sqlite") and ":memory:" in self._db_uri:
            # 메모리 DB는 커넥션마다 따로 생기므로 하나만 쓴다
            kwargs.setdefault("poolclass", StaticPool)
        logger.info("Connecting to %s", self._db_uri.split("@")[-1])
        self._engine = create_async_engine(self._db_uri, **kwargs)

    async def disconnect(self):
        await self._engine.dispose()

    def init_session_factory(
            self,
            autoflush: bool = False,
            expire_on_commit: bool = False,
    ):
        self._session_factory = async_scoped_session(
            async_sessionmaker(
                bind=self._engine,
                autoflush=autoflush,
                expire_on_commit=expire_on_commit,
                class_=AsyncSession,
            ),
            scopefunc=current_task,
        )

    @property
    def engine(self):
        assert self._engine is not None
        return self._engine

    @property
    def session_factory(self):
        assert self._session_factory is not None
        return self._session_factory
