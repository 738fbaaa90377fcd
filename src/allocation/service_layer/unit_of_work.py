from __future__ import annotations

import abc
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from allocation.adapters import repository


class ConcurrentUpdate(Exception):
    pass


class AbstractUnitOfWork(Protocol):
    batches: repository.AbstractBatchRepository
    carts: repository.AbstractCartRepository
    orders: repository.TrackingRepository

    async def __aenter__(self) -> AbstractUnitOfWork:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.rollback()

    @abc.abstractmethod
    async def commit(self):
        raise NotImplementedError

    @abc.abstractmethod
    async def rollback(self):
        raise NotImplementedError

    def collect_new_events(self):
        for order in self.orders.seen:
            while order.messages:
                yield order.messages.popleft()


class SqlAlchemyUnitOfWork(AbstractUnitOfWork):
    def __init__(
            self,
            session_factory,
    ):
        self._session_factory = session_factory

    async def __aenter__(self) -> AbstractUnitOfWork:
        self.session: AsyncSession = self._session_factory()
        self.batches = repository.SqlAlchemyBatchRepository(self.session)
        self.carts = repository.SqlAlchemyCartRepository(self.session)
        self.orders = repository.TrackingRepository(
            repository.SqlAlchemyOrderRepository(self.session)
        )
        return await super().__aenter__()

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await super().__aexit__(exc_type, exc_val, exc_tb)
        await self.session.close()

    async def commit(self):
        # 할당 행과 배치 수량이 한 트랜잭션으로 같이 반영된다
        try:
            await self.session.commit()
        except StaleDataError as e:
            await self.session.rollback()
            raise ConcurrentUpdate(
                "Stock batches were changed by another request"
            ) from e

    async def rollback(self):
        await self.session.rollback()
