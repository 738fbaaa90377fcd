from typing import Iterable, List, Optional, Protocol, Set

from sqlalchemy import exists, select
from sqlalchemy.ext.asyncio import AsyncSession

from allocation.adapters import orm
from allocation.domain import model


class AbstractBatchRepository(Protocol):
    async def add(self, batch: model.StockBatch):
        raise NotImplementedError

    async def get(self, batch_id: int) -> Optional[model.StockBatch]:
        raise NotImplementedError

    async def for_products(self, product_ids: Iterable[int]) -> List[model.StockBatch]:
        raise NotImplementedError

    async def is_referenced(self, batch_id: int) -> bool:
        raise NotImplementedError

    async def delete(self, batch: model.StockBatch):
        raise NotImplementedError


class AbstractCartRepository(Protocol):
    async def add(self, cart: model.Cart):
        raise NotImplementedError

    async def get(self, cart_unique_id: str) -> Optional[model.Cart]:
        raise NotImplementedError

    async def get_by_id(self, cart_id: int) -> Optional[model.Cart]:
        raise NotImplementedError


class AbstractOrderRepository(Protocol):
    async def add(self, order: model.Order):
        raise NotImplementedError

    async def get(self, order_unique_id: str) -> Optional[model.Order]:
        raise NotImplementedError

    async def list_for_cart(self, cart_id: int) -> List[model.Order]:
        raise NotImplementedError


class TrackingRepository:
    seen: Set[model.Order]

    def __init__(
            self,
            repo: AbstractOrderRepository,
    ):
        self._repo = repo
        self.seen = set()

    async def add(self, order: model.Order):
        await self._repo.add(order)
        self.seen.add(order)

    async def get(self, order_unique_id: str) -> Optional[model.Order]:
        order = await self._repo.get(order_unique_id)
        if order:
            self.seen.add(order)
        return order

    async def list_for_cart(self, cart_id: int) -> List[model.Order]:
        orders = await self._repo.list_for_cart(cart_id)
        self.seen.update(orders)
        return orders


class SqlAlchemyBatchRepository(AbstractBatchRepository):
    def __init__(
            self,
            session: AsyncSession,
    ):
        self.session = session

    async def add(self, batch: model.StockBatch):
        self.session.add(batch)

    async def get(self, batch_id: int) -> Optional[model.StockBatch]:
        return await self.session.get(model.StockBatch, batch_id)

    async def for_products(self, product_ids: Iterable[int]) -> List[model.StockBatch]:
        """ 요청 상품들의 활성 배치를 생산 종료일 순으로 한 번에 읽는다. """
        return list(
            (
                await self.session.scalars(
                    select(model.StockBatch)
                    .filter(orm.stock_batches.c.product_id.in_(list(product_ids)))
                    .filter(orm.stock_batches.c.is_active.is_(True))
                    .order_by(
                        orm.stock_batches.c.end_date,
                        orm.stock_batches.c.id,
                    )
                )
            )
            .all()
        )

    async def is_referenced(self, batch_id: int) -> bool:
        return bool(
            await self.session.scalar(
                select(
                    exists().where(
                        orm.order_batch_allocations.c.batch_id == batch_id
                    )
                )
            )
        )

    async def delete(self, batch: model.StockBatch):
        await self.session.delete(batch)


class SqlAlchemyCartRepository(AbstractCartRepository):
    def __init__(
            self,
            session: AsyncSession,
    ):
        self.session = session

    async def add(self, cart: model.Cart):
        self.session.add(cart)

    async def get(self, cart_unique_id: str) -> Optional[model.Cart]:
        return (
            (
                await self.session.execute(
                    select(model.Cart)
                    .filter(orm.carts.c.cart_unique_id == cart_unique_id)
                    .filter(orm.carts.c.is_active.is_(True))
                )
            )
            .scalars()
            .one_or_none()
        )

    async def get_by_id(self, cart_id: int) -> Optional[model.Cart]:
        return await self.session.get(model.Cart, cart_id)


class SqlAlchemyOrderRepository(AbstractOrderRepository):
    def __init__(
            self,
            session: AsyncSession,
    ):
        self.session = session

    async def add(self, order: model.Order):
        self.session.add(order)

    async def get(self, order_unique_id: str) -> Optional[model.Order]:
        return (
            (
                await self.session.execute(
                    select(model.Order)
                    .filter(orm.orders.c.order_unique_id == order_unique_id)
                    .filter(orm.orders.c.is_active.is_(True))
                )
            )
            .scalars()
            .one_or_none()
        )

    async def list_for_cart(self, cart_id: int) -> List[model.Order]:
        return list(
            (
                await self.session.scalars(
                    select(model.Order)
                    .filter(orm.orders.c.cart_id == cart_id)
                    .filter(orm.orders.c.is_active.is_(True))
                )
            )
            .all()
        )
