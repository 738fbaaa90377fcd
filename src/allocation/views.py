from typing import Optional

from sqlalchemy import Boolean, Date, Integer, Numeric, String
from sqlalchemy.sql import text

from allocation.service_layer import unit_of_work


async def order_allocations(
        order_unique_id: str,
        uow: unit_of_work.SqlAlchemyUnitOfWork,
):
    async with uow:
        results = await uow.session.execute(
            text(
                """
                SELECT a.product_id, a.batch_id, b.batch_code,
                       a.quantity_allocated, b.end_date
                FROM order_batch_allocations AS a
                JOIN orders AS o ON a.order_id = o.id
                JOIN stock_batches AS b ON a.batch_id = b.id
                WHERE o.order_unique_id = :order_unique_id
                ORDER BY b.end_date, a.batch_id
                """
            ).columns(
                product_id=Integer,
                batch_id=Integer,
                batch_code=String,
                quantity_allocated=Numeric(12, 3),
                end_date=Date,
            ),
            dict(order_unique_id=order_unique_id),
        )

    return [dict(row) for row in results.mappings().all()]


async def order_details(
        order_unique_id: str,
        uow: unit_of_work.SqlAlchemyUnitOfWork,
) -> Optional[dict]:
    async with uow:
        result = await uow.session.execute(
            text(
                """
                SELECT order_unique_id, customer_id, confirmation_state,
                       max_date_required, delivery_date, is_created_by_admin
                FROM orders
                WHERE order_unique_id = :order_unique_id AND is_active
                """
            ).columns(
                max_date_required=Date,
                delivery_date=Date,
                is_created_by_admin=Boolean,
            ),
            dict(order_unique_id=order_unique_id),
        )
        row = result.mappings().one_or_none()

    if row is None:
        return None
    return dict(row)


async def active_batches(
        product_id: Optional[int],
        uow: unit_of_work.SqlAlchemyUnitOfWork,
):
    query = """
        SELECT id, batch_code, product_id, quantity_produced,
               quantity_allocated, start_date, end_date, price_per_kg
        FROM stock_batches
        WHERE is_active
    """
    params = {}
    if product_id is not None:
        query += " AND product_id = :product_id"
        params["product_id"] = product_id
    query += " ORDER BY end_date, id"

    async with uow:
        results = await uow.session.execute(
            text(query).columns(
                quantity_produced=Numeric(12, 3),
                quantity_allocated=Numeric(12, 3),
                start_date=Date,
                end_date=Date,
                price_per_kg=Numeric(10, 2),
            ),
            params,
        )

    return [dict(row) for row in results.mappings().all()]
