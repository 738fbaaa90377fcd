from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple, TYPE_CHECKING

from allocation.adapters import redis
from allocation.domain import (
    allocator,
    availability,
    commands,
    delivery,
    events,
    identifiers,
    model,
    requirements,
)
from allocation.domain.pool import BatchPool

if TYPE_CHECKING:
    from . import unit_of_work


logger = logging.getLogger(__name__)

ORDER_EVENTS_CHANNEL = "order_events"
PRICE_STEP = Decimal("0.01")


class InvalidDeadline(Exception):
    ...


class CartNotFound(Exception):
    ...


class EmptyCart(Exception):
    ...


class OrderNotFound(Exception):
    ...


class BatchNotFound(Exception):
    ...


@dataclass
class PlacementResult:
    order_unique_id: str
    accepted: bool
    delivery_date: Optional[date]
    confirmation_state: str
    allocations: List[model.Allocation] = field(default_factory=list)


def check_deadline(max_date_required: date, today: Optional[date] = None):
    today = today or model.today()
    if max_date_required < today:
        raise InvalidDeadline(
            "Please provide a date in the future for delivery date"
        )


async def load_pool(
        uow: unit_of_work.AbstractUnitOfWork,
        items: Iterable[model.RequirementItem],
) -> Tuple[BatchPool, requirements.QuantityRequirement]:
    requirement = requirements.build(items)
    pool = BatchPool(await uow.batches.for_products(requirement))

    missing = pool.missing_products(requirement)
    if missing:
        raise model.MissingProductAvailability(
            f"No active stock batches for products {missing}"
        )

    short = availability.shortfall(pool.snapshots, requirement)
    if short:
        raise model.InsufficientStock(
            "Required quantity is not yet available. Please try again later"
            f" (short: {short})"
        )
    return pool, requirement


def allocate_order(
        order: model.Order,
        pool: BatchPool,
        items: List[model.RequirementItem],
) -> allocator.AllocationPlan:
    plan = allocator.allocate(
        pool.snapshots,
        items,
        order_id=getattr(order, "id", None),
        batch_order=pool.order_key,
    )
    order.allocate(plan.allocations, plan.deltas, pool.batches)
    return plan


async def place(
        uow: unit_of_work.AbstractUnitOfWork,
        order: model.Order,
        items: List[model.RequirementItem],
) -> PlacementResult:
    pool, requirement = await load_pool(uow, items)
    estimate = delivery.estimate(
        pool.snapshots, requirement, order.max_date_required,
    )

    order.place(estimate.earliest_delivery_date, estimate.feasible)
    await uow.orders.add(order)

    plan = None
    if estimate.feasible:
        plan = allocate_order(order, pool, items)
        logger.info(
            "Order %s allocated across %d batches, delivery on %s",
            order.order_unique_id,
            len(plan.deltas),
            estimate.earliest_delivery_date,
        )
    else:
        logger.info(
            "Order %s cannot be delivered by %s (earliest %s), left pending",
            order.order_unique_id,
            order.max_date_required,
            estimate.earliest_delivery_date,
        )

    return PlacementResult(
        order_unique_id=order.order_unique_id,
        accepted=estimate.feasible,
        delivery_date=estimate.earliest_delivery_date,
        confirmation_state=order.confirmation_state.value,
        allocations=plan.allocations if plan else [],
    )


async def add_batch(
        command: commands.CreateBatch,
        uow: unit_of_work.AbstractUnitOfWork,
) -> int:
    quantity = requirements.to_quantity(command.quantity_produced)
    if command.start_date >= command.end_date:
        raise model.InvalidBatch("Start date must be before end date")
    if command.price_per_kg < 0:
        raise model.InvalidBatch("Price per kg cannot be negative")
    price = Decimal(str(command.price_per_kg))
    if price != price.quantize(PRICE_STEP):
        raise model.InvalidBatch("Price per kg supports at most 2 decimal places")

    async with uow:
        batch = model.StockBatch(
            product_id=command.product_id,
            quantity_produced=quantity,
            start_date=command.start_date,
            end_date=command.end_date,
            price_per_kg=command.price_per_kg,
            batch_code=identifiers.batch_code(
                command.product_id, command.start_date, command.end_date,
            ),
        )
        await uow.batches.add(batch)
        await uow.commit()

    logger.info("Created %r", batch)
    return batch.id


async def update_batch(
        command: commands.UpdateBatch,
        uow: unit_of_work.AbstractUnitOfWork,
):
    if command.quantity_produced is None and command.end_date is None:
        raise model.InvalidBatch("Nothing to update")
    quantity = None
    if command.quantity_produced is not None:
        quantity = requirements.to_quantity(command.quantity_produced)

    async with uow:
        batch = await uow.batches.get(command.batch_id)
        if batch is None or not batch.is_active:
            raise BatchNotFound(f"Stock batch {command.batch_id} not found")

        if quantity is not None:
            batch.change_quantity(quantity)
        if command.end_date is not None:
            batch.change_end_date(command.end_date)
        await uow.commit()

    logger.info("Updated %r", batch)


async def remove_batch(
        command: commands.RemoveBatch,
        uow: unit_of_work.AbstractUnitOfWork,
) -> str:
    async with uow:
        batch = await uow.batches.get(command.batch_id)
        if batch is None or not batch.is_active:
            raise BatchNotFound(f"Stock batch {command.batch_id} not found")

        if await uow.batches.is_referenced(batch.id):
            batch.deactivate()
            outcome = "deactivated"
        else:
            await uow.batches.delete(batch)
            outcome = "deleted"
        await uow.commit()

    logger.info("Stock batch %s %s", command.batch_id, outcome)
    return outcome


async def create_cart(
        command: commands.CreateCart,
        uow: unit_of_work.AbstractUnitOfWork,
) -> str:
    items = requirements.validate_items(command.items)
    first = items[0]

    async with uow:
        cart = model.Cart(
            cart_unique_id=identifiers.cart_unique_id(first.product_id, first.quantity),
            customer_id=command.customer_id,
            items=[model.CartItem(i.product_id, i.quantity) for i in items],
        )
        await uow.carts.add(cart)
        await uow.commit()

    return cart.cart_unique_id


async def place_order(
        command: commands.PlaceOrder,
        uow: unit_of_work.AbstractUnitOfWork,
) -> PlacementResult:
    check_deadline(command.max_date_required)

    async with uow:
        cart = await uow.carts.get(command.cart_unique_id)
        if cart is None:
            raise CartNotFound("Cart not found. Please try adding again")
        if not cart.items:
            raise EmptyCart(
                "No Items found in Cart. Please add atleast one item in Cart"
            )
        items = requirements.validate_items(i.as_requirement() for i in cart.items)

        for previous in await uow.orders.list_for_cart(cart.id):
            if previous.confirmation_state is model.ConfirmationState.PENDING:
                previous.discard()

        order = model.Order(
            order_unique_id=identifiers.order_unique_id(
                cart.cart_unique_id, command.max_date_required,
            ),
            customer_id=cart.customer_id,
            max_date_required=command.max_date_required,
            cart_id=cart.id,
            lines=[model.OrderLine(i.product_id, i.quantity) for i in items],
        )
        result = await place(uow, order, items)
        if result.accepted:
            cart.deactivate()
        await uow.commit()

    return result


async def create_order_by_admin(
        command: commands.CreateOrderByAdmin,
        uow: unit_of_work.AbstractUnitOfWork,
) -> PlacementResult:
    check_deadline(command.max_date_required)
    items = requirements.validate_items(command.items)

    async with uow:
        order = model.Order(
            order_unique_id=identifiers.order_unique_id(
                command.customer_ref or str(command.customer_id),
                command.max_date_required,
            ),
            customer_id=command.customer_id,
            max_date_required=command.max_date_required,
            is_created_by_admin=True,
            lines=[model.OrderLine(i.product_id, i.quantity) for i in items],
        )
        result = await place(uow, order, items)
        await uow.commit()

    return result


async def get_order(
        uow: unit_of_work.AbstractUnitOfWork,
        order_unique_id: str,
) -> model.Order:
    order = await uow.orders.get(order_unique_id)
    if order is None:
        raise OrderNotFound("Order not found or not active")
    return order


async def confirm_order_by_customer(
        command: commands.ConfirmOrderByCustomer,
        uow: unit_of_work.AbstractUnitOfWork,
):
    async with uow:
        order = await get_order(uow, command.order_unique_id)
        order.confirm_by_customer()

        items = order.requirement_items
        pool, _ = await load_pool(uow, items)
        allocate_order(order, pool, items)

        cart = await uow.carts.get_by_id(order.cart_id)
        if cart is not None:
            cart.deactivate()
        await uow.commit()


async def confirm_order_by_admin(
        command: commands.ConfirmOrderByAdmin,
        uow: unit_of_work.AbstractUnitOfWork,
):
    async with uow:
        order = await get_order(uow, command.order_unique_id)
        needs_allocation = not order.is_allocated
        order.confirm_by_admin()

        if needs_allocation:
            items = order.requirement_items
            pool, _ = await load_pool(uow, items)
            allocate_order(order, pool, items)
        await uow.commit()


async def mark_order_delivered(
        command: commands.MarkOrderDelivered,
        uow: unit_of_work.AbstractUnitOfWork,
):
    async with uow:
        order = await get_order(uow, command.order_unique_id)
        order.mark_delivered()
        await uow.commit()


async def cancel_order(
        command: commands.CancelOrder,
        uow: unit_of_work.AbstractUnitOfWork,
):
    async with uow:
        order = await get_order(uow, command.order_unique_id)
        batches = {}
        for allocation in order.allocations:
            batches[allocation.batch_id] = await uow.batches.get(allocation.batch_id)

        order.cancel(batches)
        await uow.commit()


async def publish_order_event(
        event: events.Event,
        uow: unit_of_work.AbstractUnitOfWork,
        channel: Optional[redis.AsyncRedis] = None,
):
    if channel is None:
        return
    await channel.publish(ORDER_EVENTS_CHANNEL, event)
