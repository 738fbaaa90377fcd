from datetime import timedelta
from decimal import Decimal

import pytest

from allocation.domain import commands, events, model
from allocation.domain.model import ConfirmationState, RequirementItem
from allocation.service_layer import handlers, messagebus
from tests.unit.fakes import FakeUnitOfWork


today = model.today()
tomorrow = today + timedelta(days=1)
later = today + timedelta(days=10)


def make_batch(product_id, qty, end_date=today, **kwargs):
    return model.StockBatch(
        product_id=product_id,
        quantity_produced=Decimal(qty),
        start_date=end_date - timedelta(days=3),
        end_date=end_date,
        price_per_kg=Decimal("1.20"),
        **kwargs,
    )


def items(*pairs):
    return [RequirementItem(p, Decimal(q)) for p, q in pairs]


async def handle(command, uow):
    [result] = await messagebus.handle(command, uow)
    return result


async def place_from_cart(uow, pairs, max_date_required):
    cart_unique_id = await handle(commands.CreateCart(1, items(*pairs)), uow)
    return await handle(commands.PlaceOrder(cart_unique_id, max_date_required), uow)


class TestAddBatch:
    @pytest.mark.asyncio
    async def test_add_batch(self):
        uow = FakeUnitOfWork()

        batch_id = await handle(
            commands.CreateBatch(1, Decimal(100), tomorrow, later, Decimal("2.5")),
            uow,
        )

        batch = await uow.batches.get(batch_id)
        assert batch.remaining == 100
        assert batch.batch_code.startswith(f"1{tomorrow:%d%m}{later:%d%m}")
        assert uow.committed

    @pytest.mark.asyncio
    async def test_start_date_must_be_before_end_date(self):
        uow = FakeUnitOfWork()

        with pytest.raises(model.InvalidBatch):
            await handle(
                commands.CreateBatch(1, Decimal(10), later, later, Decimal(1)),
                uow,
            )

    @pytest.mark.asyncio
    async def test_quantity_must_be_positive(self):
        uow = FakeUnitOfWork()

        with pytest.raises(model.InvalidQuantity):
            await handle(
                commands.CreateBatch(1, Decimal(0), today, later, Decimal(1)),
                uow,
            )
        assert not uow.committed

    @pytest.mark.asyncio
    async def test_price_supports_two_decimal_places(self):
        uow = FakeUnitOfWork()

        with pytest.raises(model.InvalidBatch):
            await handle(
                commands.CreateBatch(1, Decimal(10), today, later, Decimal("1.234")),
                uow,
            )
        assert not uow.committed


class TestUpdateBatch:
    @pytest.mark.asyncio
    async def test_changes_available_quantity(self):
        uow = FakeUnitOfWork([make_batch(1, 100)])

        await handle(commands.UpdateBatch(1, Decimal(50)), uow)

        assert (await uow.batches.get(1)).remaining == 50

    @pytest.mark.asyncio
    async def test_cannot_drop_below_allocated_quantity(self):
        uow = FakeUnitOfWork([make_batch(1, 100)])
        await place_from_cart(uow, [(1, 40)], later)

        with pytest.raises(model.InvalidBatch):
            await handle(commands.UpdateBatch(1, Decimal(39)), uow)

    @pytest.mark.asyncio
    async def test_unknown_batch(self):
        uow = FakeUnitOfWork()

        with pytest.raises(handlers.BatchNotFound):
            await handle(commands.UpdateBatch(99, Decimal(5)), uow)

    @pytest.mark.asyncio
    async def test_moving_end_date_changes_delivery_estimate(self):
        uow = FakeUnitOfWork([make_batch(1, 100, end_date=later)])

        deadline = later + timedelta(days=1)
        result = await place_from_cart(uow, [(1, 10)], deadline)
        assert not result.accepted

        await handle(commands.UpdateBatch(1, end_date=later - timedelta(days=2)), uow)

        result = await place_from_cart(uow, [(1, 10)], deadline)
        assert result.accepted
        assert result.delivery_date == later

    @pytest.mark.asyncio
    async def test_end_date_must_follow_start_date(self):
        uow = FakeUnitOfWork([make_batch(1, 100, end_date=later)])
        start_date = (await uow.batches.get(1)).start_date

        with pytest.raises(model.InvalidBatch):
            await handle(commands.UpdateBatch(1, end_date=start_date), uow)
        assert (await uow.batches.get(1)).end_date == later

    @pytest.mark.asyncio
    async def test_requires_something_to_update(self):
        uow = FakeUnitOfWork([make_batch(1, 100)])

        with pytest.raises(model.InvalidBatch):
            await handle(commands.UpdateBatch(1), uow)

    @pytest.mark.asyncio
    async def test_quantity_beyond_storage_precision_is_rejected(self):
        uow = FakeUnitOfWork([make_batch(1, 100)])

        with pytest.raises(model.InvalidQuantity):
            await handle(commands.UpdateBatch(1, Decimal("50.0001")), uow)
        assert (await uow.batches.get(1)).remaining == 100


class TestRemoveBatch:
    @pytest.mark.asyncio
    async def test_unreferenced_batch_is_deleted(self):
        uow = FakeUnitOfWork([make_batch(1, 100)])

        outcome = await handle(commands.RemoveBatch(1), uow)

        assert outcome == "deleted"
        assert await uow.batches.get(1) is None

    @pytest.mark.asyncio
    async def test_referenced_batch_is_deactivated(self):
        uow = FakeUnitOfWork([make_batch(1, 100)])
        uow.batches.referenced.add(1)

        outcome = await handle(commands.RemoveBatch(1), uow)

        assert outcome == "deactivated"
        assert not (await uow.batches.get(1)).is_active
        assert await uow.batches.for_products([1]) == []


class TestCreateCart:
    @pytest.mark.asyncio
    async def test_returns_readable_unique_id(self):
        uow = FakeUnitOfWork()

        cart_unique_id = await handle(
            commands.CreateCart(7, items((3, 12), (4, 1))), uow,
        )

        assert cart_unique_id.startswith("C-")
        assert "-P3-Q12-" in cart_unique_id
        cart = await uow.carts.get(cart_unique_id)
        assert [i.product_id for i in cart.items] == [3, 4]

    @pytest.mark.asyncio
    async def test_requires_items(self):
        uow = FakeUnitOfWork()

        with pytest.raises(model.InvalidQuantity):
            await handle(commands.CreateCart(7, []), uow)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("quantity", ["1.2345", "0.0004", "1000000000"])
    async def test_rejects_quantities_outside_storage_precision(self, quantity):
        uow = FakeUnitOfWork()

        with pytest.raises(model.InvalidQuantity):
            await handle(commands.CreateCart(7, [RequirementItem(1, quantity)]), uow)
        assert not uow.committed


class TestPlaceOrder:
    @pytest.mark.asyncio
    async def test_feasible_order_is_allocated(self):
        uow = FakeUnitOfWork([make_batch(1, 100)])

        result = await place_from_cart(uow, [(1, 50)], later)

        assert result.accepted
        assert result.delivery_date == today + timedelta(days=2)
        assert result.confirmation_state == ConfirmationState.CONFIRMED_BY_CUSTOMER.value
        assert result.allocations == [model.Allocation(1, 1, Decimal(50))]
        assert (await uow.batches.get(1)).remaining == 50

    @pytest.mark.asyncio
    async def test_feasible_order_deactivates_the_cart(self):
        uow = FakeUnitOfWork([make_batch(1, 100)])
        cart_unique_id = await handle(commands.CreateCart(1, items((1, 5))), uow)

        await handle(commands.PlaceOrder(cart_unique_id, later), uow)

        assert await uow.carts.get(cart_unique_id) is None

    @pytest.mark.asyncio
    async def test_publishes_placement_and_allocation_events(self):
        uow = FakeUnitOfWork([make_batch(1, 100)])

        await place_from_cart(uow, [(1, 50)], later)

        assert [type(e) for e in uow.messages_published] == [
            events.OrderPlaced, events.StockAllocated,
        ]

    @pytest.mark.asyncio
    async def test_insufficient_stock_is_rejected_without_side_effects(self):
        uow = FakeUnitOfWork([make_batch(1, 100)])

        with pytest.raises(model.InsufficientStock):
            await place_from_cart(uow, [(1, 150)], later)

        assert (await uow.batches.get(1)).remaining == 100

    @pytest.mark.asyncio
    async def test_unknown_product_is_rejected(self):
        uow = FakeUnitOfWork([make_batch(1, 100)])

        with pytest.raises(model.MissingProductAvailability):
            await place_from_cart(uow, [(1, 10), (2, 10)], later)

    @pytest.mark.asyncio
    async def test_late_delivery_leaves_order_pending_and_unallocated(self):
        uow = FakeUnitOfWork([
            make_batch(1, 30, end_date=today),
            make_batch(1, 100, end_date=later),
        ])

        result = await place_from_cart(uow, [(1, 50)], tomorrow)

        assert not result.accepted
        assert result.confirmation_state == ConfirmationState.PENDING.value
        assert result.delivery_date == later + timedelta(days=2)
        assert result.allocations == []
        assert [b.remaining for b in await uow.batches.for_products([1])] == [30, 100]
        assert isinstance(uow.messages_published[-1], events.DeadlineInfeasible)

    @pytest.mark.asyncio
    async def test_waits_for_slowest_product(self):
        uow = FakeUnitOfWork([
            make_batch(1, 100, end_date=today),
            make_batch(2, 100, end_date=today + timedelta(days=4)),
        ])

        result = await place_from_cart(uow, [(1, 10), (2, 10)], later)

        assert result.delivery_date == today + timedelta(days=6)

    @pytest.mark.asyncio
    async def test_deadline_in_the_past_is_rejected(self):
        uow = FakeUnitOfWork([make_batch(1, 100)])

        with pytest.raises(handlers.InvalidDeadline):
            await place_from_cart(uow, [(1, 1)], today - timedelta(days=1))

    @pytest.mark.asyncio
    async def test_unknown_cart(self):
        uow = FakeUnitOfWork()

        with pytest.raises(handlers.CartNotFound):
            await handle(commands.PlaceOrder("C-NOPE", later), uow)

    @pytest.mark.asyncio
    async def test_fractional_quantity_is_allocated_exactly(self):
        uow = FakeUnitOfWork([make_batch(1, 10)])

        result = await place_from_cart(uow, [(1, "1.234")], later)

        [allocation] = result.allocations
        assert allocation.quantity == Decimal("1.234")
        assert (await uow.batches.get(1)).remaining == Decimal("8.766")

    @pytest.mark.asyncio
    async def test_deadline_of_today_is_accepted(self):
        uow = FakeUnitOfWork([make_batch(1, 100, end_date=today - timedelta(days=2))])

        result = await place_from_cart(uow, [(1, 1)], model.today())

        assert result.accepted

    @pytest.mark.asyncio
    async def test_replacing_a_pending_order_discards_the_previous_one(self):
        uow = FakeUnitOfWork([make_batch(1, 100, end_date=later)])
        cart_unique_id = await handle(commands.CreateCart(1, items((1, 5))), uow)

        first = await handle(commands.PlaceOrder(cart_unique_id, tomorrow), uow)
        second = await handle(commands.PlaceOrder(cart_unique_id, tomorrow), uow)

        assert not first.accepted and not second.accepted
        assert await uow.orders.get(first.order_unique_id) is None
        assert await uow.orders.get(second.order_unique_id) is not None


class TestCreateOrderByAdmin:
    @pytest.mark.asyncio
    async def test_feasible_admin_order_is_confirmed_by_admin(self):
        uow = FakeUnitOfWork([make_batch(1, 100)])

        result = await handle(
            commands.CreateOrderByAdmin(5, items((1, 20)), later, "ACME-42"),
            uow,
        )

        assert result.accepted
        assert result.confirmation_state == ConfirmationState.CONFIRMED_BY_ADMIN.value
        assert result.order_unique_id.startswith("O-")
        order = await uow.orders.get(result.order_unique_id)
        assert order.is_created_by_admin
        assert order.cart_id is None


class TestConfirmOrder:
    @pytest.mark.asyncio
    async def test_customer_confirmation_allocates_pending_order(self):
        uow = FakeUnitOfWork([make_batch(1, 100, end_date=later)])
        cart_unique_id = await handle(commands.CreateCart(1, items((1, 40))), uow)
        result = await handle(commands.PlaceOrder(cart_unique_id, tomorrow), uow)

        await handle(commands.ConfirmOrderByCustomer(result.order_unique_id), uow)

        order = await uow.orders.get(result.order_unique_id)
        assert order.confirmation_state is ConfirmationState.CONFIRMED_BY_CUSTOMER
        assert order.is_allocated
        assert (await uow.batches.get(1)).remaining == 60
        assert await uow.carts.get(cart_unique_id) is None

    @pytest.mark.asyncio
    async def test_customer_confirmation_rechecks_stock(self):
        uow = FakeUnitOfWork([make_batch(1, 100, end_date=later)])
        result = await place_from_cart(uow, [(1, 40)], tomorrow)
        await handle(commands.UpdateBatch(1, Decimal(30)), uow)

        with pytest.raises(model.InsufficientStock):
            await handle(commands.ConfirmOrderByCustomer(result.order_unique_id), uow)

    @pytest.mark.asyncio
    async def test_admin_confirms_customer_confirmed_order(self):
        uow = FakeUnitOfWork([make_batch(1, 100)])
        result = await place_from_cart(uow, [(1, 40)], later)

        await handle(commands.ConfirmOrderByAdmin(result.order_unique_id), uow)

        order = await uow.orders.get(result.order_unique_id)
        assert order.confirmation_state is ConfirmationState.CONFIRMED_BY_ADMIN
        assert (await uow.batches.get(1)).remaining == 60

    @pytest.mark.asyncio
    async def test_admin_cannot_confirm_order_awaiting_customer(self):
        uow = FakeUnitOfWork([make_batch(1, 100, end_date=later)])
        result = await place_from_cart(uow, [(1, 40)], tomorrow)

        with pytest.raises(model.InvalidStateTransition):
            await handle(commands.ConfirmOrderByAdmin(result.order_unique_id), uow)

    @pytest.mark.asyncio
    async def test_admin_confirmation_allocates_pending_admin_order(self):
        uow = FakeUnitOfWork([make_batch(1, 100, end_date=later)])
        result = await handle(
            commands.CreateOrderByAdmin(5, items((1, 20)), tomorrow), uow,
        )
        assert not result.accepted

        await handle(commands.ConfirmOrderByAdmin(result.order_unique_id), uow)

        assert (await uow.batches.get(1)).remaining == 80

    @pytest.mark.asyncio
    async def test_unknown_order(self):
        uow = FakeUnitOfWork()

        with pytest.raises(handlers.OrderNotFound):
            await handle(commands.ConfirmOrderByCustomer("O-NOPE"), uow)


class TestDeliverAndCancel:
    @pytest.mark.asyncio
    async def test_mark_delivered(self):
        uow = FakeUnitOfWork([make_batch(1, 100)])
        result = await place_from_cart(uow, [(1, 10)], later)
        await handle(commands.ConfirmOrderByAdmin(result.order_unique_id), uow)

        await handle(commands.MarkOrderDelivered(result.order_unique_id), uow)

        order = await uow.orders.get(result.order_unique_id)
        assert order.confirmation_state is ConfirmationState.DELIVERED

    @pytest.mark.asyncio
    async def test_cannot_deliver_unconfirmed_order(self):
        uow = FakeUnitOfWork([make_batch(1, 100)])
        result = await place_from_cart(uow, [(1, 10)], later)

        with pytest.raises(model.InvalidStateTransition):
            await handle(commands.MarkOrderDelivered(result.order_unique_id), uow)

    @pytest.mark.asyncio
    async def test_cancel_releases_stock(self):
        uow = FakeUnitOfWork([make_batch(1, 100)])
        result = await place_from_cart(uow, [(1, 70)], later)

        await handle(commands.CancelOrder(result.order_unique_id), uow)

        assert (await uow.batches.get(1)).remaining == 100
        order = await uow.orders.get(result.order_unique_id)
        assert order.confirmation_state is ConfirmationState.CANCELLED
        assert isinstance(uow.messages_published[-1], events.OrderCancelled)
