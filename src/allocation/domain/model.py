from __future__ import annotations

import enum
from collections import deque
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from allocation.domain import events


SHIPPING_LEAD_TIME = timedelta(days=2)


def today() -> date:
    return datetime.now(timezone.utc).date()


class InsufficientStock(Exception):
    pass


class MissingProductAvailability(InsufficientStock):
    pass


class InvalidQuantity(Exception):
    pass


class InvalidBatch(Exception):
    pass


class InvalidStateTransition(Exception):
    pass


class ConfirmationState(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED_BY_CUSTOMER = "confirmed_by_customer"
    CONFIRMED_BY_ADMIN = "confirmed_by_admin"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


TRANSITIONS = {
    ConfirmationState.PENDING: {
        ConfirmationState.CONFIRMED_BY_CUSTOMER,
        ConfirmationState.CONFIRMED_BY_ADMIN,
        ConfirmationState.CANCELLED,
    },
    ConfirmationState.CONFIRMED_BY_CUSTOMER: {
        ConfirmationState.CONFIRMED_BY_ADMIN,
        ConfirmationState.CANCELLED,
    },
    ConfirmationState.CONFIRMED_BY_ADMIN: {
        ConfirmationState.DELIVERED,
        ConfirmationState.CANCELLED,
    },
    ConfirmationState.DELIVERED: set(),
    ConfirmationState.CANCELLED: set(),
}


@dataclass(frozen=True)
class RequirementItem:
    product_id: int
    quantity: Decimal


@dataclass(frozen=True)
class BatchSnapshot:
    """ 할당 계산에 쓰이는 배치의 읽기 전용 사본. """
    id: int
    product_id: int
    remaining: Decimal
    end_date: date


@dataclass(frozen=True)
class Allocation:
    product_id: int
    batch_id: int
    quantity: Decimal


@dataclass(eq=False)
class OrderBatchAllocation:
    product_id: int
    batch_id: int
    quantity_allocated: Decimal
    order_id: Optional[int] = None

    def __repr__(self):
        return (
            f"<OrderBatchAllocation order={self.order_id} "
            f"product={self.product_id} batch={self.batch_id} "
            f"qty={self.quantity_allocated}>"
        )


class StockBatch:
    def __init__(
            self,
            product_id: int,
            quantity_produced: Decimal,
            start_date: date,
            end_date: date,
            price_per_kg: Decimal,
            batch_code: Optional[str] = None,
            quantity_allocated: Decimal = Decimal(0),
            is_active: bool = True,
            id: Optional[int] = None,
    ):
        self.id = id
        self.batch_code = batch_code
        self.product_id = product_id
        self.quantity_produced = Decimal(quantity_produced)
        self.quantity_allocated = Decimal(quantity_allocated)
        self.start_date = start_date
        self.end_date = end_date
        self.price_per_kg = Decimal(price_per_kg)
        self.is_active = is_active

    def __repr__(self):
        return f"<StockBatch {self.id} product={self.product_id} end={self.end_date}>"

    @property
    def remaining(self) -> Decimal:
        return self.quantity_produced - self.quantity_allocated

    def snapshot(self) -> BatchSnapshot:
        return BatchSnapshot(
            id=self.id,
            product_id=self.product_id,
            remaining=self.remaining,
            end_date=self.end_date,
        )

    def allocate(self, quantity: Decimal):
        if quantity > self.remaining:
            raise InsufficientStock(
                f"Batch {self.id} has {self.remaining} left, cannot allocate {quantity}"
            )
        self.quantity_allocated += quantity

    def release(self, quantity: Decimal):
        self.quantity_allocated = max(Decimal(0), self.quantity_allocated - quantity)

    def change_quantity(self, quantity_produced: Decimal):
        if quantity_produced <= 0:
            raise InvalidBatch("Quantity produced must be greater than 0")
        if quantity_produced < self.quantity_allocated:
            raise InvalidBatch(
                "Allocated quantity must be less than or equal to produced quantity"
            )
        self.quantity_produced = Decimal(quantity_produced)

    def change_end_date(self, end_date: date):
        if end_date <= self.start_date:
            raise InvalidBatch("End date must be after start date")
        self.end_date = end_date

    def deactivate(self):
        self.is_active = False


@dataclass(eq=False)
class OrderLine:
    product_id: int
    quantity: Decimal
    order_id: Optional[int] = None

    def as_requirement(self) -> RequirementItem:
        return RequirementItem(self.product_id, Decimal(self.quantity))


@dataclass(eq=False)
class CartItem:
    product_id: int
    quantity: Decimal
    cart_id: Optional[int] = None

    def as_requirement(self) -> RequirementItem:
        return RequirementItem(self.product_id, Decimal(self.quantity))


class Cart:
    def __init__(
            self,
            cart_unique_id: str,
            customer_id: int,
            items: List[CartItem],
            is_active: bool = True,
    ):
        self.cart_unique_id = cart_unique_id
        self.customer_id = customer_id
        self.items = items
        self.is_active = is_active

    def __repr__(self):
        return f"<Cart {self.cart_unique_id}>"

    def deactivate(self):
        self.is_active = False


class Order:
    def __init__(
            self,
            order_unique_id: str,
            customer_id: int,
            max_date_required: date,
            cart_id: Optional[int] = None,
            is_created_by_admin: bool = False,
            delivery_date: Optional[date] = None,
            confirmation_state: ConfirmationState = ConfirmationState.PENDING,
            is_active: bool = True,
            lines: Optional[List[OrderLine]] = None,
            allocations: Optional[List[OrderBatchAllocation]] = None,
    ):
        self.order_unique_id = order_unique_id
        self.customer_id = customer_id
        self.max_date_required = max_date_required
        self.cart_id = cart_id
        self.is_created_by_admin = is_created_by_admin
        self.delivery_date = delivery_date
        self.confirmation_state = confirmation_state
        self.is_active = is_active
        self.lines = lines if lines is not None else []
        self.allocations = allocations if allocations is not None else []
        self.messages = deque()     # type: deque[events.Event]

    def __repr__(self):
        return f"<Order {self.order_unique_id} {self.confirmation_state.value}>"

    @property
    def is_allocated(self) -> bool:
        return bool(self.allocations)

    @property
    def requirement_items(self) -> List[RequirementItem]:
        return [line.as_requirement() for line in self.lines]

    def place(self, delivery_date: date, feasible: bool):
        self.delivery_date = delivery_date

        if not feasible:
            self.confirmation_state = ConfirmationState.PENDING
            self.messages.append(
                events.DeadlineInfeasible(
                    order_unique_id=self.order_unique_id,
                    delivery_date=delivery_date,
                    max_date_required=self.max_date_required,
                )
            )
            return

        self.confirmation_state = (
            ConfirmationState.CONFIRMED_BY_ADMIN
            if self.is_created_by_admin
            else ConfirmationState.CONFIRMED_BY_CUSTOMER
        )
        self.messages.append(
            events.OrderPlaced(
                order_unique_id=self.order_unique_id,
                delivery_date=delivery_date,
                confirmation_state=self.confirmation_state.value,
            )
        )

    def allocate(
            self,
            allocations: Iterable[Allocation],
            deltas: Dict[int, Decimal],
            batches: Dict[int, StockBatch],
    ):
        for batch_id, delta in deltas.items():
            batches[batch_id].allocate(delta)

        for allocation in allocations:
            self.allocations.append(
                OrderBatchAllocation(
                    product_id=allocation.product_id,
                    batch_id=allocation.batch_id,
                    quantity_allocated=allocation.quantity,
                    order_id=getattr(self, "id", None),
                )
            )
            self.messages.append(
                events.StockAllocated(
                    order_unique_id=self.order_unique_id,
                    product_id=allocation.product_id,
                    batch_id=allocation.batch_id,
                    quantity=allocation.quantity,
                )
            )

    def confirm_by_customer(self):
        if self.cart_id is None:
            raise InvalidStateTransition(
                f"Order {self.order_unique_id} was created by admin"
                " and cannot be confirmed by customer"
            )
        self._move_to(ConfirmationState.CONFIRMED_BY_CUSTOMER)
        self._confirmed()

    def confirm_by_admin(self):
        if (
                self.confirmation_state is ConfirmationState.PENDING
                and not self.is_created_by_admin
        ):
            raise InvalidStateTransition(
                f"Order {self.order_unique_id} is awaiting customer confirmation"
            )
        self._move_to(ConfirmationState.CONFIRMED_BY_ADMIN)
        self._confirmed()

    def mark_delivered(self):
        self._move_to(ConfirmationState.DELIVERED)
        self.messages.append(events.OrderDelivered(self.order_unique_id))

    def cancel(self, batches: Dict[int, StockBatch]):
        self._move_to(ConfirmationState.CANCELLED)

        while self.allocations:
            allocation = self.allocations.pop()
            batch = batches.get(allocation.batch_id)
            if batch is not None:
                batch.release(allocation.quantity_allocated)
            self.messages.append(
                events.AllocationReleased(
                    order_unique_id=self.order_unique_id,
                    product_id=allocation.product_id,
                    batch_id=allocation.batch_id,
                    quantity=allocation.quantity_allocated,
                )
            )
        self.messages.append(events.OrderCancelled(self.order_unique_id))

    def discard(self):
        self.is_active = False

    def _move_to(self, state: ConfirmationState):
        if state not in TRANSITIONS[self.confirmation_state]:
            raise InvalidStateTransition(
                f"Order {self.order_unique_id} cannot move from"
                f" {self.confirmation_state.value} to {state.value}"
            )
        self.confirmation_state = state

    def _confirmed(self):
        self.messages.append(
            events.OrderConfirmed(
                order_unique_id=self.order_unique_id,
                confirmation_state=self.confirmation_state.value,
            )
        )
