from dataclasses import dataclass
from datetime import date
from decimal import Decimal


class Event:
    pass


@dataclass
class OrderPlaced(Event):
    order_unique_id: str
    delivery_date: date
    confirmation_state: str


@dataclass
class DeadlineInfeasible(Event):
    order_unique_id: str
    delivery_date: date
    max_date_required: date


@dataclass
class StockAllocated(Event):
    order_unique_id: str
    product_id: int
    batch_id: int
    quantity: Decimal


@dataclass
class AllocationReleased(Event):
    order_unique_id: str
    product_id: int
    batch_id: int
    quantity: Decimal


@dataclass
class OrderConfirmed(Event):
    order_unique_id: str
    confirmation_state: str


@dataclass
class OrderDelivered(Event):
    order_unique_id: str


@dataclass
class OrderCancelled(Event):
    order_unique_id: str
