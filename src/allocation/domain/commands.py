from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import List, Optional

from allocation.domain.model import RequirementItem


class Command:
    pass


@dataclass
class CreateBatch(Command):
    product_id: int
    quantity_produced: Decimal
    start_date: date
    end_date: date
    price_per_kg: Decimal


@dataclass
class UpdateBatch(Command):
    batch_id: int
    quantity_produced: Optional[Decimal] = None
    end_date: Optional[date] = None


@dataclass
class RemoveBatch(Command):
    batch_id: int


@dataclass
class CreateCart(Command):
    customer_id: int
    items: List[RequirementItem] = field(default_factory=list)


@dataclass
class PlaceOrder(Command):
    cart_unique_id: str
    max_date_required: date


@dataclass
class CreateOrderByAdmin(Command):
    customer_id: int
    items: List[RequirementItem]
    max_date_required: date
    customer_ref: Optional[str] = None


@dataclass
class ConfirmOrderByCustomer(Command):
    order_unique_id: str


@dataclass
class ConfirmOrderByAdmin(Command):
    order_unique_id: str


@dataclass
class MarkOrderDelivered(Command):
    order_unique_id: str


@dataclass
class CancelOrder(Command):
    order_unique_id: str
