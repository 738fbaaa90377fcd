from datetime import date
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from allocation.domain.model import RequirementItem


class BatchRequest(BaseModel):
    product_id: int
    quantity_produced: Decimal = Field(gt=0, max_digits=12, decimal_places=3)
    start_date: date
    end_date: date
    price_per_kg: Decimal = Field(ge=0, max_digits=10, decimal_places=2)


class BatchUpdateRequest(BaseModel):
    quantity_produced: Optional[Decimal] = Field(
        default=None, gt=0, max_digits=12, decimal_places=3,
    )
    end_date: Optional[date] = None


class ItemRequest(BaseModel):
    product_id: int
    quantity: Decimal = Field(gt=0, max_digits=12, decimal_places=3)

    def to_requirement(self) -> RequirementItem:
        return RequirementItem(self.product_id, self.quantity)


class CartRequest(BaseModel):
    customer_id: int
    items: List[ItemRequest] = Field(min_length=1)


class OrderRequest(BaseModel):
    cart_unique_id: str
    max_date_required: date


class AdminOrderRequest(BaseModel):
    customer_id: int
    items: List[ItemRequest] = Field(min_length=1)
    max_date_required: date
    customer_ref: Optional[str] = None
