from decimal import Decimal, InvalidOperation
from typing import Dict, Iterable, List

from allocation.domain.model import InvalidQuantity, RequirementItem


QuantityRequirement = Dict[int, Decimal]


# Numeric(12, 3) 컬럼과 같은 범위
QUANTITY_STEP = Decimal("0.001")
MAX_QUANTITY = Decimal("999999999.999")


def to_quantity(value) -> Decimal:
    try:
        quantity = Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise InvalidQuantity(f"Invalid quantity {value!r}") from e

    if not quantity.is_finite() or quantity <= 0:
        raise InvalidQuantity(f"Quantity must be a positive number, got {value!r}")
    if quantity > MAX_QUANTITY:
        raise InvalidQuantity(f"Quantity must not exceed {MAX_QUANTITY}, got {value!r}")
    if quantity != quantity.quantize(QUANTITY_STEP):
        raise InvalidQuantity(
            f"Quantity supports at most 3 decimal places, got {value!r}"
        )
    return quantity


def validate_items(items: Iterable[RequirementItem]) -> List[RequirementItem]:
    validated = [
        RequirementItem(item.product_id, to_quantity(item.quantity))
        for item in items
    ]
    if not validated:
        raise InvalidQuantity("At least one product item is required")
    return validated


def build(items: Iterable[RequirementItem]) -> QuantityRequirement:
    """ 주문 항목들을 상품별 필요 수량으로 합친다.

    같은 상품이 여러 번 나오면 덮어쓰지 않고 더한다.
    수량 검증은 호출하는 쪽(validate_items)의 몫이다.
    """
    requirement: QuantityRequirement = {}
    for item in items:
        requirement[item.product_id] = (
            requirement.get(item.product_id, Decimal(0)) + item.quantity
        )
    return requirement
