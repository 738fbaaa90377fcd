from decimal import Decimal
from typing import Dict, Iterable

from allocation.domain.model import BatchSnapshot
from allocation.domain.requirements import QuantityRequirement


def shortfall(
        batches: Iterable[BatchSnapshot],
        requirement: QuantityRequirement,
) -> Dict[int, Decimal]:
    """ 배치를 실제로 건드리지 않고 부족한 수량을 계산한다 (dry-run).

    requirement 사본에서 배치별 남은 수량만큼 빼 나가고,
    끝까지 0보다 큰 상품만 돌려준다.
    """
    outstanding = dict(requirement)

    for batch in batches:
        required = outstanding.get(batch.product_id)
        if required is None or required <= 0:
            continue
        remaining = max(batch.remaining, Decimal(0))
        outstanding[batch.product_id] = required - min(remaining, required)

    return {
        product_id: quantity
        for product_id, quantity in outstanding.items()
        if quantity > 0
    }


def is_satisfiable(
        batches: Iterable[BatchSnapshot],
        requirement: QuantityRequirement,
) -> bool:
    return not shortfall(batches, requirement)
