from dataclasses import dataclass, field
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from allocation.domain.model import Allocation, BatchSnapshot, RequirementItem
from allocation.domain.pool import by_end_date


@dataclass
class AllocationPlan:
    order_id: Optional[int]
    allocations: List[Allocation] = field(default_factory=list)
    deltas: Dict[int, Decimal] = field(default_factory=dict)

    def allocated_for(self, product_id: int) -> Decimal:
        return sum(
            (a.quantity for a in self.allocations if a.product_id == product_id),
            Decimal(0),
        )


def allocate(
        batches: Iterable[BatchSnapshot],
        items: Iterable[RequirementItem],
        order_id: Optional[int] = None,
        batch_order: Callable[[BatchSnapshot], Tuple] = by_end_date,
) -> AllocationPlan:
    """Greedily assign each item to batches of its product, earliest first.

    ``items`` are served in the order given, so an earlier item wins when two
    items compete for the same batch. ``batch_order`` sorts the batches.
    Nothing passed in is mutated: remaining stock is tracked locally and the
    result is returned as allocation lines plus a ``batch_id -> delta`` map
    for the caller to apply in one go.
    """
    ordered = sorted(batches, key=batch_order)
    remaining = {b.id: max(b.remaining, Decimal(0)) for b in ordered}
    taken: Dict[Tuple[int, int], Decimal] = {}

    for item in items:
        outstanding = item.quantity

        for batch in ordered:
            if batch.product_id != item.product_id:
                continue
            if outstanding <= 0:
                break

            take = min(remaining[batch.id], outstanding)
            if take <= 0:
                continue

            remaining[batch.id] -= take
            outstanding -= take
            key = (item.product_id, batch.id)
            taken[key] = taken.get(key, Decimal(0)) + take

    plan = AllocationPlan(order_id=order_id)
    for (product_id, batch_id), quantity in taken.items():
        plan.allocations.append(Allocation(product_id, batch_id, quantity))
        plan.deltas[batch_id] = plan.deltas.get(batch_id, Decimal(0)) + quantity
    return plan
