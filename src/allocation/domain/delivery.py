from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, Iterable, Optional

from allocation.domain.model import (
    BatchSnapshot,
    MissingProductAvailability,
    SHIPPING_LEAD_TIME,
)
from allocation.domain.requirements import QuantityRequirement


@dataclass
class DeliveryAvailabilityEntry:
    quantity_available_in_time: Decimal = Decimal(0)
    quantity_available_later: Decimal = Decimal(0)
    min_date_required_for_delivery: Optional[date] = None

    @property
    def total(self) -> Decimal:
        return self.quantity_available_in_time + self.quantity_available_later


@dataclass
class DeliveryEstimate:
    earliest_delivery_date: date
    deadline: date
    per_product: Dict[int, DeliveryAvailabilityEntry] = field(default_factory=dict)

    @property
    def feasible(self) -> bool:
        return self.earliest_delivery_date <= self.deadline


def estimate(
        batches: Iterable[BatchSnapshot],
        requirement: QuantityRequirement,
        deadline: date,
        lead_time: timedelta = SHIPPING_LEAD_TIME,
) -> DeliveryEstimate:
    """Earliest date at which every required product can be delivered.

    ``batches`` must already be sorted by production end date. Each batch's
    remaining stock is counted as "in time" when it can ship by ``deadline``
    and as "later" otherwise. A product becomes deliverable on the candidate
    date of the batch that brings its cumulative stock up to the required
    quantity; the order as a whole waits for its slowest product.
    """
    entries: Dict[int, DeliveryAvailabilityEntry] = {}

    for batch in batches:
        entry = entries.setdefault(batch.product_id, DeliveryAvailabilityEntry())
        candidate = batch.end_date + lead_time
        remaining = max(batch.remaining, Decimal(0))

        if candidate <= deadline:
            entry.quantity_available_in_time += remaining
        else:
            entry.quantity_available_later += remaining

        required = requirement.get(batch.product_id)
        if not required or entry.total < required:
            continue

        if entry.min_date_required_for_delivery is None:
            entry.min_date_required_for_delivery = candidate
        else:
            entry.min_date_required_for_delivery = min(
                entry.min_date_required_for_delivery, candidate,
            )

    missing = sorted(
        product_id for product_id in requirement
        if product_id not in entries
        or entries[product_id].min_date_required_for_delivery is None
    )
    if missing:
        raise MissingProductAvailability(
            f"No delivery date available for products {missing}"
        )

    earliest = max(
        entries[product_id].min_date_required_for_delivery
        for product_id in requirement
    )
    return DeliveryEstimate(
        earliest_delivery_date=earliest,
        deadline=deadline,
        per_product={p: entries[p] for p in requirement},
    )
