from typing import Callable, Dict, Iterable, List, Set, Tuple

from allocation.domain.model import BatchSnapshot, StockBatch


def by_end_date(snapshot: BatchSnapshot) -> Tuple:
    return snapshot.end_date, snapshot.id


class BatchPool:
    """Active batches for a set of products, in delivery order.

    The pool keeps the loaded ``StockBatch`` objects for write-back and hands
    immutable snapshots to the availability, delivery and allocation steps.
    ``order_key`` decides which batch is consumed first; it defaults to
    the earliest production end date, ties broken by batch id.
    """

    def __init__(
            self,
            batches: Iterable[StockBatch],
            order_key: Callable[[BatchSnapshot], Tuple] = by_end_date,
    ):
        self._batches: Dict[int, StockBatch] = {
            b.id: b for b in batches if b.is_active
        }
        self.order_key = order_key
        self._snapshots = sorted(
            (b.snapshot() for b in self._batches.values()),
            key=order_key,
        )

    def __len__(self):
        return len(self._snapshots)

    @property
    def snapshots(self) -> List[BatchSnapshot]:
        return list(self._snapshots)

    @property
    def batches(self) -> Dict[int, StockBatch]:
        return dict(self._batches)

    def products(self) -> Set[int]:
        return {s.product_id for s in self._snapshots}

    def missing_products(self, product_ids: Iterable[int]) -> List[int]:
        available = self.products()
        return sorted(p for p in product_ids if p not in available)
