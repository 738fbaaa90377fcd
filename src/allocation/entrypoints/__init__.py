from allocation.entrypoints.schemas import (
    AdminOrderRequest,
    BatchUpdateRequest,
    BatchRequest,
    CartRequest,
    ItemRequest,
    OrderRequest,
)

__all__ = [
    "AdminOrderRequest",
    "BatchUpdateRequest",
    "BatchRequest",
    "CartRequest",
    "ItemRequest",
    "OrderRequest",
]
