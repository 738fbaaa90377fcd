from collections import deque

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    Enum,
    event,
    ForeignKey,
    inspect,
    Integer,
    Numeric,
    String,
    Table,
)
from sqlalchemy.orm import registry, relationship

from allocation.domain import model


mapper_registry = registry()
metadata = mapper_registry.metadata

stock_batches = Table(
    "stock_batches",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("batch_code", String(64)),
    Column("product_id", Integer, nullable=False, index=True),
    Column("quantity_produced", Numeric(12, 3), nullable=False),
    Column("quantity_allocated", Numeric(12, 3), nullable=False, default=0),
    Column("start_date", Date, nullable=False),
    Column("end_date", Date, nullable=False, index=True),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("price_per_kg", Numeric(10, 2), nullable=False),
    Column("version_number", Integer, nullable=False),
)

carts = Table(
    "carts",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("cart_unique_id", String(64), unique=True, nullable=False),
    Column("customer_id", Integer, nullable=False),
    Column("is_active", Boolean, nullable=False, default=True),
)

cart_items = Table(
    "cart_items",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("cart_id", ForeignKey("carts.id", ondelete="CASCADE")),
    Column("product_id", Integer, nullable=False),
    Column("quantity", Numeric(12, 3), nullable=False),
)

orders = Table(
    "orders",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("order_unique_id", String(64), unique=True, nullable=False),
    Column("customer_id", Integer, nullable=False),
    Column("max_date_required", Date, nullable=False),
    Column("delivery_date", Date, nullable=True),
    Column(
        "confirmation_state",
        Enum(
            model.ConfirmationState,
            native_enum=False,
            values_callable=lambda states: [s.value for s in states],
        ),
        nullable=False,
    ),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("is_created_by_admin", Boolean, nullable=False, default=False),
    Column("cart_id", ForeignKey("carts.id"), nullable=True),
)

order_lines = Table(
    "order_lines",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("order_id", ForeignKey("orders.id", ondelete="CASCADE")),
    Column("product_id", Integer, nullable=False),
    Column("quantity", Numeric(12, 3), nullable=False),
)

order_batch_allocations = Table(
    "order_batch_allocations",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("order_id", ForeignKey("orders.id", ondelete="CASCADE")),
    Column("product_id", Integer, nullable=False),
    Column("batch_id", ForeignKey("stock_batches.id")),
    Column("quantity_allocated", Numeric(12, 3), nullable=False),
)


def start_mappers():
    if inspect(model.Order, raiseerr=False) is not None:
        return

    allocations_mapper = mapper_registry.map_imperatively(
        model.OrderBatchAllocation,
        order_batch_allocations,
    )
    # 낙관적 잠금: UPDATE ... WHERE version_number = :seen
    mapper_registry.map_imperatively(
        model.StockBatch,
        stock_batches,
        version_id_col=stock_batches.c.version_number,
    )
    lines_mapper = mapper_registry.map_imperatively(
        model.OrderLine,
        order_lines,
    )
    cart_items_mapper = mapper_registry.map_imperatively(
        model.CartItem,
        cart_items,
    )
    mapper_registry.map_imperatively(
        model.Cart,
        carts,
        properties={
            "items": relationship(
                cart_items_mapper,
                cascade="all, delete-orphan",
                lazy="selectin",
            ),
        },
    )
    mapper_registry.map_imperatively(
        model.Order,
        orders,
        properties={
            "lines": relationship(
                lines_mapper,
                cascade="all, delete-orphan",
                lazy="selectin",
            ),
            "allocations": relationship(
                allocations_mapper,
                cascade="all, delete-orphan",
                lazy="selectin",
            ),
        },
    )
    event.listen(model.Order, "load", receive_load)


def receive_load(order, _):
    order.messages = deque()

