import inspect
import logging
from dataclasses import asdict
from typing import Optional

from dependency_injector.wiring import inject, Provide
from fastapi import Depends, FastAPI, HTTPException, status

from allocation import views
from allocation.adapters import orm, redis
from allocation.config import Settings
from allocation.container import Container
from allocation.domain import commands, model
from allocation.entrypoints import (
    AdminOrderRequest,
    BatchUpdateRequest,
    BatchRequest,
    CartRequest,
    OrderRequest,
)
from allocation.service_layer import handlers, messagebus, unit_of_work


settings = Settings()
logging.basicConfig(level=logging.DEBUG if settings.DEBUG else logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.desc.REST_SERVICE_NAME,
    description=settings.desc.REST_SERVICE_DESCRIPTION,
    version=settings.desc.REST_SERVICE_VERSION,
    openapi_url=settings.desc.OPENAPI_URL,
)

container = Container()
db = container.db()

app.container = container

BAD_REQUEST_ERRORS = (
    model.InsufficientStock,
    model.InvalidQuantity,
    model.InvalidBatch,
    model.InvalidStateTransition,
    handlers.InvalidDeadline,
    handlers.CartNotFound,
    handlers.EmptyCart,
    handlers.OrderNotFound,
    handlers.BatchNotFound,
    unit_of_work.ConcurrentUpdate,
)


@app.on_event("startup")
async def on_startup():
    orm.start_mappers()
    await db.connect(echo=settings.DEBUG)
    await db.create_database()
    db.init_session_factory()


@app.on_event("shutdown")
async def on_shutdown():
    shutdown = container.shutdown_resources()
    if inspect.isawaitable(shutdown):
        await shutdown
    await db.disconnect()


async def dispatch(
        message: commands.Command,
        channel: Optional[redis.AsyncRedis] = None,
):
    try:
        results = await messagebus.handle(
            message,
            uow=container.allocation_uow(),
            channel=channel,
            max_retries=container.config.allocation.MAX_COMMIT_RETRIES(),
        )
    except BAD_REQUEST_ERRORS as e:
        raise HTTPException(
            detail=str(e),
            status_code=status.HTTP_400_BAD_REQUEST,
        ) from e

    return results.pop(0)


@app.post(
    "/batches",
    status_code=status.HTTP_201_CREATED,
)
async def add_batch_endpoint(batch: BatchRequest):
    batch_id = await dispatch(
        commands.CreateBatch(
            product_id=batch.product_id,
            quantity_produced=batch.quantity_produced,
            start_date=batch.start_date,
            end_date=batch.end_date,
            price_per_kg=batch.price_per_kg,
        )
    )
    return {'message': 'Stock batch created successfully', 'id': batch_id}


@app.patch(
    "/batches/{batch_id}",
    status_code=status.HTTP_200_OK,
)
async def update_batch_endpoint(
        batch_id: int,
        payload: BatchUpdateRequest,
):
    await dispatch(
        commands.UpdateBatch(
            batch_id,
            quantity_produced=payload.quantity_produced,
            end_date=payload.end_date,
        )
    )
    return {'message': 'Stock batch updated successfully', 'id': batch_id}


@app.delete(
    "/batches/{batch_id}",
    status_code=status.HTTP_200_OK,
)
async def remove_batch_endpoint(batch_id: int):
    outcome = await dispatch(commands.RemoveBatch(batch_id))
    return {'message': f'Stock batch {outcome}', 'id': batch_id}


@app.get("/batches")
async def active_batches_endpoint(product_id: Optional[int] = None):
    uow = container.allocation_uow()
    return await views.active_batches(product_id, uow)


@app.post(
    "/carts",
    status_code=status.HTTP_201_CREATED,
)
async def create_cart_endpoint(cart: CartRequest):
    cart_unique_id = await dispatch(
        commands.CreateCart(
            customer_id=cart.customer_id,
            items=[item.to_requirement() for item in cart.items],
        )
    )
    return {'cart_unique_id': cart_unique_id}


@app.post(
    "/orders",
    status_code=status.HTTP_201_CREATED,
)
@inject
async def place_order_endpoint(
        order: OrderRequest,
        channel: redis.AsyncRedis = Depends(Provide[Container.redis]),
):
    result = await dispatch(
        commands.PlaceOrder(
            cart_unique_id=order.cart_unique_id,
            max_date_required=order.max_date_required,
        ),
        channel,
    )
    return asdict(result)


@app.post(
    "/admin/orders",
    status_code=status.HTTP_201_CREATED,
)
@inject
async def create_order_by_admin_endpoint(
        order: AdminOrderRequest,
        channel: redis.AsyncRedis = Depends(Provide[Container.redis]),
):
    result = await dispatch(
        commands.CreateOrderByAdmin(
            customer_id=order.customer_id,
            items=[item.to_requirement() for item in order.items],
            max_date_required=order.max_date_required,
            customer_ref=order.customer_ref,
        ),
        channel,
    )
    return asdict(result)


@app.post("/orders/{order_unique_id}/confirm")
@inject
async def confirm_order_by_customer_endpoint(
        order_unique_id: str,
        channel: redis.AsyncRedis = Depends(Provide[Container.redis]),
):
    await dispatch(commands.ConfirmOrderByCustomer(order_unique_id), channel)
    return {'message': 'Order Confirmed Successfully'}


@app.post("/admin/orders/{order_unique_id}/confirm")
@inject
async def confirm_order_by_admin_endpoint(
        order_unique_id: str,
        channel: redis.AsyncRedis = Depends(Provide[Container.redis]),
):
    await dispatch(commands.ConfirmOrderByAdmin(order_unique_id), channel)
    return {'message': 'Order Confirmed Successfully by Admin'}


@app.post("/admin/orders/{order_unique_id}/deliver")
@inject
async def mark_order_delivered_endpoint(
        order_unique_id: str,
        channel: redis.AsyncRedis = Depends(Provide[Container.redis]),
):
    await dispatch(commands.MarkOrderDelivered(order_unique_id), channel)
    return {'message': 'Order marked as delivered'}


@app.post("/admin/orders/{order_unique_id}/cancel")
@inject
async def cancel_order_endpoint(
        order_unique_id: str,
        channel: redis.AsyncRedis = Depends(Provide[Container.redis]),
):
    await dispatch(commands.CancelOrder(order_unique_id), channel)
    return {'message': 'Order Cancelled Successfully by Admin'}


@app.get("/orders/{order_unique_id}")
async def order_details_endpoint(order_unique_id: str):
    uow = container.allocation_uow()
    result = await views.order_details(order_unique_id, uow)
    if result is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
        )
    return result


@app.get("/orders/{order_unique_id}/allocations")
async def order_allocations_endpoint(order_unique_id: str):
    uow = container.allocation_uow()
    result = await views.order_allocations(order_unique_id, uow)
    if not result and await views.order_details(order_unique_id, uow) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
        )
    return result


container.wire(modules=[__name__])
