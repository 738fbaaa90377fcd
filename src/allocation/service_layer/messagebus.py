from __future__ import annotations

import logging
from typing import (
    Callable,
    Dict,
    List,
    Optional,
    TYPE_CHECKING,
    Type,
    Union,
)

from allocation.adapters import redis
from allocation.domain import commands, events
from allocation.service_layer import handlers, unit_of_work

if TYPE_CHECKING:
    from .unit_of_work import AbstractUnitOfWork


logger = logging.getLogger(__name__)
Message = Union[commands.Command, events.Event]

DEFAULT_MAX_RETRIES = 3


class MessageBus:
    EVENT_HANDLERS = {
        events.OrderPlaced: [handlers.publish_order_event],
        events.DeadlineInfeasible: [handlers.publish_order_event],
        events.StockAllocated: [handlers.publish_order_event],
        events.AllocationReleased: [handlers.publish_order_event],
        events.OrderConfirmed: [handlers.publish_order_event],
        events.OrderDelivered: [handlers.publish_order_event],
        events.OrderCancelled: [handlers.publish_order_event],
    }   # type: Dict[Type[events.Event], List[Callable]]
    COMMAND_HANDLERS = {
        commands.CreateBatch: handlers.add_batch,
        commands.UpdateBatch: handlers.update_batch,
        commands.RemoveBatch: handlers.remove_batch,
        commands.CreateCart: handlers.create_cart,
        commands.PlaceOrder: handlers.place_order,
        commands.CreateOrderByAdmin: handlers.create_order_by_admin,
        commands.ConfirmOrderByCustomer: handlers.confirm_order_by_customer,
        commands.ConfirmOrderByAdmin: handlers.confirm_order_by_admin,
        commands.MarkOrderDelivered: handlers.mark_order_delivered,
        commands.CancelOrder: handlers.cancel_order,
    }   # type: Dict[Type[commands.Command], Callable]


async def handle(
        message: Message,
        uow: AbstractUnitOfWork,
        channel: Optional[redis.AsyncRedis] = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
):
    results = []
    queue: List[Message] = [message]
    while queue:
        message = queue.pop(0)

        if isinstance(message, events.Event):
            await handle_event(message, queue, uow, channel)
        elif isinstance(message, commands.Command):
            result = await handle_command(message, queue, uow, max_retries)
            results.append(result)
        else:
            raise Exception(f'{message} was not a Command or Event')

    return results


async def handle_command(
        command: commands.Command,
        queue: List[Message],
        uow: AbstractUnitOfWork,
        max_retries: int = DEFAULT_MAX_RETRIES,
):
    logger.debug(f'Handling command {command}')
    handler = MessageBus.COMMAND_HANDLERS[type(command)]

    attempt = 1
    while True:
        try:
            result = await handler(command, uow)
            queue.extend(uow.collect_new_events())
            return result
        except unit_of_work.ConcurrentUpdate:
            if attempt >= max_retries:
                logger.exception(f'Giving up on {command} after {attempt} attempts')
                raise
            logger.warning(f'Concurrent update while handling {command}, retry {attempt}')
            attempt += 1
        except Exception as ex:
            logger.exception(f'Exception handling {command}... detail: {ex}')
            raise


async def handle_event(
        event: events.Event,
        queue: List[Message],
        uow: AbstractUnitOfWork,
        channel: Optional[redis.AsyncRedis],
):
    for handler in MessageBus.EVENT_HANDLERS[type(event)]:
        try:
            logger.debug(f'Handling event {event} with {handler}')
            await handler(event, uow, channel)
            queue.extend(uow.collect_new_events())
        except Exception as ex:
            logger.exception(f'Exception handling {event}... detail: {ex}')
            continue
