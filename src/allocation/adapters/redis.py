import json
import logging
from dataclasses import asdict
from typing import Union

import redis.asyncio as redis
from pydantic import RedisDsn

from allocation.domain import events


logger = logging.getLogger(__name__)


async def init_redis_pool(redis_uri: Union[RedisDsn, str]):
    session = redis.from_url(
        str(redis_uri),
        encoding="utf-8",
        decode_responses=True,
    )
    yield session
    await session.aclose()


class AsyncRedis:
    def __init__(
            self,
            session: redis.Redis,
    ):
        self._session = session

    async def publish(
            self,
            channel: str,
            event: events.Event,
    ):
        payload = {"type": type(event).__name__, **asdict(event)}
        logger.debug("publishing %s to %s", payload, channel)
        await self._session.publish(channel, json.dumps(payload, default=str))
