from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from typing import Any

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from app.settings import Settings
from broker.bus import BrokerError


logger = logging.getLogger(__name__)


def build_redis_kwargs(settings: Settings) -> dict[str, Any]:
    return {
        "decode_responses": True,
        "socket_connect_timeout": settings.redis_conn_timeout,
        "retry_on_timeout": settings.redis_retry_on_timeout,
        "health_check_interval": settings.redis_health_check_interval,
    }


class RedisBroker:
    """Broker backed by one Redis list per routing key.

    Messages are JSON envelopes ``{"data": payload}`` pushed with RPUSH and
    taken with BLPOP, so each message reaches at most one consumer.
    """

    def __init__(
        self,
        redis_client: aioredis.Redis,
        *,
        prefix: str,
        block_seconds: int = 5,
    ) -> None:
        self._redis = redis_client
        self._prefix = prefix
        self._block_seconds = block_seconds

    @classmethod
    def from_settings(cls, settings: Settings) -> RedisBroker:
        client = aioredis.Redis.from_url(settings.broker_url, **build_redis_kwargs(settings))
        return cls(
            client,
            prefix=settings.broker_queue_prefix,
            block_seconds=settings.broker_block_seconds,
        )

    def key(self, routing_key: str) -> str:
        return f"{self._prefix}:{routing_key}"

    async def publish(self, routing_key: str, payload: dict[str, Any]) -> None:
        body = json.dumps({"data": payload}, separators=(",", ":"), ensure_ascii=False)
        try:
            await self._redis.rpush(self.key(routing_key), body)
        except RedisError as e:
            raise BrokerError(f"publish to {routing_key} failed: {e}") from e

    async def consume(self, routing_key: str) -> AsyncIterator[dict[str, Any]]:
        key = self.key(routing_key)
        while True:
            try:
                item = await self._redis.blpop([key], timeout=self._block_seconds)
            except RedisError:
                logger.exception(
                    "Failed to read from broker queue", extra={"queue": key}
                )
                await asyncio.sleep(self._block_seconds)
                continue

            if item is None:
                continue

            _, raw = item
            try:
                message = json.loads(raw)
            except json.JSONDecodeError as e:
                logger.warning(
                    "Dropping invalid JSON from broker queue (poison message)",
                    extra={"queue": key, "error": str(e)},
                )
                continue

            data = message.get("data") if isinstance(message, dict) else None
            if not isinstance(data, dict):
                logger.warning(
                    "Dropping broker message without a data object",
                    extra={"queue": key},
                )
                continue

            yield data

    async def close(self) -> None:
        await self._redis.aclose()
