from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any, Protocol


logger = logging.getLogger(__name__)


class BrokerError(RuntimeError):
    pass


class Broker(Protocol):
    async def publish(self, routing_key: str, payload: dict[str, Any]) -> None: ...

    def consume(self, routing_key: str) -> AsyncIterator[dict[str, Any]]: ...

    async def close(self) -> None: ...


@dataclass(frozen=True)
class Event:
    type: str
    data: dict[str, Any]


class EventBus:
    """In-process broker: one bounded queue per routing key, competing consumers.

    Publishing never blocks; a full queue drops its oldest event.
    """

    def __init__(self, *, maxsize: int = 1000) -> None:
        self._lock = asyncio.Lock()
        self._maxsize = maxsize
        self._queues: dict[str, asyncio.Queue[Event]] = {}

    async def _queue(self, routing_key: str) -> asyncio.Queue[Event]:
        async with self._lock:
            queue = self._queues.get(routing_key)
            if queue is None:
                queue = asyncio.Queue(maxsize=self._maxsize)
                self._queues[routing_key] = queue
        return queue

    async def publish(self, routing_key: str, payload: dict[str, Any]) -> None:
        queue = await self._queue(routing_key)
        event = Event(type=routing_key, data=payload)
        try:
            queue.put_nowait(event)
        except asyncio.QueueFull:
            _ = queue.get_nowait()
            queue.put_nowait(event)
            logger.warning(
                "Dropped oldest event from full queue", extra={"routing_key": routing_key}
            )

    async def consume(self, routing_key: str) -> AsyncIterator[dict[str, Any]]:
        queue = await self._queue(routing_key)
        while True:
            event = await queue.get()
            yield event.data

    def drain(self, routing_key: str) -> list[dict[str, Any]]:
        queue = self._queues.get(routing_key)
        if queue is None:
            return []
        events: list[Event] = []
        while not queue.empty():
            events.append(queue.get_nowait())
        return [e.data for e in events]

    async def close(self) -> None:
        async with self._lock:
            self._queues.clear()
