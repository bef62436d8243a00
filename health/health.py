from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from broker.bus import Broker
from dispatch.events import RoutingKey
from store.db import Database
from store.feeds import (
    CONNECTION_GROUPS,
    ConnectionDisabledCode,
    FeedDisabledCode,
    FeedHealthStatus,
    disable_feeds_by_url,
    get_feed,
    set_connection_disabled_code,
)


logger = logging.getLogger(__name__)

Handler = Callable[[dict[str, Any]], Awaitable[None]]


class FeedbackConsumer:
    """Applies downstream failure signals to feed and connection health.

    Both handlers are idempotent: replaying an event leaves the same state.
    """

    def __init__(self, db: Database) -> None:
        self._db = db

    async def handle_url_fetch_failed(self, data: dict[str, Any]) -> None:
        url = str(data["url"])
        logger.debug("Handling url request failure event", extra={"url": url})
        updated = await asyncio.to_thread(
            disable_feeds_by_url,
            self._db,
            url=url,
            disabled_code=FeedDisabledCode.FAILED_REQUESTS,
            health_status=FeedHealthStatus.FAILED,
        )
        logger.info(
            "Disabled feeds after failed requests",
            extra={"url": url, "feed_count": updated},
        )

    async def handle_connection_rejected(self, data: dict[str, Any]) -> None:
        feed_id = str(data["feed"]["id"])
        connection_id = str(data["medium"]["id"])

        feed = await asyncio.to_thread(get_feed, self._db, feed_id)
        if feed is None:
            logger.warning(
                "No feed found when handling rejected connection event",
                extra={"feed_id": feed_id, "connection_id": connection_id},
            )
            return

        for group in CONNECTION_GROUPS:
            for index, connection in enumerate(feed.connections.get(group, [])):
                if connection.connection_id != connection_id:
                    continue
                await asyncio.to_thread(
                    set_connection_disabled_code,
                    self._db,
                    feed_id=feed_id,
                    group=group,
                    index=index,
                    connection_id=connection_id,
                    disabled_code=ConnectionDisabledCode.BAD_FORMAT,
                )
                logger.info(
                    "Disabled connection after rejected article",
                    extra={"feed_id": feed_id, "connection_id": connection_id, "group": group},
                )

    async def _consume(self, broker: Broker, routing_key: str, handler: Handler) -> None:
        async for data in broker.consume(routing_key):
            try:
                await handler(data)
            except (KeyError, TypeError) as e:
                logger.warning(
                    "Dropping malformed feedback event",
                    extra={"routing_key": routing_key, "error": repr(e)},
                )
            except Exception:
                logger.exception(
                    "Feedback handler failed", extra={"routing_key": routing_key}
                )

    async def run(self, broker: Broker) -> None:
        await asyncio.gather(
            self._consume(broker, RoutingKey.URL_FETCH_FAILED, self.handle_url_fetch_failed),
            self._consume(
                broker, RoutingKey.CONNECTION_REJECTED, self.handle_connection_rejected
            ),
        )
