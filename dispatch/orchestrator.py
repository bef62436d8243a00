from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass

from benefits.resolver import BenefitResolver
from broker.bus import Broker
from dispatch.events import (
    ContentRenderer,
    EmbedsRenderer,
    RoutingKey,
    delivery_request,
    fetch_request,
)
from dispatch.templates import render_content, render_embeds
from scheduling.selector import TierSelector
from store.db import Database
from store.feeds import FeedCursor, distinct_urls


logger = logging.getLogger(__name__)


@dataclass
class TickResult:
    rate_seconds: int
    urls_published: int = 0
    urls_failed: int = 0
    feeds_published: int = 0
    feeds_failed: int = 0
    elapsed_ms: int = 0


class DispatchOrchestrator:
    def __init__(
        self,
        *,
        db: Database,
        broker: Broker,
        resolver: BenefitResolver,
        selector: TierSelector,
        default_max_daily_deliveries: int,
        publish_concurrency: int = 8,
        cursor_batch_size: int = 500,
        content_renderer: ContentRenderer = render_content,
        embeds_renderer: EmbedsRenderer = render_embeds,
    ) -> None:
        self._db = db
        self._broker = broker
        self._resolver = resolver
        self._selector = selector
        self._default_max_daily = default_max_daily_deliveries
        self._publish_concurrency = publish_concurrency
        self._cursor_batch_size = cursor_batch_size
        self._content_renderer = content_renderer
        self._embeds_renderer = embeds_renderer

    async def run_tick(self, rate_seconds: int) -> TickResult:
        started = time.monotonic()
        result = TickResult(rate_seconds=rate_seconds)

        benefits = await self._resolver.list_benefits()
        max_daily_by_user = {
            b.user_id: b.max_daily_deliveries
            for b in benefits
            if b.max_daily_deliveries is not None
        }

        predicate = self._selector.select(rate_seconds, benefits)
        urls = await asyncio.to_thread(distinct_urls, self._db, predicate)
        cursor = FeedCursor(self._db, predicate, batch_size=self._cursor_batch_size)

        logger.debug(
            "Found urls for refresh rate",
            extra={"rate_seconds": rate_seconds, "url_count": len(urls)},
        )

        sem = asyncio.Semaphore(self._publish_concurrency)

        async def publish_url(url: str) -> bool:
            async with sem:
                try:
                    await self._broker.publish(
                        RoutingKey.FETCH_REQUEST, fetch_request(url, rate_seconds)
                    )
                except Exception:
                    logger.exception(
                        "Failed to publish fetch request",
                        extra={"url": url, "rate_seconds": rate_seconds},
                    )
                    return False
                return True

        outcomes = await asyncio.gather(*(publish_url(url) for url in urls))
        result.urls_published = sum(1 for ok in outcomes if ok)
        result.urls_failed = len(outcomes) - result.urls_published

        async for feed in cursor:
            try:
                payload = delivery_request(
                    feed,
                    article_day_limit=max_daily_by_user.get(
                        feed.user_id, self._default_max_daily
                    ),
                    content_renderer=self._content_renderer,
                    embeds_renderer=self._embeds_renderer,
                )
                await self._broker.publish(RoutingKey.DELIVERY_REQUEST, payload)
            except Exception:
                logger.exception(
                    "Failed to publish delivery request",
                    extra={"feed_id": feed.feed_id, "rate_seconds": rate_seconds},
                )
                result.feeds_failed += 1
                continue
            result.feeds_published += 1

        result.elapsed_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            "Finished refresh rate tick",
            extra={
                "rate_seconds": rate_seconds,
                "urls_published": result.urls_published,
                "urls_failed": result.urls_failed,
                "feeds_published": result.feeds_published,
                "feeds_failed": result.feeds_failed,
                "elapsed_ms": result.elapsed_ms,
            },
        )
        return result
