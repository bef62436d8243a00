from __future__ import annotations

from collections.abc import Callable
from enum import StrEnum
from typing import Any

from dispatch.templates import render_content, render_embeds
from store.feeds import Connection, Feed


class RoutingKey(StrEnum):
    FETCH_REQUEST = "fetch-request"
    DELIVERY_REQUEST = "delivery-request"
    URL_FETCH_FAILED = "url-fetch-failed"
    CONNECTION_REJECTED = "connection-rejected"


ContentRenderer = Callable[[str | None], str | None]
EmbedsRenderer = Callable[[list[dict[str, Any]]], list[dict[str, Any]]]


def fetch_request(url: str, rate_seconds: int) -> dict[str, Any]:
    return {"url": url, "rateSeconds": rate_seconds}


def _destination(group: str, connection: Connection) -> dict[str, Any]:
    raw = connection.destination
    if group == "webhooks":
        webhook = raw.get("webhook") or {}
        return {
            "guildId": raw.get("guildId"),
            "webhook": {
                "id": webhook.get("id"),
                "token": webhook.get("token"),
                "name": webhook.get("name"),
                "iconUrl": webhook.get("iconUrl"),
            },
        }
    channel = raw.get("channel") or {}
    return {"guildId": raw.get("guildId"), "channel": {"id": channel.get("id")}}


def medium(
    group: str,
    connection: Connection,
    *,
    content_renderer: ContentRenderer = render_content,
    embeds_renderer: EmbedsRenderer = render_embeds,
) -> dict[str, Any]:
    expression = (connection.filters or {}).get("expression")
    return {
        "id": connection.connection_id,
        "type": "discord",
        "filters": {"expression": expression} if expression else None,
        "destination": _destination(group, connection),
        "content": content_renderer(connection.content),
        "embeds": embeds_renderer(connection.embeds),
    }


def delivery_request(
    feed: Feed,
    *,
    article_day_limit: int,
    content_renderer: ContentRenderer = render_content,
    embeds_renderer: EmbedsRenderer = render_embeds,
) -> dict[str, Any]:
    return {
        "feedId": feed.feed_id,
        "url": feed.url,
        "passingComparisons": list(feed.passing_comparisons),
        "blockingComparisons": list(feed.blocking_comparisons),
        "articleDayLimit": article_day_limit,
        "mediums": [
            medium(
                group,
                connection,
                content_renderer=content_renderer,
                embeds_renderer=embeds_renderer,
            )
            for group, connection in feed.active_connections()
        ],
    }
