from __future__ import annotations

from store.feeds import Connection, Feed


def channel(connection_id: str, **kwargs) -> Connection:
    return Connection(
        connection_id=connection_id,
        destination={"guildId": "guild-1", "channel": {"id": f"chan-{connection_id}"}},
        **kwargs,
    )


def webhook(connection_id: str, **kwargs) -> Connection:
    return Connection(
        connection_id=connection_id,
        destination={
            "guildId": "guild-1",
            "webhook": {"id": f"hook-{connection_id}", "token": "tok", "name": "Bot"},
        },
        **kwargs,
    )


def make_feed(feed_id: str, url: str, user_id: str = "user-1", **kwargs) -> Feed:
    kwargs.setdefault("connections", {"channels": [channel(f"{feed_id}-c1")]})
    return Feed(feed_id=feed_id, url=url, user_id=user_id, **kwargs)
