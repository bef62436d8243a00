from __future__ import annotations

import asyncio
import json
import sqlite3
from collections.abc import AsyncIterator, Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from scheduling.predicates import (
    AllOf,
    AnyOf,
    HasConnection,
    HealthOk,
    IdIn,
    KeywordMatch,
    Not,
    Predicate,
    UserIn,
)
from store.db import Database


CONNECTION_GROUPS = ("channels", "webhooks")


class FeedHealthStatus(StrEnum):
    OK = "OK"
    FAILED = "FAILED"


class FeedDisabledCode(StrEnum):
    FAILED_REQUESTS = "FAILED_REQUESTS"
    BAD_FORMAT = "BAD_FORMAT"
    MANUAL = "MANUAL"


class ConnectionDisabledCode(StrEnum):
    BAD_FORMAT = "BAD_FORMAT"
    MANUAL = "MANUAL"
    MISSING_PERMISSIONS = "MISSING_PERMISSIONS"


@dataclass(frozen=True)
class Connection:
    connection_id: str
    destination: dict[str, Any]
    content: str | None = None
    embeds: list[dict[str, Any]] = field(default_factory=list)
    filters: dict[str, Any] | None = None
    disabled_code: str | None = None

    @property
    def is_active(self) -> bool:
        return self.disabled_code is None

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Connection:
        return cls(
            connection_id=str(raw["id"]),
            destination=dict(raw.get("destination") or {}),
            content=raw.get("content"),
            embeds=list(raw.get("embeds") or []),
            filters=raw.get("filters"),
            disabled_code=raw.get("disabled_code"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.connection_id,
            "destination": self.destination,
            "content": self.content,
            "embeds": self.embeds,
            "filters": self.filters,
            "disabled_code": self.disabled_code,
        }


@dataclass(frozen=True)
class Feed:
    feed_id: str
    url: str
    user_id: str
    connections: dict[str, list[Connection]] = field(default_factory=dict)
    disabled_code: str | None = None
    health_status: str = FeedHealthStatus.OK
    passing_comparisons: list[str] = field(default_factory=list)
    blocking_comparisons: list[str] = field(default_factory=list)

    @property
    def is_healthy(self) -> bool:
        return (
            self.disabled_code is None
            and self.health_status != FeedHealthStatus.FAILED
        )

    @property
    def has_connections(self) -> bool:
        return any(self.connections.get(group) for group in CONNECTION_GROUPS)

    def active_connections(self) -> Iterator[tuple[str, Connection]]:
        for group in CONNECTION_GROUPS:
            for connection in self.connections.get(group, []):
                if connection.is_active:
                    yield group, connection


def _utc_now_iso() -> str:
    return datetime.now(tz=UTC).isoformat().replace("+00:00", "Z")


def _row_to_feed(row: sqlite3.Row) -> Feed:
    raw_connections = json.loads(row["connections"] or "{}")
    return Feed(
        feed_id=str(row["feed_id"]),
        url=str(row["url"]),
        user_id=str(row["user_id"]),
        connections={
            str(group): [Connection.from_dict(c) for c in (items or [])]
            for group, items in raw_connections.items()
        },
        disabled_code=row["disabled_code"],
        health_status=str(row["health_status"]),
        passing_comparisons=list(json.loads(row["passing_comparisons"] or "[]")),
        blocking_comparisons=list(json.loads(row["blocking_comparisons"] or "[]")),
    )


def save_feed(db: Database, feed: Feed) -> None:
    now_iso = _utc_now_iso()
    connections = {
        group: [c.to_dict() for c in items] for group, items in feed.connections.items()
    }
    with db.lock:
        db.conn.execute(
            """
            INSERT INTO feeds(
              feed_id, url, user_id, connections, disabled_code, health_status,
              passing_comparisons, blocking_comparisons, created_at, updated_at
            )
            VALUES(?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(feed_id) DO UPDATE SET
              url = excluded.url,
              user_id = excluded.user_id,
              connections = excluded.connections,
              disabled_code = excluded.disabled_code,
              health_status = excluded.health_status,
              passing_comparisons = excluded.passing_comparisons,
              blocking_comparisons = excluded.blocking_comparisons,
              updated_at = excluded.updated_at;
            """,
            (
                feed.feed_id,
                feed.url,
                feed.user_id,
                json.dumps(connections),
                feed.disabled_code,
                str(feed.health_status),
                json.dumps(feed.passing_comparisons),
                json.dumps(feed.blocking_comparisons),
                now_iso,
                now_iso,
            ),
        )
        db.conn.commit()


def get_feed(db: Database, feed_id: str) -> Feed | None:
    with db.lock:
        row = db.conn.execute(
            "SELECT * FROM feeds WHERE feed_id = ?;", (feed_id,)
        ).fetchone()
    if row is None:
        return None
    return _row_to_feed(row)


def compile_predicate(predicate: Predicate) -> tuple[str, list[object]]:
    """Compile a predicate tree into a SQL boolean expression over ``feeds``."""
    if isinstance(predicate, KeywordMatch):
        if not predicate.patterns:
            return "0", []
        sql = " OR ".join("url REGEXP ?" for _ in predicate.patterns)
        return f"({sql})", list(predicate.patterns)
    if isinstance(predicate, IdIn):
        if not predicate.feed_ids:
            return "0", []
        return (
            "feed_id IN (SELECT value FROM json_each(?))",
            [json.dumps(sorted(predicate.feed_ids))],
        )
    if isinstance(predicate, UserIn):
        if not predicate.user_ids:
            return "0", []
        return (
            "user_id IN (SELECT value FROM json_each(?))",
            [json.dumps(sorted(predicate.user_ids))],
        )
    if isinstance(predicate, HealthOk):
        return "(disabled_code IS NULL AND health_status <> ?)", [
            str(FeedHealthStatus.FAILED)
        ]
    if isinstance(predicate, HasConnection):
        sql = " OR ".join(
            "COALESCE(json_array_length(connections, ?), 0) > 0" for _ in CONNECTION_GROUPS
        )
        return f"({sql})", [f'$."{group}"' for group in CONNECTION_GROUPS]
    if isinstance(predicate, AllOf | AnyOf):
        if not predicate.clauses:
            return ("1" if isinstance(predicate, AllOf) else "0"), []
        joiner = " AND " if isinstance(predicate, AllOf) else " OR "
        parts: list[str] = []
        params: list[object] = []
        for clause in predicate.clauses:
            sql, clause_params = compile_predicate(clause)
            parts.append(sql)
            params.extend(clause_params)
        return f"({joiner.join(parts)})", params
    if isinstance(predicate, Not):
        sql, params = compile_predicate(predicate.clause)
        return f"(NOT {sql})", params
    raise TypeError(f"unknown predicate clause: {predicate!r}")


def distinct_urls(db: Database, predicate: Predicate) -> list[str]:
    where, params = compile_predicate(predicate)
    with db.lock:
        rows = db.conn.execute(
            f"SELECT DISTINCT url FROM feeds WHERE {where} ORDER BY url;", params
        ).fetchall()
    return [str(row["url"]) for row in rows]


class FeedCursor:
    """Forward-only, keyset-paged sequence of feeds matching a predicate.

    Only one page is held in memory. ``position`` is the rowid of the last feed
    handed out; a new cursor built with ``start_after=position`` resumes there.
    """

    def __init__(
        self,
        db: Database,
        predicate: Predicate,
        *,
        batch_size: int = 500,
        start_after: int = 0,
    ) -> None:
        self._db = db
        self._where, self._params = compile_predicate(predicate)
        self._batch_size = batch_size
        self.position = start_after

    def _fetch_page(self) -> list[tuple[int, Feed]]:
        with self._db.lock:
            rows = self._db.conn.execute(
                f"""
                SELECT rowid AS row_position, *
                FROM feeds
                WHERE {self._where}
                  AND rowid > ?
                ORDER BY rowid ASC
                LIMIT ?;
                """,
                (*self._params, self.position, self._batch_size),
            ).fetchall()
        return [(int(row["row_position"]), _row_to_feed(row)) for row in rows]

    def __iter__(self) -> Iterator[Feed]:
        while True:
            page = self._fetch_page()
            if not page:
                return
            for position, feed in page:
                self.position = position
                yield feed

    async def __aiter__(self) -> AsyncIterator[Feed]:
        while True:
            page = await asyncio.to_thread(self._fetch_page)
            if not page:
                return
            for position, feed in page:
                self.position = position
                yield feed


def disable_feeds_by_url(
    db: Database,
    *,
    url: str,
    disabled_code: FeedDisabledCode,
    health_status: FeedHealthStatus,
) -> int:
    with db.lock:
        cur = db.conn.execute(
            """
            UPDATE feeds
            SET disabled_code = ?,
                health_status = ?,
                updated_at = ?
            WHERE url = ?;
            """,
            (str(disabled_code), str(health_status), _utc_now_iso(), url),
        )
        db.conn.commit()
    return cur.rowcount


def set_connection_disabled_code(
    db: Database,
    *,
    feed_id: str,
    group: str,
    index: int,
    connection_id: str,
    disabled_code: ConnectionDisabledCode,
) -> bool:
    if group not in CONNECTION_GROUPS:
        raise ValueError(f"unknown connection group: {group!r}")
    path = f'$."{group}"[{index}]'
    with db.lock:
        cur = db.conn.execute(
            """
            UPDATE feeds
            SET connections = json_set(connections, ?, ?),
                updated_at = ?
            WHERE feed_id = ?
              AND json_extract(connections, ?) = ?;
            """,
            (
                f"{path}.disabled_code",
                str(disabled_code),
                _utc_now_iso(),
                feed_id,
                f"{path}.id",
                connection_id,
            ),
        )
        db.conn.commit()
    return cur.rowcount > 0
