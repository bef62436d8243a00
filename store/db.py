from __future__ import annotations

import logging
import re
import sqlite3
import threading
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Database:
    conn: sqlite3.Connection
    lock: threading.Lock


_MIGRATIONS: list[tuple[int, str]] = [
    (
        1,
        """
        CREATE TABLE IF NOT EXISTS schema_migrations (
          version INTEGER NOT NULL PRIMARY KEY
        );

        CREATE TABLE IF NOT EXISTS feeds (
          feed_id TEXT NOT NULL PRIMARY KEY,
          url TEXT NOT NULL,
          user_id TEXT NOT NULL,
          connections TEXT NOT NULL DEFAULT '{}',
          disabled_code TEXT NULL,
          health_status TEXT NOT NULL DEFAULT 'OK',
          created_at TEXT NOT NULL,
          updated_at TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS feeds_url_idx ON feeds(url);
        CREATE INDEX IF NOT EXISTS feeds_user_id_idx ON feeds(user_id);

        CREATE TABLE IF NOT EXISTS feed_schedules (
          name TEXT NOT NULL PRIMARY KEY,
          refresh_rate_seconds INTEGER NOT NULL,
          keywords TEXT NOT NULL DEFAULT '[]',
          feed_ids TEXT NOT NULL DEFAULT '[]',
          updated_at TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS feed_schedules_rate_idx
          ON feed_schedules(refresh_rate_seconds);
        """,
    ),
    (
        2,
        """
        ALTER TABLE feeds ADD COLUMN passing_comparisons TEXT NOT NULL DEFAULT '[]';
        ALTER TABLE feeds ADD COLUMN blocking_comparisons TEXT NOT NULL DEFAULT '[]';
        """,
    ),
]


@lru_cache(maxsize=1024)
def _compile_pattern(pattern: str) -> re.Pattern[str] | None:
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error:
        logger.warning("Invalid url pattern", extra={"pattern": pattern})
        return None


def _regexp(pattern: str | None, value: str | None) -> int:
    if pattern is None or value is None:
        return 0
    compiled = _compile_pattern(pattern)
    if compiled is None:
        return 0
    return 1 if compiled.search(value) else 0


def open_database(path: Path) -> Database:
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    conn.execute("PRAGMA busy_timeout=5000;")
    conn.create_function("REGEXP", 2, _regexp, deterministic=True)
    _apply_migrations(conn)
    return Database(conn=conn, lock=threading.Lock())


def close_database(db: Database) -> None:
    with db.lock:
        db.conn.close()


def _apply_migrations(conn: sqlite3.Connection) -> None:
    conn.execute(
        "CREATE TABLE IF NOT EXISTS schema_migrations (version INTEGER NOT NULL PRIMARY KEY);"
    )
    row = conn.execute(
        "SELECT COALESCE(MAX(version), 0) AS v FROM schema_migrations;"
    ).fetchone()
    current_version = int(row["v"])

    for version, sql in _MIGRATIONS:
        if version <= current_version:
            continue
        conn.executescript(sql)
        conn.execute("INSERT INTO schema_migrations(version) VALUES (?);", (version,))
        conn.commit()
