from __future__ import annotations

import json
import sqlite3
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

import yaml

from store.db import Database


class ScheduleFileError(ValueError):
    pass


@dataclass(frozen=True)
class CustomSchedule:
    name: str
    refresh_rate_seconds: int
    keywords: tuple[str, ...] = ()
    feed_ids: tuple[str, ...] = ()


def _row_to_schedule(row: sqlite3.Row) -> CustomSchedule:
    return CustomSchedule(
        name=str(row["name"]),
        refresh_rate_seconds=int(row["refresh_rate_seconds"]),
        keywords=tuple(str(k) for k in json.loads(row["keywords"] or "[]")),
        feed_ids=tuple(str(f) for f in json.loads(row["feed_ids"] or "[]")),
    )


class ScheduleRegistry:
    def __init__(self, db: Database) -> None:
        self._db = db

    def _query(self, where: str, params: tuple[object, ...]) -> list[CustomSchedule]:
        with self._db.lock:
            rows = self._db.conn.execute(
                f"SELECT * FROM feed_schedules WHERE {where} ORDER BY name;", params
            ).fetchall()
        return [_row_to_schedule(row) for row in rows]

    def schedules_matching_rate(self, rate_seconds: int) -> list[CustomSchedule]:
        return self._query("refresh_rate_seconds = ?", (rate_seconds,))

    def schedules_excluding(self, rate_seconds: int) -> list[CustomSchedule]:
        return self._query("refresh_rate_seconds <> ?", (rate_seconds,))

    def refresh_rates(self) -> set[int]:
        with self._db.lock:
            rows = self._db.conn.execute(
                "SELECT DISTINCT refresh_rate_seconds FROM feed_schedules;"
            ).fetchall()
        return {int(row["refresh_rate_seconds"]) for row in rows}


def load_schedule_file(path: Path) -> list[CustomSchedule]:
    raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ScheduleFileError(f"invalid schedule file: {path}")

    schedules: list[CustomSchedule] = []
    for entry in raw:
        if not isinstance(entry, dict) or "name" not in entry:
            raise ScheduleFileError(f"invalid schedule entry in: {path}")
        if "refresh_rate_seconds" in entry:
            rate = int(entry["refresh_rate_seconds"])
        elif "refresh_rate_minutes" in entry:
            rate = int(entry["refresh_rate_minutes"]) * 60
        else:
            raise ScheduleFileError(
                f"schedule {entry['name']!r} in {path} has no refresh rate"
            )
        if rate <= 0:
            raise ScheduleFileError(
                f"schedule {entry['name']!r} in {path} has a non-positive refresh rate"
            )
        schedules.append(
            CustomSchedule(
                name=str(entry["name"]),
                refresh_rate_seconds=rate,
                keywords=tuple(str(k) for k in (entry.get("keywords") or [])),
                feed_ids=tuple(str(f) for f in (entry.get("feeds") or [])),
            )
        )
    return schedules


def ensure_schedules(db: Database, schedules: list[CustomSchedule]) -> None:
    now_iso = datetime.now(tz=UTC).isoformat().replace("+00:00", "Z")
    with db.lock:
        for schedule in schedules:
            db.conn.execute(
                """
                INSERT INTO feed_schedules(name, refresh_rate_seconds, keywords, feed_ids, updated_at)
                VALUES(?, ?, ?, ?, ?)
                ON CONFLICT(name) DO UPDATE SET
                  refresh_rate_seconds = excluded.refresh_rate_seconds,
                  keywords = excluded.keywords,
                  feed_ids = excluded.feed_ids,
                  updated_at = excluded.updated_at;
                """,
                (
                    schedule.name,
                    schedule.refresh_rate_seconds,
                    json.dumps(list(schedule.keywords)),
                    json.dumps(list(schedule.feed_ids)),
                    now_iso,
                ),
            )
        db.conn.commit()
