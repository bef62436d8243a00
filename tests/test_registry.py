from __future__ import annotations

import pytest

from scheduling.registry import (
    CustomSchedule,
    ScheduleFileError,
    ScheduleRegistry,
    ensure_schedules,
    load_schedule_file,
)


def test_registry_splits_schedules_by_rate(db) -> None:
    ensure_schedules(
        db,
        [
            CustomSchedule(name="fast", refresh_rate_seconds=60, keywords=("nyt",)),
            CustomSchedule(name="faster-ids", refresh_rate_seconds=60, feed_ids=("f1",)),
            CustomSchedule(name="slow", refresh_rate_seconds=1800, keywords=("blog",)),
        ],
    )
    registry = ScheduleRegistry(db)

    assert [s.name for s in registry.schedules_matching_rate(60)] == ["fast", "faster-ids"]
    assert [s.name for s in registry.schedules_excluding(60)] == ["slow"]
    assert registry.schedules_matching_rate(300) == []
    assert registry.refresh_rates() == {60, 1800}


def test_ensure_schedules_updates_existing_by_name(db) -> None:
    ensure_schedules(db, [CustomSchedule(name="fast", refresh_rate_seconds=60)])
    ensure_schedules(
        db, [CustomSchedule(name="fast", refresh_rate_seconds=120, feed_ids=("f9",))]
    )

    (schedule,) = ScheduleRegistry(db).schedules_matching_rate(120)
    assert schedule.feed_ids == ("f9",)


def test_load_schedule_file(tmp_path) -> None:
    path = tmp_path / "schedules.yaml"
    path.write_text(
        """
- name: news
  refresh_rate_minutes: 2
  keywords: [nyt, "reddit\\\\.com/r/"]
- name: pinned
  refresh_rate_seconds: 30
  feeds: [abc123]
""",
        encoding="utf-8",
    )

    schedules = load_schedule_file(path)

    assert schedules == [
        CustomSchedule(name="news", refresh_rate_seconds=120, keywords=("nyt", "reddit\\.com/r/")),
        CustomSchedule(name="pinned", refresh_rate_seconds=30, feed_ids=("abc123",)),
    ]


@pytest.mark.parametrize(
    "content",
    [
        "name: not-a-list\n",
        "- keywords: [x]\n",
        "- name: no-rate\n  keywords: [x]\n",
        "- name: zero\n  refresh_rate_seconds: 0\n",
    ],
)
def test_load_schedule_file_rejects_invalid_entries(tmp_path, content) -> None:
    path = tmp_path / "schedules.yaml"
    path.write_text(content, encoding="utf-8")

    with pytest.raises(ScheduleFileError):
        load_schedule_file(path)
