from __future__ import annotations

import argparse
from pathlib import Path

from app.settings import Settings
from scheduling.registry import ensure_schedules, load_schedule_file
from store.db import close_database, open_database


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("path", type=Path)
    parser.add_argument("--db", type=Path, default=None)
    args = parser.parse_args()

    settings = Settings()
    schedules = load_schedule_file(args.path)
    db = open_database(args.db or settings.db_path)
    try:
        ensure_schedules(db, schedules)
    finally:
        close_database(db)

    for schedule in schedules:
        print(f"{schedule.name}\t{schedule.refresh_rate_seconds}s")


if __name__ == "__main__":
    main()
