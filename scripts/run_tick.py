from __future__ import annotations

import argparse
import asyncio
import json
from dataclasses import asdict
from pathlib import Path

import httpx

from app.log_config import configure_logging
from app.main import build_broker, build_resolver
from app.settings import Settings
from dispatch.orchestrator import DispatchOrchestrator
from scheduling.registry import ScheduleRegistry
from scheduling.selector import TierSelector
from store.db import close_database, open_database


async def _run(settings: Settings, rate_seconds: int) -> dict:
    db = open_database(settings.db_path)
    broker = build_broker(settings)
    try:
        async with httpx.AsyncClient(follow_redirects=True) as client:
            orchestrator = DispatchOrchestrator(
                db=db,
                broker=broker,
                resolver=build_resolver(settings, client),
                selector=TierSelector(
                    ScheduleRegistry(db),
                    default_rate_seconds=settings.default_refresh_rate_seconds,
                ),
                default_max_daily_deliveries=settings.default_max_daily_deliveries,
                publish_concurrency=settings.publish_concurrency,
                cursor_batch_size=settings.cursor_batch_size,
            )
            result = await orchestrator.run_tick(rate_seconds)
    finally:
        await broker.close()
        close_database(db)
    return asdict(result)


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--rate", type=int, default=None, help="refresh rate in seconds")
    parser.add_argument("--db", type=Path, default=None)
    args = parser.parse_args()

    settings = Settings()
    if args.db is not None:
        settings.db_path = args.db
    configure_logging(settings)

    rate_seconds = args.rate or settings.default_refresh_rate_seconds
    print(json.dumps(asyncio.run(_run(settings, rate_seconds))))


if __name__ == "__main__":
    main()
