from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager, suppress

import httpx
from fastapi import FastAPI, Request

from app.log_config import configure_logging
from app.settings import Settings
from benefits.resolver import BenefitResolver, HttpBenefitResolver, StaticBenefitResolver
from broker.bus import Broker, EventBus
from broker.redis_broker import RedisBroker
from dispatch.orchestrator import DispatchOrchestrator
from dispatch.scheduler import discover_tiers, run_scheduler
from health.health import FeedbackConsumer
from scheduling.registry import ScheduleRegistry, ensure_schedules, load_schedule_file
from scheduling.selector import TierSelector
from store.db import close_database, open_database


logger = logging.getLogger(__name__)


def build_broker(settings: Settings) -> Broker:
    if settings.broker_url.startswith(("redis://", "rediss://", "unix://")):
        return RedisBroker.from_settings(settings)
    if settings.broker_url.startswith("memory://"):
        return EventBus()
    raise ValueError(f"unsupported broker url: {settings.broker_url}")


def build_resolver(settings: Settings, client: httpx.AsyncClient) -> BenefitResolver:
    if settings.benefits_api_url:
        return HttpBenefitResolver(
            client, base_url=settings.benefits_api_url, api_key=settings.benefits_api_key
        )
    return StaticBenefitResolver()


async def _cancel(task: asyncio.Task[None]) -> None:
    task.cancel()
    with suppress(asyncio.CancelledError):
        await task


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = Settings()
    configure_logging(settings)
    db = open_database(settings.db_path)
    if settings.schedules_file is not None:
        ensure_schedules(db, load_schedule_file(settings.schedules_file))

    broker = build_broker(settings)
    registry = ScheduleRegistry(db)

    async with httpx.AsyncClient(follow_redirects=True) as client:
        resolver = build_resolver(settings, client)
        orchestrator = DispatchOrchestrator(
            db=db,
            broker=broker,
            resolver=resolver,
            selector=TierSelector(
                registry, default_rate_seconds=settings.default_refresh_rate_seconds
            ),
            default_max_daily_deliveries=settings.default_max_daily_deliveries,
            publish_concurrency=settings.publish_concurrency,
            cursor_batch_size=settings.cursor_batch_size,
        )
        app.state.settings = settings
        app.state.registry = registry
        app.state.resolver = resolver

        scheduler_task = asyncio.create_task(
            run_scheduler(
                settings=settings,
                orchestrator=orchestrator,
                registry=registry,
                resolver=resolver,
            )
        )
        consumer_task = asyncio.create_task(FeedbackConsumer(db).run(broker))
        app.state.tasks = {"scheduler": scheduler_task, "feedback": consumer_task}
        logger.info(
            "Feed scheduler started",
            extra={"default_rate_seconds": settings.default_refresh_rate_seconds},
        )
        try:
            yield
        finally:
            await _cancel(scheduler_task)
            await _cancel(consumer_task)
            await broker.close()
            close_database(db)


app = FastAPI(lifespan=lifespan)


@app.get("/health")
def health(request: Request) -> dict:
    tasks: dict[str, asyncio.Task[None]] = request.app.state.tasks
    running = {name: not task.done() for name, task in tasks.items()}
    return {"status": "ok" if all(running.values()) else "degraded", "tasks": running}


@app.get("/tiers")
async def tiers(request: Request) -> dict:
    settings: Settings = request.app.state.settings
    rates = await discover_tiers(
        registry=request.app.state.registry,
        resolver=request.app.state.resolver,
        default_rate_seconds=settings.default_refresh_rate_seconds,
    )
    return {
        "default_rate_seconds": settings.default_refresh_rate_seconds,
        "rates": sorted(rates),
    }
