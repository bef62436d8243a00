from __future__ import annotations

import asyncio
import logging
import time

from app.settings import Settings
from benefits.resolver import BenefitResolver
from dispatch.orchestrator import DispatchOrchestrator
from scheduling.registry import ScheduleRegistry


logger = logging.getLogger(__name__)


async def discover_tiers(
    *,
    registry: ScheduleRegistry,
    resolver: BenefitResolver,
    default_rate_seconds: int,
) -> set[int]:
    benefits = await resolver.list_benefits()
    rates = {default_rate_seconds} | registry.refresh_rates()
    rates.update(
        b.refresh_rate_seconds
        for b in benefits
        if b.is_entitled and b.refresh_rate_seconds is not None
    )
    return {rate for rate in rates if rate > 0}


async def run_tier(orchestrator: DispatchOrchestrator, rate_seconds: int) -> None:
    # Ticks of one tier run back to back, never overlapping.
    while True:
        started = time.monotonic()
        try:
            await orchestrator.run_tick(rate_seconds)
        except Exception:
            logger.exception(
                "Refresh rate tick failed", extra={"rate_seconds": rate_seconds}
            )
        elapsed = time.monotonic() - started
        await asyncio.sleep(max(0.0, rate_seconds - elapsed))


async def run_scheduler(
    *,
    settings: Settings,
    orchestrator: DispatchOrchestrator,
    registry: ScheduleRegistry,
    resolver: BenefitResolver,
) -> None:
    tasks: dict[int, asyncio.Task[None]] = {}
    try:
        while True:
            try:
                rates = await discover_tiers(
                    registry=registry,
                    resolver=resolver,
                    default_rate_seconds=settings.default_refresh_rate_seconds,
                )
            except Exception:
                logger.exception("Failed to discover refresh rate tiers")
                rates = {settings.default_refresh_rate_seconds}

            for rate in sorted(rates - set(tasks)):
                logger.info("Starting refresh rate tier", extra={"rate_seconds": rate})
                tasks[rate] = asyncio.create_task(run_tier(orchestrator, rate))

            await asyncio.sleep(settings.tier_discovery_seconds)
    finally:
        for task in tasks.values():
            task.cancel()
        await asyncio.gather(*tasks.values(), return_exceptions=True)
