"""
Jobs de fond : réassort quotidien + boucle température.

Lancés depuis le lifespan FastAPI (SCHEDULER_ENABLED). Le travail SQL est
synchrone : il tourne dans un thread pour ne pas bloquer la boucle asyncio.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from scm_backend.app.core.config import settings
from scm_backend.app.db.session import SessionLocal
from scm_backend.services.replenishment import auto_replenish_below_safety_stock
from scm_backend.services.temperature import monitor, simulator

logger = logging.getLogger(__name__)


def run_auto_replenish(db: Session) -> list[dict]:
    logger.info("Auto-replenish started")
    results = auto_replenish_below_safety_stock(db)
    db.commit()
    logger.info("Auto-replenish done: %d stock request(s) created", len(results))
    return results


def run_temperature_cycle(db: Session) -> list[int]:
    simulator.simulate(db)
    db.commit()
    return monitor.check(db)


def seconds_until_next_run(now: datetime, hour: int) -> float:
    """now doit être aware (fuseau du job)."""
    target = now.replace(hour=hour, minute=0, second=0, microsecond=0)
    if target <= now:
        target += timedelta(days=1)
    return (target - now).total_seconds()


def _with_session(job):
    db = SessionLocal()
    try:
        return job(db)
    finally:
        db.close()


async def auto_replenish_loop() -> None:
    tz = ZoneInfo(settings.AUTO_REPLENISH_TZ)
    while True:
        delay = seconds_until_next_run(datetime.now(tz), settings.AUTO_REPLENISH_HOUR)
        logger.info("Next auto-replenish in %.0f s", delay)
        await asyncio.sleep(delay)
        try:
            await asyncio.to_thread(_with_session, run_auto_replenish)
        except Exception:
            logger.exception("Auto-replenish failed, retrying at next slot")


async def temperature_loop() -> None:
    while True:
        try:
            await asyncio.to_thread(_with_session, run_temperature_cycle)
        except Exception:
            logger.exception("Temperature cycle failed")
        await asyncio.sleep(settings.TEMPERATURE_INTERVAL_SECONDS)


def start_background_tasks() -> list[asyncio.Task]:
    return [
        asyncio.create_task(auto_replenish_loop(), name="auto-replenish"),
        asyncio.create_task(temperature_loop(), name="temperature"),
    ]


async def stop_background_tasks(tasks: list[asyncio.Task]) -> None:
    for t in tasks:
        t.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)
