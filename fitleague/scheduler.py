"""Background timers: daily mission close, weekly ranking rotation and the outbox poll.

Each job runs behind a RunGuard, so a tick that finds the previous run still
in flight (in this process, or in another one on PostgreSQL) is skipped.
"""
import asyncio
import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fitleague.config import settings
from fitleague.core.locks import RunGuard
from fitleague.services.league_service import LeagueService, RotationSummary
from fitleague.services.mission_service import MissionService, SweepSummary
from fitleague.services.outbox_worker import DrainSummary, OutboxWorker
from fitleague.services.timezone_service import get_scheduler_timezone

logger = logging.getLogger(__name__)

MISSION_SWEEP_GUARD = RunGuard("daily-mission-close")
ROTATION_GUARD = RunGuard("weekly-ranking-rotation")
OUTBOX_GUARD = RunGuard("outbox-drain")

# Sunday is weekday 6
ROTATION_WEEKDAY = 6


def seconds_until_daily_run(now_utc: datetime) -> float:
    now_local = now_utc.astimezone(get_scheduler_timezone())
    target_local = now_local.replace(
        hour=settings.MISSION_CLOSE_HOUR,
        minute=settings.MISSION_CLOSE_MINUTE,
        second=0,
        microsecond=0,
    )
    if now_local >= target_local:
        target_local += timedelta(days=1)
    return max((target_local.astimezone(timezone.utc) - now_utc).total_seconds(), 1.0)


def seconds_until_weekly_run(now_utc: datetime) -> float:
    now_local = now_utc.astimezone(get_scheduler_timezone())
    target_local = (now_local + timedelta(days=ROTATION_WEEKDAY - now_local.weekday())).replace(
        hour=23, minute=59, second=59, microsecond=0,
    )
    if now_local >= target_local:
        target_local += timedelta(days=7)
    return max((target_local.astimezone(timezone.utc) - now_utc).total_seconds(), 1.0)


async def run_mission_sweep(session_factory: async_sessionmaker[AsyncSession]) -> SweepSummary | None:
    async with session_factory() as lock_db:
        async with MISSION_SWEEP_GUARD.try_run(lock_db) as acquired:
            if not acquired:
                return None
            async with session_factory() as db:
                return await MissionService.finalize_ended_missions(db)


async def run_rotation(
    session_factory: async_sessionmaker[AsyncSession],
    now: datetime | None = None,
) -> RotationSummary | None:
    async with session_factory() as lock_db:
        async with ROTATION_GUARD.try_run(lock_db) as acquired:
            if not acquired:
                return None
            return await LeagueService.rotate(session_factory, now)


async def run_outbox(
    session_factory: async_sessionmaker[AsyncSession],
    worker: OutboxWorker | None = None,
) -> DrainSummary | None:
    async with session_factory() as lock_db:
        async with OUTBOX_GUARD.try_run(lock_db) as acquired:
            if not acquired:
                return None
            return await (worker or OutboxWorker()).drain_once(session_factory)


async def _daily_loop(session_factory: async_sessionmaker[AsyncSession]) -> None:
    while True:
        await asyncio.sleep(seconds_until_daily_run(datetime.now(timezone.utc)))
        try:
            await run_mission_sweep(session_factory)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Mission close iteration failed")


async def _weekly_loop(session_factory: async_sessionmaker[AsyncSession]) -> None:
    while True:
        await asyncio.sleep(seconds_until_weekly_run(datetime.now(timezone.utc)))
        try:
            await run_rotation(session_factory)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Ranking rotation iteration failed")


async def _outbox_loop(session_factory: async_sessionmaker[AsyncSession], worker: OutboxWorker) -> None:
    while True:
        try:
            await run_outbox(session_factory, worker)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Outbox iteration failed")
        await asyncio.sleep(settings.OUTBOX_POLL_SECONDS)


def start_schedulers(session_factory: async_sessionmaker[AsyncSession]) -> list[asyncio.Task]:
    if not settings.SCHEDULERS_ENABLED:
        logger.info("Schedulers disabled by config")
        return []
    tasks = [
        asyncio.create_task(_daily_loop(session_factory), name="daily-mission-close"),
        asyncio.create_task(_weekly_loop(session_factory), name="weekly-ranking-rotation"),
        asyncio.create_task(_outbox_loop(session_factory, OutboxWorker()), name="outbox-drain"),
    ]
    logger.info(
        "Schedulers started (mission close %02d:%02d, rotation Sunday 23:59:59, outbox every %ss, tz=%s)",
        settings.MISSION_CLOSE_HOUR,
        settings.MISSION_CLOSE_MINUTE,
        settings.OUTBOX_POLL_SECONDS,
        settings.SCHEDULER_TIMEZONE,
    )
    return tasks


async def stop_schedulers(tasks: list[asyncio.Task]) -> None:
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)
