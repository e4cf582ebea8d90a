"""Mission enrollment, progress tracking and finalization."""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from fitleague.core.exceptions import ConflictError, NotFoundError
from fitleague.database import is_postgres
from fitleague.models.activity import Activity
from fitleague.models.enums import AttemptStatus, GoalType, TaskType
from fitleague.models.mission import Mission, MissionAttempt, MissionProgress
from fitleague.models.user import User
from fitleague.services.badge_service import BadgeService
from fitleague.services.timezone_service import as_utc, get_scheduler_timezone, resolve_zone, to_user_local

logger = logging.getLogger(__name__)


@dataclass
class FinalizeSummary:
    mission_id: uuid.UUID
    already_inactive: bool = False
    achieved: int = 0
    not_achieved: int = 0


@dataclass
class SweepSummary:
    finalized: list[uuid.UUID] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


def progress_increment(goal_type: GoalType, activity: Activity) -> float:
    """Contribution of one activity in the mission's goal unit (km, count or minutes)."""
    if goal_type == GoalType.DISTANCE:
        return (activity.distance or 0) / 1000
    if goal_type == GoalType.FREQUENCY:
        return 1.0
    if goal_type == GoalType.DURATION:
        return (activity.moving_time or 0) / 60
    raise ValueError(f"Unsupported goal type {goal_type}")


class MissionService:
    @staticmethod
    async def signup(
        db: AsyncSession,
        user_id: uuid.UUID,
        mission_id: uuid.UUID,
        timezone_label: str | None = None,
    ) -> MissionAttempt:
        user = await db.get(User, user_id)
        if not user or not user.is_active:
            raise NotFoundError(f"User {user_id} not found")
        mission = await db.get(Mission, mission_id)
        if not mission or not mission.is_active:
            raise NotFoundError(f"Mission {mission_id} not found")

        existing = await db.execute(
            select(MissionAttempt.id).where(MissionAttempt.user_id == user_id, MissionAttempt.mission_id == mission_id)
        )
        if existing.first() is not None:
            raise ConflictError(f"User {user_id} is already signed up for mission {mission_id}")

        zone = resolve_zone(timezone_label or user.timezone)
        start_local = datetime.combine(mission.initial_day, time.min, tzinfo=zone)
        end_local = datetime.combine(mission.end_day, time(23, 59, 59), tzinfo=zone)

        attempt = MissionAttempt(
            user_id=user_id,
            mission_id=mission_id,
            status=AttemptStatus.ACTIVE,
            progress=0.0,
            start_date=as_utc(start_local),
            end_date=as_utc(end_local),
            start_date_user_timezone=start_local.isoformat(),
            end_date_user_timezone=end_local.isoformat(),
            timezone=zone.key,
        )
        db.add(attempt)
        try:
            await db.commit()
        except IntegrityError as exc:
            await db.rollback()
            raise ConflictError(f"User {user_id} is already signed up for mission {mission_id}") from exc
        logger.info("User %s signed up for mission %s (%s)", user_id, mission_id, zone.key)
        return attempt

    @staticmethod
    async def log_progress(db: AsyncSession, activity_id: uuid.UUID) -> list[uuid.UUID]:
        """Apply one valid activity to the user's ACTIVE attempts; returns attempts that became ACHIEVED.

        Each attempt is updated in its own transaction. A failure on one
        attempt is logged and does not affect the others.
        """
        activity = await db.get(Activity, activity_id)
        if activity is None or not activity.is_valid:
            return []
        user_id = activity.user_id
        started = as_utc(activity.start_date)

        rows = (await db.execute(
            select(MissionAttempt, Mission)
            .join(Mission, Mission.id == MissionAttempt.mission_id)
            .where(
                MissionAttempt.user_id == user_id,
                MissionAttempt.status == AttemptStatus.ACTIVE,
                Mission.is_active.is_(True),
            )
        )).all()

        # (attempt id, mission id, goal value, increment), captured before any commit expires the rows
        work: list[tuple[uuid.UUID, uuid.UUID, float, float]] = []
        for attempt, mission in rows:
            if not mission.matches_sport(activity.sport_type):
                continue
            if not (as_utc(attempt.start_date) <= started <= as_utc(attempt.end_date)):
                continue
            increment = progress_increment(mission.goal_type, activity)
            if increment <= 0:
                continue
            work.append((attempt.id, mission.id, mission.goal_value, increment))

        achieved: list[uuid.UUID] = []
        for attempt_id, mission_id, goal_value, increment in work:
            try:
                if await MissionService._apply_increment(db, user_id, activity_id, attempt_id, mission_id, goal_value, increment):
                    achieved.append(attempt_id)
                await db.commit()
            except IntegrityError:
                await db.rollback()
                logger.info("Activity %s already counted toward attempt %s", activity_id, attempt_id)
            except Exception:
                await db.rollback()
                logger.exception("Failed to record progress of activity %s on attempt %s", activity_id, attempt_id)
        return achieved

    @staticmethod
    async def _apply_increment(
        db: AsyncSession,
        user_id: uuid.UUID,
        activity_id: uuid.UUID,
        attempt_id: uuid.UUID,
        mission_id: uuid.UUID,
        goal_value: float,
        increment: float,
    ) -> bool:
        stmt = select(MissionAttempt.status).where(MissionAttempt.id == attempt_id)
        if is_postgres(db):
            stmt = stmt.with_for_update()
        if (await db.execute(stmt)).scalar() != AttemptStatus.ACTIVE:
            return False

        db.add(MissionProgress(activity_id=activity_id, mission_attempt_id=attempt_id, progress_made=increment))
        await db.flush()
        await db.execute(
            update(MissionAttempt)
            .where(MissionAttempt.id == attempt_id)
            .values(progress=MissionAttempt.progress + increment)
        )
        progress = (await db.execute(select(MissionAttempt.progress).where(MissionAttempt.id == attempt_id))).scalar()
        logger.info("Attempt %s progress +%s -> %s of %s", attempt_id, round(increment, 3), progress, goal_value)
        if progress < goal_value:
            return False

        await db.execute(
            update(MissionAttempt)
            .where(MissionAttempt.id == attempt_id)
            .values(status=AttemptStatus.ACHIEVED, achieved_at=datetime.now(timezone.utc))
        )
        BadgeService.enqueue_evaluation(db, TaskType.MISSION_BADGES, user_id, mission_id)
        logger.info("Attempt %s achieved mission %s", attempt_id, mission_id)
        return True

    @staticmethod
    async def finalize(db: AsyncSession, mission_id: uuid.UUID) -> FinalizeSummary:
        mission = await db.get(Mission, mission_id)
        if not mission:
            raise NotFoundError(f"Mission {mission_id} not found")
        summary = FinalizeSummary(mission_id=mission_id)
        if not mission.is_active:
            summary.already_inactive = True
            return summary

        stmt = select(MissionAttempt).where(
            MissionAttempt.mission_id == mission_id,
            MissionAttempt.status == AttemptStatus.ACTIVE,
        )
        if is_postgres(db):
            stmt = stmt.with_for_update()
        attempts = (await db.execute(stmt)).scalars().all()

        now = datetime.now(timezone.utc)
        mission.is_active = False
        for attempt in attempts:
            attempt.finalized_at = now
            if attempt.progress >= mission.goal_value:
                attempt.status = AttemptStatus.ACHIEVED
                attempt.achieved_at = now
                BadgeService.enqueue_evaluation(db, TaskType.MISSION_BADGES, attempt.user_id, mission_id)
                summary.achieved += 1
            else:
                attempt.status = AttemptStatus.NOT_ACHIEVED
                summary.not_achieved += 1

        await db.commit()
        logger.info(
            "Mission %s finalized: %s achieved, %s not achieved",
            mission_id, summary.achieved, summary.not_achieved,
        )
        return summary

    @staticmethod
    async def finalize_ended_missions(db: AsyncSession, today: date | None = None) -> SweepSummary:
        """Finalize every active mission whose end_day is before `today` (scheduler timezone)."""
        today = today or to_user_local(datetime.now(timezone.utc), get_scheduler_timezone()).date()
        mission_ids = (await db.execute(
            select(Mission.id).where(Mission.is_active.is_(True), Mission.end_day < today)
        )).scalars().all()

        sweep = SweepSummary()
        for mission_id in mission_ids:
            try:
                await MissionService.finalize(db, mission_id)
                sweep.finalized.append(mission_id)
            except Exception as exc:
                await db.rollback()
                logger.exception("Failed to finalize mission %s", mission_id)
                sweep.errors.append(f"{mission_id}: {exc}")
        logger.info("Mission sweep for %s finalized %s missions", today, len(sweep.finalized))
        return sweep
