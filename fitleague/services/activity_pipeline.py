"""Ingestion entry point: admission, scoring, mission progress and badge intents for one activity."""
import logging
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from fitleague.core.exceptions import NotFoundError
from fitleague.core.locks import KeyedLock, acquire_xact_lock
from fitleague.models.activity import Activity
from fitleague.models.enums import AdmissionStatus, TaskType
from fitleague.models.user import User
from fitleague.schemas import ActivityCandidate, AdmissionResult
from fitleague.services.admission_service import AdmissionService
from fitleague.services.badge_service import BadgeService
from fitleague.services.mission_service import MissionService
from fitleague.services.notification_service import NotificationService
from fitleague.services.scoring_service import aggregate_weekly_score

logger = logging.getLogger(__name__)

ACTIVITY_NOTIFICATION_IMPORTANCE = 2


def _duplicate_result(activity: Activity) -> AdmissionResult:
    return AdmissionResult(
        activity_id=activity.id,
        status=AdmissionStatus.DUPLICATE,
        is_valid=activity.is_valid,
        reason=activity.invalid_reason,
        message=activity.invalid_message,
        points=activity.points,
    )


class ActivityPipeline:
    _user_locks = KeyedLock()

    @staticmethod
    async def ingest(db: AsyncSession, candidate: ActivityCandidate, now: datetime | None = None) -> AdmissionResult:
        now = now or datetime.now(timezone.utc)
        async with ActivityPipeline._user_locks.hold(candidate.user_id):
            result = await ActivityPipeline._admit(db, candidate, now)
        if result.status == AdmissionStatus.ADMITTED and result.is_valid:
            await MissionService.log_progress(db, result.activity_id)
        return result

    @staticmethod
    async def _admit(db: AsyncSession, candidate: ActivityCandidate, now: datetime) -> AdmissionResult:
        user = await db.get(User, candidate.user_id)
        if not user or not user.is_active:
            raise NotFoundError(f"User {candidate.user_id} not found")
        await acquire_xact_lock(db, "admission", user.id)

        existing = await AdmissionService.find_duplicate(db, candidate.external_id)
        if existing:
            logger.info("Activity %s already ingested; ignoring", candidate.external_id)
            return _duplicate_result(existing)

        try:
            activity = await AdmissionService.admit(db, user, candidate, now)
            if activity.is_valid:
                await aggregate_weekly_score(db, user, activity.year_in_user_timezone, activity.week_in_user_timezone)
                BadgeService.enqueue_evaluation(db, TaskType.ACTIVITY_BADGES, user.id, activity.id)
                NotificationService.enqueue(
                    db,
                    user,
                    ACTIVITY_NOTIFICATION_IMPORTANCE,
                    "NEW_ACTIVITY",
                    f"New activity registered with {activity.points} points.",
                    f'Activity "{activity.name}" registered.',
                )
            else:
                NotificationService.enqueue(
                    db,
                    user,
                    ACTIVITY_NOTIFICATION_IMPORTANCE,
                    "INVALID_ACTIVITY",
                    f"Your activity {activity.name} was not valid. {activity.invalid_message}",
                    f'Activity "{activity.name}" was invalid.',
                )
            await db.commit()
        except IntegrityError:
            # Lost a race with another process inserting the same external id
            await db.rollback()
            existing = await AdmissionService.find_duplicate(db, candidate.external_id)
            if existing is None:
                raise
            logger.info("Activity %s inserted concurrently; ignoring", candidate.external_id)
            return _duplicate_result(existing)

        return AdmissionResult(
            activity_id=activity.id,
            status=AdmissionStatus.ADMITTED if activity.is_valid else AdmissionStatus.REJECTED,
            is_valid=activity.is_valid,
            reason=activity.invalid_reason,
            message=activity.invalid_message,
            points=activity.points,
        )
