"""Admission control: duplicate detection and the three validity rules."""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fitleague.config import settings
from fitleague.models.activity import Activity
from fitleague.models.enums import InvalidReason
from fitleague.models.user import User
from fitleague.schemas import ActivityCandidate
from fitleague.services.scoring_service import calculate_points
from fitleague.services.timezone_service import as_utc, epoch_ms, iso_week, resolve_zone, to_user_local

logger = logging.getLogger(__name__)

INVALID_MESSAGES = {
    InvalidReason.OVERLAP: (
        "The activity overlaps with another that you already have. "
        "You cannot have multiple activities loaded in the same period of time."
    ),
    InvalidReason.WEEK_MISMATCH: "The activity must be uploaded the same week it was performed",
    InvalidReason.LOW_HEART_RATE: "The average heart rate must be above {min_hr:g} bpm to be considered as exercise",
}


@dataclass(frozen=True)
class Verdict:
    is_valid: bool
    reason: InvalidReason | None = None
    message: str | None = None


def judge(overlapping: bool, same_week: bool, heart_rate_ok: bool) -> Verdict:
    """Combine the rule outcomes; the first failure in priority order is reported."""
    failures = {
        InvalidReason.OVERLAP: overlapping,
        InvalidReason.WEEK_MISMATCH: not same_week,
        InvalidReason.LOW_HEART_RATE: not heart_rate_ok,
    }
    for reason in InvalidReason:
        if failures[reason]:
            message = INVALID_MESSAGES[reason].format(min_hr=settings.MIN_AVERAGE_HEART_RATE)
            return Verdict(is_valid=False, reason=reason, message=message)
    return Verdict(is_valid=True)


class AdmissionService:
    @staticmethod
    async def find_duplicate(db: AsyncSession, external_id: str) -> Activity | None:
        result = await db.execute(select(Activity).where(Activity.external_id == external_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def has_overlap(
        db: AsyncSession,
        user_id: uuid.UUID,
        year: int,
        week: int,
        start_ms: int,
        end_ms: int,
    ) -> bool:
        """Half-open interval test against the user's stored activities of the same local week."""
        result = await db.execute(
            select(Activity.id).where(
                Activity.user_id == user_id,
                Activity.year_in_user_timezone == year,
                Activity.week_in_user_timezone == week,
                Activity.start_date_epoch_ms < end_ms,
                Activity.end_date_epoch_ms > start_ms,
            ).limit(1)
        )
        return result.first() is not None

    @staticmethod
    async def admit(db: AsyncSession, user: User, candidate: ActivityCandidate, now: datetime) -> Activity:
        """Judge the candidate and stage the Activity row with its outcome. Flushes, does not commit."""
        zone = resolve_zone(user.timezone)
        start = as_utc(candidate.start_date)
        end = start + timedelta(seconds=candidate.elapsed_time)
        start_local = to_user_local(start, zone)
        created_local = to_user_local(now, zone)
        year, week = iso_week(start_local)

        start_ms, end_ms = epoch_ms(start), epoch_ms(end)
        overlapping = await AdmissionService.has_overlap(db, user.id, year, week, start_ms, end_ms)
        same_week = iso_week(created_local) == (year, week)
        heart_rate_ok = (candidate.average_heartrate or 0.0) >= settings.MIN_AVERAGE_HEART_RATE
        verdict = judge(overlapping, same_week, heart_rate_ok)

        points, factor = 0, 0.0
        if verdict.is_valid:
            points, factor = calculate_points(candidate.average_heartrate, candidate.moving_time)

        activity = Activity(
            external_id=candidate.external_id,
            source=candidate.source,
            user_id=user.id,
            name=candidate.name,
            sport_type=candidate.sport_type,
            start_date=start,
            start_date_user_timezone=start_local.isoformat(),
            start_date_epoch_ms=start_ms,
            end_date_epoch_ms=end_ms,
            created_at=as_utc(now),
            created_at_user_timezone=created_local.isoformat(),
            created_at_epoch_ms=epoch_ms(now),
            week_in_user_timezone=week,
            year_in_user_timezone=year,
            average_heartrate=candidate.average_heartrate,
            max_heartrate=candidate.max_heartrate,
            distance=candidate.distance,
            elapsed_time=candidate.elapsed_time,
            moving_time=candidate.moving_time,
            points=points,
            effort_factor=factor,
            is_valid=verdict.is_valid,
            invalid_reason=verdict.reason,
            invalid_message=verdict.message,
        )
        db.add(activity)
        await db.flush()
        if verdict.is_valid:
            logger.info("Activity %s for user %s admitted with %s points", candidate.external_id, user.id, points)
        else:
            logger.info("Activity %s for user %s rejected: %s", candidate.external_id, user.id, verdict.reason.value)
        return activity
