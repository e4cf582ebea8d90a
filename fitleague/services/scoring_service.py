"""Scoring engine: activity points and weekly score aggregation."""
from __future__ import annotations

import logging
import math
import uuid
from collections.abc import Iterable

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from fitleague.core.exceptions import NotFoundError
from fitleague.models.activity import Activity
from fitleague.models.user import User
from fitleague.services.timezone_service import week_key

logger = logging.getLogger(__name__)

# (upper bound of average heart rate, effort factor); first bound exclusive, the rest inclusive
EFFORT_BINS: list[tuple[float, float]] = [
    (114, 1.23),  # very light
    (122, 1.84),  # light
    (144, 2.19),  # moderate
    (156, 2.6),  # vigorous
    (169, 2.94),  # hard
]
MAX_EFFORT_FACTOR = 3.48


def effort_factor_for(average_heartrate: float | None) -> float:
    hr = average_heartrate or 0.0
    if hr < EFFORT_BINS[0][0]:
        return EFFORT_BINS[0][1]
    for upper, factor in EFFORT_BINS[1:]:
        if hr <= upper:
            return factor
    return MAX_EFFORT_FACTOR


def calculate_points(average_heartrate: float | None, moving_time: float) -> tuple[int, float]:
    """Return (points, effort_factor) for one activity. moving_time is in seconds."""
    hr = average_heartrate or 0.0
    if hr < 0 or moving_time < 0:
        raise ValueError("heart rate and moving time must be non-negative")
    factor = effort_factor_for(hr)
    hours = moving_time / 3600
    # Round before ceil so float noise (2.6 * 150 * 0.5 = 195.00000000000003) does not add a point
    points = math.ceil(round(factor * hr * hours, 6))
    return points, factor


async def aggregate_weekly_score(db: AsyncSession, user: User, year: int, week: int) -> int:
    """Re-sum valid activity points for one (year, week) bucket and store it on the user.

    Always a full re-aggregation, so repeated calls converge on the same total.
    Does not commit.
    """
    stmt = select(func.coalesce(func.sum(Activity.points), 0)).where(
        Activity.user_id == user.id,
        Activity.year_in_user_timezone == year,
        Activity.week_in_user_timezone == week,
        Activity.is_valid.is_(True),
    )
    total = int((await db.execute(stmt)).scalar() or 0)

    scores = dict(user.weekly_scores or {})
    scores[week_key(year, week)] = total
    user.weekly_scores = scores
    user.current_week_score = total
    logger.info("Weekly score for user %s %s is now %s", user.id, week_key(year, week), total)
    return total


async def recalculate_activity_points(db: AsyncSession, activities: Iterable[Activity]) -> int:
    """Recompute stored points/effort factor for the given activities and return their total."""
    total = 0
    for activity in activities:
        points, factor = calculate_points(activity.average_heartrate, activity.moving_time)
        activity.points = points
        activity.effort_factor = factor
        total += points
    await db.flush()
    return total


async def recalculate_user_week(db: AsyncSession, user_id: uuid.UUID, year: int, week: int) -> int:
    """Administrative correction: recompute a week's activity points, then its aggregate."""
    user = await db.get(User, user_id)
    if not user:
        raise NotFoundError(f"User {user_id} not found")
    activities = (await db.execute(
        select(Activity).where(
            Activity.user_id == user_id,
            Activity.year_in_user_timezone == year,
            Activity.week_in_user_timezone == week,
        )
    )).scalars().all()
    await recalculate_activity_points(db, activities)
    total = await aggregate_weekly_score(db, user, year, week)
    await db.commit()
    return total
