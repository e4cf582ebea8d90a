"""Badge evaluation strategies and the triggers that run them.

Every strategy runs the shared gate in BadgeService.passes_gate before its
own rule. Triggers evaluate each candidate badge independently: one failing
evaluator is logged and rolled back without affecting the others, and the
failure is reported back so the outbox task can be retried.
"""
from __future__ import annotations

import logging
import uuid
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from fitleague.models.activity import Activity
from fitleague.models.badge import Badge
from fitleague.models.enums import ALL_SPORTS, AttemptStatus, BadgeType
from fitleague.models.mission import MissionAttempt
from fitleague.models.user import User
from fitleague.services.badge_criteria import (
    DisciplineCriteria,
    DistanceCriteria,
    MissionCriteria,
    RankingCriteria,
    TimeCriteria,
    parse_criteria,
)
from fitleague.services.badge_service import BadgeService
from fitleague.services.timezone_service import (
    day_bounds,
    epoch_ms,
    previous_weeks,
    resolve_zone,
    to_user_local,
    week_bounds,
)

logger = logging.getLogger(__name__)

ACTIVITY_BADGE_TYPES = (BadgeType.TIME, BadgeType.DISTANCE, BadgeType.DISCIPLINE)


@dataclass
class EvaluationOutcome:
    awarded: list[uuid.UUID] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


def has_streak(weekly_counts: Sequence[int], min_activities: int, number_of_weeks: int) -> bool:
    """True if `number_of_weeks` consecutive entries each reach `min_activities`."""
    streak = 0
    for count in weekly_counts:
        streak = streak + 1 if count >= min_activities else 0
        if streak >= number_of_weeks:
            return True
    return False


def _sport_filter(stmt, badge: Badge):
    if ALL_SPORTS in (badge.sport_types or []):
        return stmt
    return stmt.where(Activity.sport_type.in_(badge.sport_types or []))


class BadgeEvaluator:
    badge_type: BadgeType

    async def evaluate(self, db: AsyncSession, user: User, badge: Badge, now: datetime) -> bool:
        """Award `badge` to `user` if eligible. Returns True when awarded."""
        if not await BadgeService.passes_gate(db, user, badge, self.badge_type):
            return False
        reason = await self.meets_criteria(db, user, badge, now)
        if reason is None:
            return False
        await BadgeService.award(db, user, badge, reason)
        return True

    async def meets_criteria(self, db: AsyncSession, user: User, badge: Badge, now: datetime) -> str | None:
        """Return the award message when the rule holds, otherwise None."""
        raise NotImplementedError


class _WindowedSumEvaluator(BadgeEvaluator):
    """Sums one activity measure over the badge's availability window."""

    async def _window_sum(self, db: AsyncSession, user: User, badge: Badge, column) -> float:
        zone = resolve_zone(user.timezone)
        stmt = select(func.coalesce(func.sum(column), 0)).where(
            Activity.user_id == user.id,
            Activity.is_valid.is_(True),
        )
        if badge.available_from:
            stmt = stmt.where(Activity.start_date_epoch_ms >= epoch_ms(day_bounds(badge.available_from, zone)[0]))
        if badge.available_until:
            stmt = stmt.where(Activity.start_date_epoch_ms <= epoch_ms(day_bounds(badge.available_until, zone)[1]))
        stmt = _sport_filter(stmt, badge)
        return float((await db.execute(stmt)).scalar() or 0)


class DistanceBadgeEvaluator(_WindowedSumEvaluator):
    badge_type = BadgeType.DISTANCE

    async def meets_criteria(self, db, user, badge, now):
        criteria: DistanceCriteria = parse_criteria(badge)
        total = await self._window_sum(db, user, badge, Activity.distance)
        if total >= criteria.min_meters_distance:
            return f"You earned the {badge.name} badge for covering {total:g} meters in activities."
        return None


class TimeBadgeEvaluator(_WindowedSumEvaluator):
    badge_type = BadgeType.TIME

    async def meets_criteria(self, db, user, badge, now):
        criteria: TimeCriteria = parse_criteria(badge)
        total_minutes = await self._window_sum(db, user, badge, Activity.elapsed_time) / 60
        if total_minutes >= criteria.min_minutes:
            return f"You earned the {badge.name} badge for accumulating {total_minutes:g} minutes of activity."
        return None


class DisciplineBadgeEvaluator(BadgeEvaluator):
    badge_type = BadgeType.DISCIPLINE

    async def weekly_counts(self, db: AsyncSession, user: User, badge: Badge, now: datetime, weeks: int) -> list[int]:
        zone = resolve_zone(user.timezone)
        window = previous_weeks(to_user_local(now, zone), weeks)
        start, _ = week_bounds(*window[0], zone)
        _, end = week_bounds(*window[-1], zone)
        stmt = select(Activity.year_in_user_timezone, Activity.week_in_user_timezone).where(
            Activity.user_id == user.id,
            Activity.is_valid.is_(True),
            Activity.start_date_epoch_ms >= epoch_ms(start),
            Activity.start_date_epoch_ms < epoch_ms(end),
        )
        stmt = _sport_filter(stmt, badge)
        counts = Counter((year, week) for year, week in (await db.execute(stmt)).all())
        return [counts.get(bucket, 0) for bucket in window]

    async def meets_criteria(self, db, user, badge, now):
        criteria: DisciplineCriteria = parse_criteria(badge)
        counts = await self.weekly_counts(db, user, badge, now, criteria.number_of_weeks)
        logger.debug("Discipline badge %s weekly counts for user %s: %s", badge.id, user.id, counts)
        if has_streak(counts, criteria.min_activities, criteria.number_of_weeks):
            return (
                f"You earned the {badge.name} badge for {criteria.number_of_weeks} consecutive weeks "
                f"with at least {criteria.min_activities} activities."
            )
        return None


class MissionBadgeEvaluator(BadgeEvaluator):
    badge_type = BadgeType.MISSION

    async def meets_criteria(self, db, user, badge, now):
        criteria: MissionCriteria = parse_criteria(badge)
        achieved = await db.execute(
            select(MissionAttempt.id).where(
                MissionAttempt.user_id == user.id,
                MissionAttempt.mission_id == criteria.mission_id,
                MissionAttempt.status == AttemptStatus.ACHIEVED,
            )
        )
        if achieved.first() is None:
            return None
        return f"You earned the {badge.name} badge for completing a mission."


class RankingBadgeEvaluator(BadgeEvaluator):
    badge_type = BadgeType.RANKING

    async def meets_criteria(self, db, user, badge, now):
        criteria: RankingCriteria = parse_criteria(badge)
        if user.league_id is None or criteria.ranking_league_id != user.league_id:
            return None
        return f"You earned the {badge.name} badge for reaching a new league."


EVALUATORS: dict[BadgeType, BadgeEvaluator] = {
    BadgeType.DISTANCE: DistanceBadgeEvaluator(),
    BadgeType.TIME: TimeBadgeEvaluator(),
    BadgeType.DISCIPLINE: DisciplineBadgeEvaluator(),
    BadgeType.MISSION: MissionBadgeEvaluator(),
    BadgeType.RANKING: RankingBadgeEvaluator(),
}


async def _run_evaluators(
    db: AsyncSession,
    user_id: uuid.UUID,
    badge_ids: list[uuid.UUID],
    now: datetime,
) -> EvaluationOutcome:
    # Ids only: a rollback expires every loaded instance, so reload per badge
    outcome = EvaluationOutcome()
    for badge_id in badge_ids:
        try:
            user = await db.get(User, user_id)
            badge = await db.get(Badge, badge_id)
            if user is None or badge is None:
                continue
            if await EVALUATORS[BadgeType(badge.type)].evaluate(db, user, badge, now):
                await db.commit()
                outcome.awarded.append(badge_id)
        except Exception as exc:
            logger.exception("Failed to evaluate badge %s for user %s", badge_id, user_id)
            outcome.errors.append(f"{badge_id}: {exc}")
            await db.rollback()
    return outcome


def _criteria_references(badge: Badge, attribute: str, target: uuid.UUID) -> bool:
    try:
        return getattr(parse_criteria(badge), attribute) == target
    except ValueError:
        logger.warning("Skipping badge %s with malformed criteria", badge.id)
        return False


async def evaluate_activity_badges(
    db: AsyncSession,
    user_id: uuid.UUID,
    activity_id: uuid.UUID,
    now: datetime | None = None,
) -> EvaluationOutcome:
    """TIME, DISTANCE and DISCIPLINE badges triggered by one admitted valid activity."""
    now = now or datetime.now(timezone.utc)
    activity = await db.get(Activity, activity_id)
    if activity is None or not activity.is_valid:
        return EvaluationOutcome()

    badges = (await db.execute(select(Badge).where(Badge.type.in_(ACTIVITY_BADGE_TYPES)))).scalars().all()
    candidates: list[uuid.UUID] = []
    for badge in badges:
        if not badge.matches_sport(activity.sport_type):
            continue
        if badge.type == BadgeType.TIME and not activity.elapsed_time:
            continue
        if badge.type == BadgeType.DISTANCE and not activity.distance:
            continue
        candidates.append(badge.id)

    logger.info("Evaluating %s activity badges for user %s", len(candidates), user_id)
    return await _run_evaluators(db, user_id, candidates, now)


async def evaluate_mission_badges(
    db: AsyncSession,
    user_id: uuid.UUID,
    mission_id: uuid.UUID,
    now: datetime | None = None,
) -> EvaluationOutcome:
    """MISSION badges whose criteria reference `mission_id`."""
    badges = (await db.execute(select(Badge).where(Badge.type == BadgeType.MISSION))).scalars().all()
    candidates = [b.id for b in badges if _criteria_references(b, "mission_id", mission_id)]
    return await _run_evaluators(db, user_id, candidates, now or datetime.now(timezone.utc))


async def evaluate_ranking_badges(
    db: AsyncSession,
    user_id: uuid.UUID,
    league_id: uuid.UUID,
    now: datetime | None = None,
) -> EvaluationOutcome:
    """RANKING badges whose criteria reference the user's new league."""
    badges = (await db.execute(select(Badge).where(Badge.type == BadgeType.RANKING))).scalars().all()
    candidates = [b.id for b in badges if _criteria_references(b, "ranking_league_id", league_id)]
    return await _run_evaluators(db, user_id, candidates, now or datetime.now(timezone.utc))
