from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from fitleague.core.exceptions import BadgeCriteriaError, ConflictError
from fitleague.models.badge import UserBadge
from fitleague.models.enums import AttemptStatus, BadgeType
from fitleague.models.mission import MissionAttempt
from fitleague.models.outbox import UserNotification
from fitleague.services.badge_criteria import DisciplineCriteria, parse_criteria
from fitleague.services.badge_evaluators import (
    evaluate_activity_badges,
    evaluate_mission_badges,
    evaluate_ranking_badges,
    has_streak,
)
from fitleague.services.badge_service import BadgeService

NOW = datetime(2026, 10, 14, 12, 0, tzinfo=timezone.utc)


async def _held(db, user_id) -> set:
    return set((await db.execute(select(UserBadge.badge_id).where(UserBadge.user_id == user_id))).scalars().all())


@pytest.mark.parametrize(
    "counts,expected",
    [
        ([2, 2, 0, 2, 2], False),
        ([2, 2, 2], True),
        ([3, 1, 2, 2, 2], True),
        ([2, 2, 1], False),
        ([], False),
    ],
)
def test_streak_resets_on_a_short_week(counts, expected):
    assert has_streak(counts, min_activities=2, number_of_weeks=3) is expected


def test_criteria_accept_camel_case_keys():
    class _Badge:
        id = "b1"
        type = BadgeType.DISCIPLINE
        criteria = {"numberOfWeeks": 4, "minActivities": 3}

    criteria = parse_criteria(_Badge())
    assert criteria == DisciplineCriteria(number_of_weeks=4, min_activities=3)


def test_malformed_criteria_raise():
    class _Badge:
        id = "b2"
        type = BadgeType.DISTANCE
        criteria = {"minMetersDistance": "far"}

    with pytest.raises(BadgeCriteriaError):
        parse_criteria(_Badge())


@pytest.mark.asyncio
async def test_distance_badge_awarded_once(db_session, user_factory, activity_factory, badge_factory):
    user = await user_factory()
    badge = await badge_factory(BadgeType.DISTANCE, {"minMetersDistance": 10000})
    await activity_factory(user, datetime(2026, 10, 12, 7, 0, tzinfo=timezone.utc), distance=6000)
    latest = await activity_factory(user, datetime(2026, 10, 14, 7, 0, tzinfo=timezone.utc), distance=5000)

    outcome = await evaluate_activity_badges(db_session, user.id, latest.id, NOW)
    assert outcome.awarded == [badge.id]
    assert outcome.errors == []

    again = await evaluate_activity_badges(db_session, user.id, latest.id, NOW)
    assert again.awarded == []
    assert (await db_session.execute(select(func.count(UserBadge.id)))).scalar() == 1

    notification = (await db_session.execute(select(UserNotification))).scalar_one()
    assert notification.type == "NEW_BADGE"
    assert badge.name in notification.title


@pytest.mark.asyncio
async def test_distance_below_threshold_not_awarded(db_session, user_factory, activity_factory, badge_factory):
    user = await user_factory()
    await badge_factory(BadgeType.DISTANCE, {"minMetersDistance": 10000})
    latest = await activity_factory(user, datetime(2026, 10, 14, 7, 0, tzinfo=timezone.utc), distance=9999)

    outcome = await evaluate_activity_badges(db_session, user.id, latest.id, NOW)
    assert outcome.awarded == []


@pytest.mark.asyncio
async def test_sport_filter_excludes_other_sports(db_session, user_factory, activity_factory, badge_factory):
    user = await user_factory()
    ride_badge = await badge_factory(BadgeType.DISTANCE, {"minMetersDistance": 1000}, sport_types=["Ride"])
    run_badge = await badge_factory(BadgeType.DISTANCE, {"minMetersDistance": 1000}, sport_types=["Run", "Walk"])
    latest = await activity_factory(user, datetime(2026, 10, 14, 7, 0, tzinfo=timezone.utc), distance=3000)

    outcome = await evaluate_activity_badges(db_session, user.id, latest.id, NOW)
    assert outcome.awarded == [run_badge.id]
    assert ride_badge.id not in await _held(db_session, user.id)


@pytest.mark.asyncio
async def test_availability_window_limits_the_sum(db_session, user_factory, activity_factory, badge_factory):
    user = await user_factory()
    await badge_factory(
        BadgeType.DISTANCE,
        {"minMetersDistance": 8000},
        available_from=date(2026, 10, 10),
        available_until=date(2026, 10, 31),
    )
    await activity_factory(user, datetime(2026, 10, 5, 7, 0, tzinfo=timezone.utc), distance=6000)
    latest = await activity_factory(user, datetime(2026, 10, 14, 7, 0, tzinfo=timezone.utc), distance=5000)

    outcome = await evaluate_activity_badges(db_session, user.id, latest.id, NOW)
    assert outcome.awarded == []


@pytest.mark.asyncio
async def test_time_badge_sums_elapsed_minutes(db_session, user_factory, activity_factory, badge_factory):
    user = await user_factory()
    badge = await badge_factory(BadgeType.TIME, {"minMinutes": 60})
    await activity_factory(user, datetime(2026, 10, 12, 7, 0, tzinfo=timezone.utc), elapsed_time=1800)
    latest = await activity_factory(user, datetime(2026, 10, 14, 7, 0, tzinfo=timezone.utc), elapsed_time=1800)

    outcome = await evaluate_activity_badges(db_session, user.id, latest.id, NOW)
    assert outcome.awarded == [badge.id]


@pytest.mark.asyncio
async def test_prerequisites_must_be_held(db_session, user_factory, activity_factory, badge_factory):
    user = await user_factory()
    base = await badge_factory(BadgeType.TIME, {"minMinutes": 600})
    advanced = await badge_factory(BadgeType.DISTANCE, {"minMetersDistance": 1000}, prerequisites=[str(base.id)])
    latest = await activity_factory(user, datetime(2026, 10, 14, 7, 0, tzinfo=timezone.utc), distance=3000)

    outcome = await evaluate_activity_badges(db_session, user.id, latest.id, NOW)
    assert outcome.awarded == []

    await BadgeService.award(db_session, user, base)
    await db_session.commit()

    outcome = await evaluate_activity_badges(db_session, user.id, latest.id, NOW)
    assert outcome.awarded == [advanced.id]


@pytest.mark.asyncio
async def test_award_rejects_a_second_copy(db_session, user_factory, badge_factory):
    user = await user_factory()
    badge = await badge_factory(BadgeType.TIME, {"minMinutes": 1})
    await BadgeService.award(db_session, user, badge)
    await db_session.commit()

    with pytest.raises(ConflictError):
        await BadgeService.award(db_session, user, badge)


@pytest.mark.asyncio
async def test_discipline_streak_over_consecutive_weeks(db_session, user_factory, activity_factory, badge_factory):
    user = await user_factory()
    badge = await badge_factory(BadgeType.DISCIPLINE, {"numberOfWeeks": 3, "minActivities": 2})
    latest = None
    for monday in (
        datetime(2026, 9, 28, 7, tzinfo=timezone.utc),
        datetime(2026, 10, 5, 7, tzinfo=timezone.utc),
        datetime(2026, 10, 12, 7, tzinfo=timezone.utc),
    ):
        await activity_factory(user, monday)
        latest = await activity_factory(user, monday + timedelta(days=1))

    outcome = await evaluate_activity_badges(db_session, user.id, latest.id, NOW)
    assert outcome.awarded == [badge.id]


@pytest.mark.asyncio
async def test_discipline_gap_breaks_the_streak(db_session, user_factory, activity_factory, badge_factory):
    user = await user_factory()
    await badge_factory(BadgeType.DISCIPLINE, {"numberOfWeeks": 3, "minActivities": 2})
    latest = None
    # Weeks 38, 39, (40 empty), 41, 42
    for monday in (
        datetime(2026, 9, 14, 7, tzinfo=timezone.utc),
        datetime(2026, 9, 21, 7, tzinfo=timezone.utc),
        datetime(2026, 10, 5, 7, tzinfo=timezone.utc),
        datetime(2026, 10, 12, 7, tzinfo=timezone.utc),
    ):
        await activity_factory(user, monday)
        latest = await activity_factory(user, monday + timedelta(days=1))

    outcome = await evaluate_activity_badges(db_session, user.id, latest.id, NOW)
    assert outcome.awarded == []


@pytest.mark.asyncio
async def test_invalid_activities_do_not_count(db_session, user_factory, activity_factory, badge_factory):
    user = await user_factory()
    await badge_factory(BadgeType.DISTANCE, {"minMetersDistance": 10000})
    await activity_factory(user, datetime(2026, 10, 12, 7, 0, tzinfo=timezone.utc), distance=9000, is_valid=False)
    latest = await activity_factory(user, datetime(2026, 10, 14, 7, 0, tzinfo=timezone.utc), distance=2000)

    outcome = await evaluate_activity_badges(db_session, user.id, latest.id, NOW)
    assert outcome.awarded == []


@pytest.mark.asyncio
async def test_malformed_badge_does_not_block_others(db_session, user_factory, activity_factory, badge_factory):
    user = await user_factory()
    broken_id = (await badge_factory(BadgeType.DISTANCE, {"minMeters": 10})).id
    good_id = (await badge_factory(BadgeType.TIME, {"minMinutes": 10})).id
    latest = await activity_factory(user, datetime(2026, 10, 14, 7, 0, tzinfo=timezone.utc))

    # The failing evaluator rolls the session back, so only ids are used afterwards
    outcome = await evaluate_activity_badges(db_session, user.id, latest.id, NOW)
    assert outcome.awarded == [good_id]
    assert len(outcome.errors) == 1
    assert str(broken_id) in outcome.errors[0]


@pytest.mark.asyncio
async def test_mission_badge_requires_achieved_attempt(db_session, user_factory, mission_factory, badge_factory):
    user = await user_factory()
    mission = await mission_factory()
    other = await mission_factory(name="Other mission")
    badge = await badge_factory(BadgeType.MISSION, {"missionId": str(mission.id)})
    await badge_factory(BadgeType.MISSION, {"missionId": str(other.id)})
    db_session.add(MissionAttempt(
        user_id=user.id,
        mission_id=mission.id,
        status=AttemptStatus.ACHIEVED,
        progress=52.0,
        start_date=datetime(2026, 10, 1, tzinfo=timezone.utc),
        end_date=datetime(2026, 10, 31, 23, 59, 59, tzinfo=timezone.utc),
        start_date_user_timezone="2026-10-01T00:00:00+00:00",
        end_date_user_timezone="2026-10-31T23:59:59+00:00",
        timezone="UTC",
    ))
    await db_session.commit()

    outcome = await evaluate_mission_badges(db_session, user.id, mission.id)
    assert outcome.awarded == [badge.id]


@pytest.mark.asyncio
async def test_ranking_badge_matches_new_league(db_session, user_factory, badge_factory, ladder):
    gold_four = ladder[("Gold", 4)]
    user = await user_factory(league_id=gold_four.id)
    badge = await badge_factory(BadgeType.RANKING, {"rankingLeagueId": str(gold_four.id)})
    await badge_factory(BadgeType.RANKING, {"rankingLeagueId": str(ladder[("Gold", 1)].id)})

    outcome = await evaluate_ranking_badges(db_session, user.id, gold_four.id)
    assert outcome.awarded == [badge.id]
    assert await _held(db_session, user.id) == {badge.id}


def test_criteria_error_maps_to_unprocessable():
    error = BadgeCriteriaError("bad criteria")
    assert isinstance(error, ValueError)
    assert error.status_code == 422
