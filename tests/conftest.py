import uuid
from datetime import date, datetime, timedelta, timezone
from typing import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.pool import NullPool

import fitleague.models  # noqa: F401
from fitleague.database import Base, build_engine, build_session_factory, get_db
from fitleague.main import app
from fitleague.models.activity import Activity
from fitleague.models.badge import Badge
from fitleague.models.enums import ALL_SPORTS, GoalType
from fitleague.models.mission import Mission
from fitleague.models.ranking import RankingCategory, RankingLeague
from fitleague.models.user import User
from fitleague.services.scoring_service import calculate_points
from fitleague.services.timezone_service import epoch_ms, iso_week, resolve_zone, to_user_local


@pytest.fixture(scope="function")
async def db_engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'fitleague.db'}", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine):
    return build_session_factory(db_engine)


@pytest.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture(scope="function")
async def client(db_session, session_factory) -> AsyncGenerator[AsyncClient, None]:
    async def override_get_db():
        yield db_session

    app.state.session_factory = session_factory
    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def user_factory(db_session):
    async def _create(**overrides) -> User:
        fields = {
            "email": f"{uuid.uuid4().hex[:10]}@fitleague.test",
            "full_name": "Test Athlete",
            "timezone": "UTC",
            "weekly_scores": {},
            "current_week_score": 0,
            "coins": 0,
        }
        fields.update(overrides)
        user = User(**fields)
        db_session.add(user)
        await db_session.commit()
        return user

    return _create


@pytest.fixture
def activity_factory(db_session):
    """Stores an activity directly, bypassing admission."""

    async def _create(user: User, start: datetime, **overrides) -> Activity:
        zone = resolve_zone(user.timezone)
        elapsed = overrides.pop("elapsed_time", 1800)
        moving = overrides.pop("moving_time", elapsed)
        heart_rate = overrides.pop("average_heartrate", 140.0)
        year, week = iso_week(to_user_local(start, zone))
        points, factor = calculate_points(heart_rate, moving)
        fields = {
            "external_id": uuid.uuid4().hex,
            "user_id": user.id,
            "name": "Stored run",
            "sport_type": "Run",
            "start_date": start,
            "start_date_user_timezone": to_user_local(start, zone).isoformat(),
            "start_date_epoch_ms": epoch_ms(start),
            "end_date_epoch_ms": epoch_ms(start + timedelta(seconds=elapsed)),
            "created_at": start,
            "created_at_user_timezone": to_user_local(start, zone).isoformat(),
            "created_at_epoch_ms": epoch_ms(start),
            "week_in_user_timezone": week,
            "year_in_user_timezone": year,
            "average_heartrate": heart_rate,
            "distance": 5000.0,
            "elapsed_time": elapsed,
            "moving_time": moving,
            "points": points,
            "effort_factor": factor,
            "is_valid": True,
        }
        fields.update(overrides)
        activity = Activity(**fields)
        db_session.add(activity)
        await db_session.commit()
        return activity

    return _create


@pytest.fixture
def badge_factory(db_session):
    async def _create(type, criteria, **overrides) -> Badge:
        fields = {
            "name": f"Badge {uuid.uuid4().hex[:6]}",
            "type": type,
            "criteria": criteria,
            "sport_types": [ALL_SPORTS],
            "prerequisites": [],
        }
        fields.update(overrides)
        badge = Badge(**fields)
        db_session.add(badge)
        await db_session.commit()
        return badge

    return _create


@pytest.fixture
def mission_factory(db_session):
    async def _create(**overrides) -> Mission:
        fields = {
            "name": "October distance",
            "goal_type": GoalType.DISTANCE,
            "goal_value": 50.0,
            "sport_types": [ALL_SPORTS],
            "initial_day": date(2026, 10, 1),
            "end_day": date(2026, 10, 31),
            "is_active": True,
        }
        fields.update(overrides)
        mission = Mission(**fields)
        db_session.add(mission)
        await db_session.commit()
        return mission

    return _create


@pytest.fixture
async def ladder(db_session) -> dict[tuple[str, int], RankingLeague]:
    """Two categories of four leagues: Gold (top tier) above Silver."""
    leagues: dict[tuple[str, int], RankingLeague] = {}
    for order, name in ((1, "Gold"), (2, "Silver")):
        category = RankingCategory(name=name, order=order)
        db_session.add(category)
        await db_session.flush()
        for level in range(1, 5):
            league = RankingLeague(category_id=category.id, level=level)
            db_session.add(league)
            leagues[(name, level)] = league
    await db_session.commit()
    return leagues


@pytest.fixture
def utc():
    def _at(*args) -> datetime:
        return datetime(*args, tzinfo=timezone.utc)

    return _at
