"""League ladder navigation and the weekly ranking rotation.

The ladder is a total order: categories by ascending `order` (the smallest
order is the top tier), then leagues by ascending `level` (level 1 is the top
of its category). Promotion and relegation move exactly one rung; the top of
the top category and the bottom of the bottom category are fixed points.
"""
import logging
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fitleague.config import settings
from fitleague.models.enums import CoinTransactionType, TaskType
from fitleague.models.ranking import LEAGUES_PER_CATEGORY, RankingCategory, RankingLeague
from fitleague.models.user import User
from fitleague.services.badge_service import BadgeService
from fitleague.services.coin_service import CoinService
from fitleague.services.notification_service import NotificationService
from fitleague.services.timezone_service import get_scheduler_timezone, iso_week, to_user_local, week_key

logger = logging.getLogger(__name__)

PROMOTE = "PROMOTE"
RELEGATE = "RELEGATE"
REMAIN = "REMAIN"


@dataclass(frozen=True)
class Rung:
    league_id: uuid.UUID
    category_id: uuid.UUID
    category_name: str
    category_order: int
    level: int


class Ladder:
    def __init__(self, rungs: Sequence[Rung]):
        self.rungs = sorted(rungs, key=lambda r: (r.category_order, r.level))
        self._by_league = {r.league_id: r for r in self.rungs}
        self._orders = sorted({r.category_order for r in self.rungs})

    def __getitem__(self, league_id: uuid.UUID) -> Rung:
        return self._by_league[league_id]

    def _category(self, order: int) -> list[Rung]:
        return [r for r in self.rungs if r.category_order == order]

    def promotion_target(self, league_id: uuid.UUID) -> Rung:
        current = self[league_id]
        category = self._category(current.category_order)
        above = [r for r in category if r.level < current.level]
        if above:
            return max(above, key=lambda r: r.level)
        higher = [o for o in self._orders if o < current.category_order]
        if not higher:
            return current
        # Entering a higher tier lands on its bottom league
        return max(self._category(max(higher)), key=lambda r: r.level)

    def relegation_target(self, league_id: uuid.UUID) -> Rung:
        current = self[league_id]
        category = self._category(current.category_order)
        below = [r for r in category if r.level > current.level]
        if below:
            return min(below, key=lambda r: r.level)
        lower = [o for o in self._orders if o > current.category_order]
        if not lower:
            return current
        return min(self._category(min(lower)), key=lambda r: r.level)


def plan_rotation(
    members: Sequence[uuid.UUID],
    promotion_count: int,
    relegation_count: int,
) -> tuple[list[uuid.UUID], list[uuid.UUID], list[uuid.UUID]]:
    """Split a league ranked best-first into disjoint (promote, relegate, remain) buckets."""
    promote = list(members[:max(promotion_count, 0)])
    rest = list(members[len(promote):])
    cut = len(rest) - min(max(relegation_count, 0), len(rest))
    return promote, rest[cut:], rest[:cut]


@dataclass
class RotationSummary:
    week: str
    leagues: int = 0
    users: int = 0
    promoted: int = 0
    relegated: int = 0
    remained: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)


def _movement_notice(action: str, current: Rung, target: Rung) -> tuple[str, str, str]:
    """(type, title, message) for the user's rotation notification."""
    if action == PROMOTE and target != current:
        if target.category_id != current.category_id:
            message = f"You have been promoted to {target.category_name} Category, League {target.level}."
        else:
            message = f"You have been promoted to League {target.level} within the same category."
        return PROMOTE, "Promotion Notification", message
    if action == RELEGATE and target != current:
        if target.category_id != current.category_id:
            message = f"You have been relegated to {target.category_name} Category, League {target.level}."
        else:
            message = f"You have been relegated to League {target.level} within the same category."
        return RELEGATE, "Relegation Notification", message
    return REMAIN, "League Unchanged", f"You remain in {current.category_name} Category, League {current.level}."


class LeagueService:
    @staticmethod
    async def load_ladder(db: AsyncSession) -> Ladder:
        result = await db.execute(
            select(RankingLeague, RankingCategory)
            .join(RankingCategory, RankingCategory.id == RankingLeague.category_id)
            .order_by(RankingCategory.order, RankingLeague.level)
        )
        return Ladder([
            Rung(
                league_id=league.id,
                category_id=category.id,
                category_name=category.name,
                category_order=category.order,
                level=league.level,
            )
            for league, category in result.all()
        ])

    @staticmethod
    async def seed_ladder(db: AsyncSession) -> int:
        """Create the missing levels 1..LEAGUES_PER_CATEGORY for every category. Returns leagues created."""
        categories = (await db.execute(select(RankingCategory).order_by(RankingCategory.order))).scalars().all()
        existing = {
            (category_id, level)
            for category_id, level in (await db.execute(select(RankingLeague.category_id, RankingLeague.level))).all()
        }
        created = 0
        for category in categories:
            for level in range(1, LEAGUES_PER_CATEGORY + 1):
                if (category.id, level) in existing:
                    continue
                db.add(RankingLeague(category_id=category.id, level=level))
                created += 1
        await db.commit()
        logger.info("Seeded %s ranking leagues across %s categories", created, len(categories))
        return created

    @staticmethod
    async def snapshot_memberships(db: AsyncSession, ladder: Ladder) -> dict[uuid.UUID, list[uuid.UUID]]:
        """Members of every league, best weekly score first, read before anyone moves."""
        result = await db.execute(
            select(User.league_id, User.id)
            .where(User.league_id.is_not(None), User.is_active.is_(True))
            .order_by(User.league_id, User.current_week_score.desc(), User.id)
        )
        memberships: dict[uuid.UUID, list[uuid.UUID]] = {rung.league_id: [] for rung in ladder.rungs}
        for league_id, user_id in result.all():
            if league_id in memberships:
                memberships[league_id].append(user_id)
        return memberships

    @staticmethod
    async def rotate(
        session_factory: async_sessionmaker[AsyncSession],
        now: datetime | None = None,
    ) -> RotationSummary:
        now = now or datetime.now(timezone.utc)
        reference = week_key(*iso_week(to_user_local(now, get_scheduler_timezone())))
        summary = RotationSummary(week=reference)

        async with session_factory() as db:
            ladder = await LeagueService.load_ladder(db)
            memberships = await LeagueService.snapshot_memberships(db, ladder)

            plan: list[tuple[uuid.UUID, str, Rung, Rung]] = []
            for league_id, members in memberships.items():
                if not members:
                    continue
                summary.leagues += 1
                current = ladder[league_id]
                promote, relegate, remain = plan_rotation(
                    members, settings.LEAGUE_PROMOTION_COUNT, settings.LEAGUE_RELEGATION_COUNT
                )
                plan += [(u, PROMOTE, current, ladder.promotion_target(league_id)) for u in promote]
                plan += [(u, RELEGATE, current, ladder.relegation_target(league_id)) for u in relegate]
                plan += [(u, REMAIN, current, current) for u in remain]
                logger.info(
                    "League %s/%s: %s promote, %s relegate, %s remain",
                    current.category_name, current.level, len(promote), len(relegate), len(remain),
                )

            for user_id, action, current, target in plan:
                summary.users += 1
                try:
                    outcome = await LeagueService._rotate_user(db, user_id, action, current, target, reference)
                except IntegrityError:
                    await db.rollback()
                    logger.info("User %s already rotated for %s", user_id, reference)
                    summary.skipped += 1
                    continue
                except Exception as exc:
                    await db.rollback()
                    logger.exception("Failed to rotate user %s", user_id)
                    summary.errors.append(f"{user_id}: {exc}")
                    continue
                if outcome is None:
                    summary.skipped += 1
                elif outcome == PROMOTE:
                    summary.promoted += 1
                elif outcome == RELEGATE:
                    summary.relegated += 1
                else:
                    summary.remained += 1

        logger.info(
            "Ranking rotation %s done: %s users, %s promoted, %s relegated, %s remained, %s skipped, %s errors",
            reference, summary.users, summary.promoted, summary.relegated,
            summary.remained, summary.skipped, len(summary.errors),
        )
        return summary

    @staticmethod
    async def _rotate_user(
        db: AsyncSession,
        user_id: uuid.UUID,
        action: str,
        current: Rung,
        target: Rung,
        reference: str,
    ) -> str | None:
        """Coins, ledger, reset, move and notify for one user in one transaction. None if already done."""
        if await CoinService.has_transaction(db, user_id, CoinTransactionType.WEEKLY_POINTS, reference):
            return None
        user = await db.get(User, user_id, populate_existing=True)
        if user is None:
            return None

        CoinService.credit(
            db,
            user,
            user.current_week_score or 0,
            CoinTransactionType.WEEKLY_POINTS,
            "Weekly points conversion to coins",
            reference,
        )
        user.current_week_score = 0
        user.league_id = target.league_id

        kind, title, message = _movement_notice(action, current, target)
        BadgeService.enqueue_evaluation(db, TaskType.RANKING_BADGES, user.id, target.league_id)
        NotificationService.enqueue(db, user, 1, kind, message, title)
        await db.commit()
        return kind
