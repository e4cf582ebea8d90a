"""Badge awarding primitives: eligibility gate, award and deferred evaluation intents."""
import logging
import uuid
from collections.abc import Iterable
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fitleague.core.exceptions import ConflictError
from fitleague.models.badge import Badge, UserBadge
from fitleague.models.enums import BadgeType, TaskStatus, TaskType
from fitleague.models.outbox import EvaluationTask
from fitleague.models.user import User
from fitleague.services.notification_service import NotificationService

logger = logging.getLogger(__name__)

BADGE_NOTIFICATION_IMPORTANCE = 2


class BadgeService:
    @staticmethod
    async def holds_badge(db: AsyncSession, user_id: uuid.UUID, badge_id: uuid.UUID) -> bool:
        existing = await db.execute(
            select(UserBadge.id).where(UserBadge.user_id == user_id, UserBadge.badge_id == badge_id)
        )
        return existing.first() is not None

    @staticmethod
    async def has_prerequisites(db: AsyncSession, user_id: uuid.UUID, prerequisites: Iterable[str | uuid.UUID]) -> bool:
        required = {uuid.UUID(str(badge_id)) for badge_id in prerequisites}
        if not required:
            return True
        result = await db.execute(
            select(UserBadge.badge_id).where(UserBadge.user_id == user_id, UserBadge.badge_id.in_(required))
        )
        return required <= set(result.scalars().all())

    @staticmethod
    async def passes_gate(db: AsyncSession, user: User, badge: Badge, expected_type: BadgeType) -> bool:
        """Common eligibility gate: type, not yet held, prerequisites held. Short-circuits."""
        if badge.type != expected_type:
            logger.debug("Badge %s is %s, not %s; skipping", badge.id, badge.type, expected_type)
            return False
        if await BadgeService.holds_badge(db, user.id, badge.id):
            logger.debug("User %s already holds badge %s", user.id, badge.id)
            return False
        if not await BadgeService.has_prerequisites(db, user.id, badge.prerequisites or []):
            logger.debug("User %s lacks prerequisites for badge %s", user.id, badge.id)
            return False
        return True

    @staticmethod
    async def award(db: AsyncSession, user: User, badge: Badge, reason: str | None = None) -> UserBadge:
        """Create the UserBadge and queue the NEW_BADGE notification. Flushes, does not commit."""
        if await BadgeService.holds_badge(db, user.id, badge.id):
            raise ConflictError(f"User {user.id} already holds badge {badge.id}")

        user_badge = UserBadge(user_id=user.id, badge_id=badge.id, earned_at=datetime.now(timezone.utc))
        db.add(user_badge)
        NotificationService.enqueue(
            db,
            user,
            BADGE_NOTIFICATION_IMPORTANCE,
            "NEW_BADGE",
            reason or f"Congratulations! You've earned the {badge.name} badge.",
            f"New badge earned: {badge.name}",
        )
        await db.flush()
        logger.info("Badge '%s' awarded to user %s", badge.name, user.id)
        return user_badge

    @staticmethod
    def enqueue_evaluation(db: AsyncSession, task_type: TaskType, user_id: uuid.UUID, ref_id: uuid.UUID) -> EvaluationTask:
        task = EvaluationTask(
            task_type=task_type,
            user_id=user_id,
            ref_id=ref_id,
            status=TaskStatus.QUEUED,
            attempt_count=0,
        )
        db.add(task)
        return task
