"""Consumes outbox rows: deferred badge evaluations and queued push notifications."""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fitleague.config import settings
from fitleague.models.enums import DeliveryStatus, TaskStatus, TaskType
from fitleague.models.outbox import EvaluationTask, UserNotification
from fitleague.models.user import User
from fitleague.services.badge_evaluators import (
    evaluate_activity_badges,
    evaluate_mission_badges,
    evaluate_ranking_badges,
)
from fitleague.services.notification_service import NotificationService, PushProvider

logger = logging.getLogger(__name__)

TASK_HANDLERS = {
    TaskType.ACTIVITY_BADGES: evaluate_activity_badges,
    TaskType.MISSION_BADGES: evaluate_mission_badges,
    TaskType.RANKING_BADGES: evaluate_ranking_badges,
}


@dataclass
class DrainSummary:
    tasks_done: int = 0
    tasks_failed: int = 0
    notifications_sent: int = 0
    notifications_skipped: int = 0
    notifications_failed: int = 0

    @property
    def processed(self) -> int:
        return (
            self.tasks_done + self.tasks_failed
            + self.notifications_sent + self.notifications_skipped + self.notifications_failed
        )


class OutboxWorker:
    def __init__(
        self,
        provider: PushProvider | None = None,
        batch_size: int | None = None,
        max_attempts: int | None = None,
    ):
        self.provider = provider
        self.batch_size = batch_size or settings.OUTBOX_BATCH_SIZE
        self.max_attempts = max_attempts or settings.OUTBOX_MAX_ATTEMPTS

    async def drain_once(self, session_factory: async_sessionmaker[AsyncSession]) -> DrainSummary:
        summary = DrainSummary()
        async with session_factory() as db:
            await self.process_tasks(db, summary)
        async with session_factory() as db:
            await self.deliver_notifications(db, summary)
        if summary.processed:
            logger.info("Outbox drained: %s", summary)
        return summary

    def _retryable(self, status_column, attempt_column, queued, failed):
        # attempt_count is committed before the work runs
        return and_(or_(status_column == queued, status_column == failed), attempt_column < self.max_attempts)

    async def process_tasks(self, db: AsyncSession, summary: DrainSummary) -> None:
        task_ids = (await db.execute(
            select(EvaluationTask.id)
            .where(self._retryable(EvaluationTask.status, EvaluationTask.attempt_count, TaskStatus.QUEUED, TaskStatus.FAILED))
            .order_by(EvaluationTask.created_at)
            .limit(self.batch_size)
        )).scalars().all()
        for task_id in task_ids:
            if await self._run_task(db, task_id):
                summary.tasks_done += 1
            else:
                summary.tasks_failed += 1

    async def _run_task(self, db: AsyncSession, task_id: uuid.UUID) -> bool:
        task = await db.get(EvaluationTask, task_id, populate_existing=True)
        task.attempt_count += 1
        task_type, user_id, ref_id = TaskType(task.task_type), task.user_id, task.ref_id
        await db.commit()

        error: str | None = None
        try:
            outcome = await TASK_HANDLERS[task_type](db, user_id, ref_id)
            if outcome.errors:
                error = "; ".join(outcome.errors)
        except Exception as exc:
            await db.rollback()
            logger.exception("Evaluation task %s (%s) failed", task_id, task_type.value)
            error = str(exc)

        task = await db.get(EvaluationTask, task_id, populate_existing=True)
        if error:
            task.status = TaskStatus.FAILED
            task.last_error = error
            if task.attempt_count >= self.max_attempts:
                logger.error("Evaluation task %s gave up after %s attempts: %s", task_id, task.attempt_count, error)
        else:
            task.status = TaskStatus.DONE
            task.last_error = None
            task.processed_at = datetime.now(timezone.utc)
        await db.commit()
        return error is None

    async def deliver_notifications(self, db: AsyncSession, summary: DrainSummary) -> None:
        rows = (await db.execute(
            select(UserNotification.id, UserNotification.user_id)
            .where(self._retryable(
                UserNotification.status, UserNotification.attempt_count, DeliveryStatus.QUEUED, DeliveryStatus.FAILED
            ))
            .order_by(UserNotification.created_at)
            .limit(self.batch_size)
        )).all()
        for notification_id, user_id in rows:
            notification = await db.get(UserNotification, notification_id, populate_existing=True)
            notification.attempt_count += 1
            await db.commit()

            try:
                user = await db.get(User, user_id)
                await NotificationService.deliver(notification, user, self.provider)
                status = DeliveryStatus(notification.status)
                await db.commit()
            except Exception as exc:
                await db.rollback()
                logger.exception("Failed to deliver notification %s", notification_id)
                await self._mark_notification_failed(db, notification_id, str(exc))
                summary.notifications_failed += 1
                continue
            if status == DeliveryStatus.SENT:
                summary.notifications_sent += 1
            elif status == DeliveryStatus.SKIPPED:
                summary.notifications_skipped += 1
            else:
                summary.notifications_failed += 1

    async def _mark_notification_failed(self, db: AsyncSession, notification_id: uuid.UUID, error: str) -> None:
        notification = await db.get(UserNotification, notification_id, populate_existing=True)
        notification.status = DeliveryStatus.FAILED
        notification.error_message = error
        notification.failed_at = datetime.now(timezone.utc)
        if notification.attempt_count >= self.max_attempts:
            logger.error("Notification %s gave up after %s attempts: %s", notification_id, notification.attempt_count, error)
        await db.commit()
