from datetime import datetime, timedelta, timezone

import httpx
import pytest
from sqlalchemy import select

from fitleague.config import settings
from fitleague.models.badge import UserBadge
from fitleague.models.enums import BadgeType, DeliveryStatus, TaskStatus, TaskType
from fitleague.models.outbox import EvaluationTask, UserNotification
from fitleague.services.badge_service import BadgeService
from fitleague.services.notification_service import (
    HttpPushProvider,
    MockPushProvider,
    NotificationService,
    PushProvider,
    SendResult,
)
from fitleague.services.outbox_worker import OutboxWorker


class RecordingProvider(PushProvider):
    def __init__(self, status="SENT"):
        self.status = status
        self.sent = []

    async def send(self, push_token, title, message, data):
        self.sent.append((push_token, title, data["type"]))
        if self.status == "SENT":
            return SendResult(status="SENT", provider_message_id=f"msg-{len(self.sent)}")
        return SendResult(status=self.status, error_message="provider unavailable")


@pytest.mark.asyncio
async def test_drain_runs_badge_tasks(session_factory, db_session, user_factory, activity_factory, badge_factory):
    user = await user_factory()
    badge = await badge_factory(BadgeType.TIME, {"minMinutes": 10})
    activity = await activity_factory(user, datetime.now(timezone.utc) - timedelta(hours=1))
    BadgeService.enqueue_evaluation(db_session, TaskType.ACTIVITY_BADGES, user.id, activity.id)
    await db_session.commit()
    user_id, badge_id = user.id, badge.id

    summary = await OutboxWorker(provider=RecordingProvider()).drain_once(session_factory)

    assert summary.tasks_done == 1
    async with session_factory() as db:
        task = (await db.execute(select(EvaluationTask))).scalar_one()
        assert task.status == TaskStatus.DONE
        assert task.attempt_count == 1
        assert task.processed_at is not None
        held = (await db.execute(select(UserBadge).where(UserBadge.user_id == user_id))).scalar_one()
        assert held.badge_id == badge_id


@pytest.mark.asyncio
async def test_failing_task_is_retried_until_max_attempts(session_factory, db_session, user_factory, activity_factory, badge_factory):
    user = await user_factory()
    await badge_factory(BadgeType.DISTANCE, {"minMeters": 1})
    activity = await activity_factory(user, datetime.now(timezone.utc) - timedelta(hours=1))
    BadgeService.enqueue_evaluation(db_session, TaskType.ACTIVITY_BADGES, user.id, activity.id)
    await db_session.commit()

    worker = OutboxWorker(provider=RecordingProvider(), max_attempts=2)
    first = await worker.drain_once(session_factory)
    second = await worker.drain_once(session_factory)
    third = await worker.drain_once(session_factory)

    assert (first.tasks_failed, second.tasks_failed, third.tasks_failed) == (1, 1, 0)
    async with session_factory() as db:
        task = (await db.execute(select(EvaluationTask))).scalar_one()
        assert task.status == TaskStatus.FAILED
        assert task.attempt_count == 2
        assert "minMetersDistance" in task.last_error


@pytest.mark.asyncio
async def test_notifications_are_delivered(session_factory, db_session, user_factory):
    user = await user_factory(push_token="device-token")
    NotificationService.enqueue(db_session, user, 2, "NEW_ACTIVITY", "New activity registered with 10 points.", "Activity")
    await db_session.commit()
    provider = RecordingProvider()

    summary = await OutboxWorker(provider=provider).drain_once(session_factory)

    assert summary.notifications_sent == 1
    assert provider.sent == [("device-token", "Activity", "NEW_ACTIVITY")]
    async with session_factory() as db:
        notification = (await db.execute(select(UserNotification))).scalar_one()
        assert notification.status == DeliveryStatus.SENT
        assert notification.provider_message_id == "msg-1"
        assert notification.sent_at is not None


@pytest.mark.asyncio
async def test_notification_without_push_token_is_skipped(session_factory, db_session, user_factory):
    user = await user_factory(push_token=None)
    NotificationService.enqueue(db_session, user, 1, "REMAIN", "You remain.", "League Unchanged")
    await db_session.commit()
    provider = RecordingProvider()

    summary = await OutboxWorker(provider=provider).drain_once(session_factory)

    assert summary.notifications_skipped == 1
    assert provider.sent == []


@pytest.mark.asyncio
async def test_failed_delivery_is_retried(session_factory, db_session, user_factory):
    user = await user_factory(push_token="device-token")
    NotificationService.enqueue(db_session, user, 1, "NEW_BADGE", "Badge!", "New badge earned")
    await db_session.commit()

    await OutboxWorker(provider=RecordingProvider(status="FAILED"), max_attempts=3).drain_once(session_factory)
    async with session_factory() as db:
        notification = (await db.execute(select(UserNotification))).scalar_one()
        assert notification.status == DeliveryStatus.FAILED
        assert notification.attempt_count == 1
        assert notification.error_message == "provider unavailable"

    summary = await OutboxWorker(provider=RecordingProvider(), max_attempts=3).drain_once(session_factory)
    assert summary.notifications_sent == 1


@pytest.mark.asyncio
async def test_mock_provider_respects_push_settings(monkeypatch):
    monkeypatch.setattr(settings, "PUSH_ENABLED", False)
    assert (await MockPushProvider().send("t", "title", "body", {})).status == "SKIPPED"

    monkeypatch.setattr(settings, "PUSH_ENABLED", True)
    monkeypatch.setattr(settings, "PUSH_DRY_RUN", True)
    result = await MockPushProvider().send("t", "title", "body", {})
    assert (result.status, result.provider_message_id) == ("SENT", "dry-run")


@pytest.mark.asyncio
async def test_http_provider_requires_configuration(monkeypatch):
    monkeypatch.setattr(settings, "PUSH_API_URL", None)
    result = await HttpPushProvider().send("t", "title", "body", {})
    assert result.status == "FAILED"
    assert result.error_message == "Missing push API configuration"


class ExplodingProvider(PushProvider):
    def __init__(self):
        self.calls = 0

    async def send(self, push_token, title, message, data):
        self.calls += 1
        raise RuntimeError("connection reset")


@pytest.mark.asyncio
async def test_unreadable_push_response_is_bounded(monkeypatch, session_factory, db_session, user_factory):
    posts = []

    async def fake_post(self, url, **kwargs):
        posts.append(url)
        return httpx.Response(200, content=b"OK")

    monkeypatch.setattr(settings, "PUSH_API_URL", "https://push.example.test/send")
    monkeypatch.setattr(settings, "PUSH_API_TOKEN", "secret")
    monkeypatch.setattr(httpx.AsyncClient, "post", fake_post)
    user = await user_factory(push_token="device-token")
    NotificationService.enqueue(db_session, user, 1, "NEW_BADGE", "Badge!", "New badge earned")
    await db_session.commit()

    worker = OutboxWorker(provider=HttpPushProvider(), max_attempts=3)
    for _ in range(6):
        await worker.drain_once(session_factory)

    assert len(posts) == 3
    async with session_factory() as db:
        notification = (await db.execute(select(UserNotification))).scalar_one()
        assert notification.status == DeliveryStatus.FAILED
        assert notification.attempt_count == 3
        assert notification.error_message


@pytest.mark.asyncio
async def test_provider_crash_counts_as_an_attempt(session_factory, db_session, user_factory):
    user = await user_factory(push_token="device-token")
    NotificationService.enqueue(db_session, user, 1, "REMAIN", "You remain.", "League Unchanged")
    await db_session.commit()
    provider = ExplodingProvider()

    worker = OutboxWorker(provider=provider, max_attempts=2)
    summaries = [await worker.drain_once(session_factory) for _ in range(4)]

    assert provider.calls == 2
    assert [s.notifications_failed for s in summaries] == [1, 1, 0, 0]
    async with session_factory() as db:
        notification = (await db.execute(select(UserNotification))).scalar_one()
        assert notification.status == DeliveryStatus.FAILED
        assert notification.attempt_count == 2
        assert notification.error_message == "connection reset"
