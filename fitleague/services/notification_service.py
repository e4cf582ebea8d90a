import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from fitleague.config import settings
from fitleague.models.enums import DeliveryStatus
from fitleague.models.outbox import UserNotification
from fitleague.models.user import User
from fitleague.services.timezone_service import resolve_zone, to_user_local

logger = logging.getLogger(__name__)


@dataclass
class SendResult:
    status: str
    provider_message_id: str | None = None
    error_message: str | None = None


class PushProvider:
    async def send(self, push_token: str, title: str, message: str, data: dict[str, Any]) -> SendResult:
        raise NotImplementedError


class MockPushProvider(PushProvider):
    async def send(self, push_token: str, title: str, message: str, data: dict[str, Any]) -> SendResult:
        if not settings.PUSH_ENABLED:
            return SendResult(status="SKIPPED", error_message="Push disabled")
        if settings.PUSH_DRY_RUN:
            return SendResult(status="SENT", provider_message_id="dry-run")
        return SendResult(status="SENT", provider_message_id="mock-provider")


class HttpPushProvider(PushProvider):
    async def send(self, push_token: str, title: str, message: str, data: dict[str, Any]) -> SendResult:
        if not settings.PUSH_API_URL or not settings.PUSH_API_TOKEN:
            return SendResult(status="FAILED", error_message="Missing push API configuration")

        payload = {"token": push_token, "notification": {"title": title, "body": message}, "data": data}
        headers = {"Authorization": f"Bearer {settings.PUSH_API_TOKEN}"}
        try:
            async with httpx.AsyncClient(timeout=settings.PUSH_TIMEOUT_SECONDS) as client:
                response = await client.post(settings.PUSH_API_URL, json=payload, headers=headers)
            if response.status_code >= 400:
                return SendResult(status="FAILED", error_message=f"HTTP {response.status_code}")

            response_data = response.json() if response.content else {}
            return SendResult(status="SENT", provider_message_id=str(response_data.get("message_id", "http-provider")))
        except Exception as exc:
            return SendResult(status="FAILED", error_message=str(exc))


def get_provider() -> PushProvider:
    if settings.PUSH_PROVIDER.lower() == "http":
        return HttpPushProvider()
    return MockPushProvider()


class NotificationService:
    @staticmethod
    def enqueue(
        db: AsyncSession,
        user: User,
        importance: int,
        type: str,
        message: str,
        title: str,
    ) -> UserNotification:
        """Record a notification intent in the caller's transaction. Delivery happens in the outbox worker."""
        now = datetime.now(timezone.utc)
        notification = UserNotification(
            user_id=user.id,
            importance=importance,
            type=type,
            title=title,
            message=message,
            created_at=now,
            created_at_user_timezone=to_user_local(now, resolve_zone(user.timezone)).isoformat(),
            status=DeliveryStatus.QUEUED,
            attempt_count=0,
        )
        db.add(notification)
        return notification

    @staticmethod
    async def deliver(
        notification: UserNotification,
        user: User,
        provider: PushProvider | None = None,
    ) -> UserNotification:
        """Push one notification and record the outcome on its row.

        The caller counts the attempt and commits it beforehand. Does not commit.
        """
        now = datetime.now(timezone.utc)

        if not user.push_token:
            notification.status = DeliveryStatus.SKIPPED
            notification.error_message = "No push token"
            notification.failed_at = now
            return notification

        provider = provider or get_provider()
        result = await provider.send(
            user.push_token,
            notification.title,
            notification.message,
            {"type": notification.type, "importance": notification.importance, "notification_id": str(notification.id)},
        )
        if result.status == "SENT":
            notification.status = DeliveryStatus.SENT
            notification.provider_message_id = result.provider_message_id
            notification.sent_at = now
            notification.error_message = None
        elif result.status == "SKIPPED":
            notification.status = DeliveryStatus.SKIPPED
            notification.error_message = result.error_message
            notification.failed_at = now
        else:
            notification.status = DeliveryStatus.FAILED
            notification.error_message = result.error_message
            notification.failed_at = now
            logger.warning("Push delivery failed for notification %s: %s", notification.id, result.error_message)
        return notification
