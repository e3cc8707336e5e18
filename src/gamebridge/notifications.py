"""Fire-and-forget notification sink.

The engine only enqueues; delivery (SMTP, Teams webhooks) is owned by whatever
worker drains the queue.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from enum import Enum

import redis.asyncio as redis
import structlog
from pydantic import BaseModel, Field

from gamebridge.config import Settings

logger = structlog.get_logger()


class Channel(str, Enum):
    EMAIL = "email"
    TEAMS = "teams"


class Notification(BaseModel):
    recipient_email: str
    subject: str
    body: str
    channel: Channel = Channel.TEAMS
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class NotificationSink(ABC):
    """Abstract base class for notification transports."""

    @abstractmethod
    async def enqueue(self, notification: Notification) -> None:
        """Queue a notification for delivery."""
        ...


class RedisNotificationSink(NotificationSink):
    """Push notifications onto a Redis list and announce them over pub/sub."""

    def __init__(
        self,
        client: redis.Redis,
        queue_key: str = "notifications:queue",
        channel: str = "pubsub:notifications",
    ) -> None:
        self.redis = client
        self.queue_key = queue_key
        self.channel = channel

    @classmethod
    def from_settings(cls, settings: Settings) -> RedisNotificationSink:
        """Open a pooled client on ``settings.redis_url``. Connects lazily on first enqueue."""
        client = redis.from_url(  # type: ignore[no-untyped-call]
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=50,
        )
        return cls(client, queue_key=settings.notification_queue_key, channel=settings.notification_channel)

    async def aclose(self) -> None:
        await self.redis.aclose()

    async def enqueue(self, notification: Notification) -> None:
        payload = json.dumps(notification.model_dump(mode="json"))
        await self.redis.lpush(self.queue_key, payload)
        await self.redis.publish(self.channel, payload)


class NullNotificationSink(NotificationSink):
    """Drops everything. Used when no transport is configured."""

    async def enqueue(self, notification: Notification) -> None:
        logger.debug("notification_dropped", subject=notification.subject)


async def enqueue_best_effort(sink: NotificationSink | None, notification: Notification) -> bool:
    """Enqueue without letting a transport failure reach the caller.

    Returns True if the sink accepted the notification.
    """
    if sink is None:
        return False
    try:
        await sink.enqueue(notification)
    except Exception:
        logger.warning(
            "notification_enqueue_failed",
            recipient=notification.recipient_email,
            channel=notification.channel.value,
            exc_info=True,
        )
        return False
    return True
