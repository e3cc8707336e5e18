"""Notification sink: Redis transport and best-effort enqueue."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock

import pytest

from gamebridge.config import Settings
from gamebridge.notifications import (
    Channel,
    Notification,
    NullNotificationSink,
    RedisNotificationSink,
    enqueue_best_effort,
)


def _notification(**overrides) -> Notification:
    data = {
        "recipient_email": "ana@example.com",
        "subject": "Level Up!",
        "body": "You reached Level 3: Explorer.",
    }
    data.update(overrides)
    return Notification(**data)


class TestNotificationModel:
    """Notification payload defaults."""

    def test_defaults_to_teams(self):
        n = _notification()
        assert n.channel is Channel.TEAMS
        assert n.created_at.tzinfo is not None

    def test_email_channel(self):
        assert _notification(channel="email").channel is Channel.EMAIL


class TestRedisNotificationSink:
    """LPUSH onto the queue, then announce on pub/sub."""

    @pytest.mark.asyncio
    async def test_pushes_and_publishes_json(self):
        redis = AsyncMock()
        sink = RedisNotificationSink(redis, queue_key="q:test", channel="pubsub:test")

        await sink.enqueue(_notification(channel=Channel.EMAIL))

        redis.lpush.assert_awaited_once()
        key, payload = redis.lpush.await_args.args
        assert key == "q:test"
        body = json.loads(payload)
        assert body["recipient_email"] == "ana@example.com"
        assert body["channel"] == "email"
        redis.publish.assert_awaited_once_with("pubsub:test", payload)


class TestEnqueueBestEffort:
    """Transport failures never reach the caller."""

    @pytest.mark.asyncio
    async def test_success(self):
        redis = AsyncMock()
        assert await enqueue_best_effort(RedisNotificationSink(redis), _notification()) is True

    @pytest.mark.asyncio
    async def test_failure_is_swallowed(self):
        redis = AsyncMock()
        redis.lpush.side_effect = ConnectionError("redis down")
        assert await enqueue_best_effort(RedisNotificationSink(redis), _notification()) is False
        redis.publish.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_sink(self):
        assert await enqueue_best_effort(None, _notification()) is False

    @pytest.mark.asyncio
    async def test_null_sink_accepts(self):
        assert await enqueue_best_effort(NullNotificationSink(), _notification()) is True


class TestSinkFromSettings:
    """Client built from configuration."""

    @pytest.mark.asyncio
    async def test_uses_configured_keys(self):
        settings = Settings(_env_file=None, notification_queue_key="q:custom", notification_channel="pubsub:custom")
        sink = RedisNotificationSink.from_settings(settings)
        try:
            assert sink.queue_key == "q:custom"
            assert sink.channel == "pubsub:custom"
        finally:
            await sink.aclose()

    @pytest.mark.asyncio
    async def test_aclose_closes_client(self):
        client = AsyncMock()
        await RedisNotificationSink(client).aclose()
        client.aclose.assert_awaited_once()
