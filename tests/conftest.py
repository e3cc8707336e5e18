"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import datetime, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from gamebridge.config import Settings
from gamebridge.database import build_engine
from gamebridge.db.base import Base
from gamebridge.gamification.achievements import AchievementMapper
from gamebridge.gamification.scoring import ScoringEngine
from gamebridge.notifications import Notification, NotificationSink
from gamebridge.store.base import ONBOARDING_PROGRESS, PROFILES
from gamebridge.store.sql import SqlRecordStore

# Fixed clock for every time-dependent test (a Tuesday)
NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


class RecordingSink(NotificationSink):
    """Keeps every enqueued notification in memory."""

    def __init__(self) -> None:
        self.sent: list[Notification] = []

    async def enqueue(self, notification: Notification) -> None:
        self.sent.append(notification)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None)


@pytest_asyncio.fixture
async def store(tmp_path) -> AsyncGenerator[SqlRecordStore, None]:
    """SQL record store on a fresh SQLite database per test."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'gamebridge.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    yield SqlRecordStore(factory)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def scoring(store, settings, sink) -> ScoringEngine:
    return ScoringEngine(store, settings=settings, notifier=sink)


@pytest.fixture
def mapper(scoring) -> AchievementMapper:
    return AchievementMapper(scoring)


@pytest.fixture
def make_profile(store):
    """Insert a profile row directly, bypassing the scoring engine."""

    async def _make(user_id: int, **fields) -> int:
        record = {
            "user_id": user_id,
            "user_email": f"user{user_id}@example.com",
            "display_name": f"User {user_id}",
            **fields,
        }
        return await store.insert(PROFILES, record)

    return _make


@pytest.fixture
def make_progress(store):
    """Insert an onboarding progress row."""

    async def _make(user_email: str, **fields) -> int:
        record = {
            "user_email": user_email,
            "display_name": user_email.split("@")[0].title(),
            "badges": [],
            "completed_sections": [],
            **fields,
        }
        return await store.insert(ONBOARDING_PROGRESS, record)

    return _make
