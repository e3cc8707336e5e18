"""ORM models backing the record store collections.

Each model is exposed to the engine as a named collection (see
``gamebridge.store.sql.COLLECTIONS``); the engine itself only ever sees plain
dict records.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    Float,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from gamebridge.db.base import Base

# JSONB on Postgres, plain JSON everywhere else (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


# ---------------------------------------------------------------------------
# Enterprise profile + ledger
# ---------------------------------------------------------------------------


class GamificationProfile(Base):
    """Denormalized running totals, one row per user."""

    __tablename__ = "gamification_profiles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, unique=True, nullable=False)
    user_email: Mapped[str] = mapped_column(String(320), nullable=False, default="", index=True)
    display_name: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    department: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    phase: Mapped[str] = mapped_column(String(16), nullable=False, default="onboarding")

    total_points: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    available_points: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    lifetime_points: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    points_this_month: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    current_level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    level_name: Mapped[str] = mapped_column(String(64), nullable=False, default="Newcomer")
    tier_floor: Mapped[str | None] = mapped_column(String(16), nullable=True)

    current_streak_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    longest_streak_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_activity_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    reading_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    quiz_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    acknowledgement_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    bonus_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    policies_read: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    quizzes_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    quizzes_passed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    badge_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    leaderboard_rank: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class PointLedger(Base):
    """Immutable point transaction log."""

    __tablename__ = "point_ledger"

    id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    user_email: Mapped[str] = mapped_column(String(320), nullable=False, default="")
    points: Mapped[int] = mapped_column(Integer, nullable=False)
    source: Mapped[str] = mapped_column(String(32), nullable=False)
    source_description: Mapped[str] = mapped_column(String(256), nullable=False, default="")
    phase: Mapped[str] = mapped_column(String(16), nullable=False, default="onboarding")
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    related_item_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    related_item_type: Mapped[str | None] = mapped_column(String(32), nullable=True)
    multiplier_applied: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)
    new_balance: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)


# ---------------------------------------------------------------------------
# Achievements
# ---------------------------------------------------------------------------


class AchievementDefinition(Base):
    """Rule-based achievement definitions."""

    __tablename__ = "achievement_definitions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str] = mapped_column(String(256), nullable=False, default="")
    category: Mapped[str] = mapped_column(String(32), nullable=False, default="policy")
    rarity: Mapped[str] = mapped_column(String(16), nullable=False, default="common")
    icon: Mapped[str] = mapped_column(String(64), nullable=False, default="Trophy")
    points_reward: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    requirement_type: Mapped[str] = mapped_column(String(32), nullable=False)
    requirement_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class UserAchievement(Base):
    """Achievements earned by users; UNIQUE(user_id, achievement_code) prevents duplicates."""

    __tablename__ = "user_achievements"
    __table_args__ = (
        UniqueConstraint("user_id", "achievement_code", name="uq_user_achievements_user_code"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    user_email: Mapped[str] = mapped_column(String(320), nullable=False, default="")
    achievement_code: Mapped[str] = mapped_column(String(64), nullable=False)
    achievement_name: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    unlocked_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    points_earned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    source_badge: Mapped[str | None] = mapped_column(String(64), nullable=True)


# ---------------------------------------------------------------------------
# Onboarding system + leaderboard snapshots
# ---------------------------------------------------------------------------


class OnboardingProgress(Base):
    """Onboarding-experience progress snapshot, one row per new starter."""

    __tablename__ = "onboarding_progress"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    display_name: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    department: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    photo_url: Mapped[str] = mapped_column(String(512), nullable=False, default="")
    start_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    total_xp: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    streak_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    badges: Mapped[list[Any]] = mapped_column(JSONType, nullable=False, default=list)
    completed_sections: Mapped[list[Any]] = mapped_column(JSONType, nullable=False, default=list)
    leaderboard_rank: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    onboarding_completed_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class EnterpriseLeaderboardSnapshot(Base):
    """Pre-ranked enterprise leaderboard rows; only ``is_current`` rows are read."""

    __tablename__ = "enterprise_leaderboard"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    user_email: Mapped[str] = mapped_column(String(320), nullable=False, default="")
    display_name: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    department: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    points: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    tier: Mapped[str] = mapped_column(String(16), nullable=False, default="Bronze")
    achievement_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rank: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rank_change: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_current: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    snapshot_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


# ---------------------------------------------------------------------------
# Rewards
# ---------------------------------------------------------------------------


class Reward(Base):
    """Redeemable reward catalogue."""

    __tablename__ = "rewards"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    points_cost: Mapped[int] = mapped_column(Integer, nullable=False)
    stock_level: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_available: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_featured: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class Redemption(Base):
    """One row per reward redemption, pending fulfilment."""

    __tablename__ = "redemptions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    reward_id: Mapped[int] = mapped_column(Integer, nullable=False)
    points_spent: Mapped[int] = mapped_column(Integer, nullable=False)
    redeemed_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="Pending")
