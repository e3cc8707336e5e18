"""Unified profile read model combining onboarding and enterprise state."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

from gamebridge.config import Settings
from gamebridge.errors import NotFoundError
from gamebridge.gamification import phases
from gamebridge.gamification.calculator import (
    level_of,
    next_level_info,
    points_to_next,
    streak_multiplier_of,
    tier_with_floor,
)
from gamebridge.gamification.ledger import ProfileLedger
from gamebridge.gamification.schemas import (
    NextLevel,
    Phase,
    PointLedgerEntry,
    PointSource,
    ProgressStats,
    UnifiedProfile,
    UserAchievementRecord,
    UserProfile,
    UserProgress,
)
from gamebridge.gamification.thresholds import DEFAULT_TABLES, ThresholdTables
from gamebridge.store.base import ONBOARDING_PROGRESS, USER_ACHIEVEMENTS, Record, RecordStore


class ProfileComposer:
    """Builds presentation read models; performs no writes."""

    def __init__(
        self,
        store: RecordStore,
        settings: Settings | None = None,
        tables: ThresholdTables = DEFAULT_TABLES,
    ) -> None:
        self.store = store
        self.ledger = ProfileLedger(store)
        self.settings = settings
        self.tables = tables

    async def _unsynced_onboarding_xp(self, progress: Record | None, profile: Record | None) -> int:
        """Onboarding XP not yet carried into the enterprise total."""
        if progress is None or progress["onboarding_completed_date"] is not None:
            return 0
        xp = progress["total_xp"] or 0
        if profile is None:
            return xp
        mirrored = await self.ledger.sum_points(profile["user_id"], PointSource.ONBOARDING.value)
        return max(xp - mirrored, 0)

    async def get_unified_profile(self, user_email: str, now: datetime | None = None) -> UnifiedProfile:
        """Merge onboarding progress and the enterprise profile for one user.

        Raises NotFoundError when neither system knows the email.
        """
        progress, profile = await asyncio.gather(
            self.store.first(ONBOARDING_PROGRESS, {"user_email": user_email}),
            self.ledger.find_profile_by_email(user_email),
        )
        if progress is None and profile is None:
            raise NotFoundError("user", user_email)

        onboarding_points = progress["total_xp"] if progress else 0
        enterprise_points = profile["total_points"] if profile else 0
        total = enterprise_points + await self._unsynced_onboarding_xp(progress, profile)

        level, level_name = level_of(total, self.tables)
        if profile and profile["current_level"] > level:
            level, level_name = profile["current_level"], profile["level_name"]
        tier, multiplier, discount = tier_with_floor(total, profile["tier_floor"] if profile else None, self.tables)

        onboarding_streak = progress["streak_days"] if progress else 0
        enterprise_streak = profile["current_streak_days"] if profile else 0
        current_streak = onboarding_streak or enterprise_streak
        longest_streak = max(onboarding_streak, profile["longest_streak_days"] if profile else 0)

        if progress is not None:
            phase = phases.determine_phase(progress, now, self.settings)
        else:
            phase = Phase(profile["phase"])

        onboarding_badges = len(progress["badges"] or []) if progress else 0
        enterprise_badges = profile["badge_count"] if profile else 0

        return UnifiedProfile(
            user_id=str(profile["user_id"]) if profile else user_email,
            user_email=user_email,
            display_name=(profile and profile["display_name"]) or (progress and progress["display_name"]) or "User",
            department=(profile and profile["department"]) or (progress and progress["department"]) or "",
            photo_url=progress["photo_url"] if progress else "",
            phase=phase,
            start_date=progress["start_date"] if progress else None,
            onboarding_completed=(
                phases.onboarding_completed(progress, self.settings)
                or bool(progress and progress["onboarding_completed_date"])
            ),
            onboarding_completed_date=progress["onboarding_completed_date"] if progress else None,
            total_lifetime_points=total,
            available_points=profile["available_points"] if profile else total,
            onboarding_points=onboarding_points,
            enterprise_points=enterprise_points,
            current_level=level,
            level_name=level_name,
            current_tier=tier,
            tier_multiplier=multiplier,
            tier_discount=discount,
            points_to_next_level=points_to_next("level", total, self.tables),
            points_to_next_tier=points_to_next("tier", total, self.tables),
            total_badges=onboarding_badges + enterprise_badges,
            onboarding_badges=onboarding_badges,
            enterprise_badges=enterprise_badges,
            current_streak=current_streak,
            longest_streak=longest_streak,
            streak_multiplier=streak_multiplier_of(current_streak, self.tables),
            global_rank=profile["leaderboard_rank"] if profile else 0,
            onboarding_cohort_rank=progress["leaderboard_rank"] if progress else 0,
            thresholds_version=self.tables.version,
        )

    async def get_user_progress(self, user_id: int, now: datetime | None = None) -> UserProgress:
        """Profile, achievements, recent ledger activity and next-level progress."""
        if now is None:
            now = datetime.now(timezone.utc)
        profile = UserProfile.model_validate(await self.ledger.load_profile(user_id))

        achievements, recent, week_points, month_points = await asyncio.gather(
            self.store.query(USER_ACHIEVEMENTS, {"user_id": user_id}, order_by=("-unlocked_date",)),
            self.ledger.list_entries(user_id, limit=10),
            self.ledger.sum_points(user_id, since=now - timedelta(days=7)),
            self.ledger.sum_points(user_id, since=now - timedelta(days=30)),
        )

        average_quiz_score = 0
        if profile.quizzes_completed > 0:
            average_quiz_score = round(profile.quizzes_passed / profile.quizzes_completed * 100)

        return UserProgress(
            profile=profile,
            achievements=[UserAchievementRecord.model_validate(row) for row in achievements],
            recent_transactions=[PointLedgerEntry.model_validate(row) for row in recent],
            next_level=NextLevel(**next_level_info(profile.total_points, self.tables)),
            stats=ProgressStats(
                total_activities=profile.policies_read + profile.quizzes_completed,
                this_week_points=week_points,
                this_month_points=month_points,
                average_quiz_score=average_quiz_score,
            ),
        )
