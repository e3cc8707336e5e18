"""Unified leaderboard across the onboarding and enterprise systems.

Both source leaderboards are fetched concurrently and merged per user email,
falling back to the per-system user id for users without one.
A user present in both gets the summed points and moves to the active phase.
Ranks are reassigned after the merge; filters apply to the re-ranked list so
filtered views keep the global rank.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

from gamebridge.config import Settings, get_settings
from gamebridge.errors import ValidationError
from gamebridge.gamification.calculator import level_of, tier_of, tier_with_floor
from gamebridge.gamification.schemas import LeaderboardEntry, Phase, PhaseFilter, Trend
from gamebridge.gamification.thresholds import DEFAULT_TABLES, ThresholdTables
from gamebridge.store.base import ENTERPRISE_LEADERBOARD, ONBOARDING_PROGRESS, PROFILES, Record, RecordStore

logger = logging.getLogger(__name__)


def onboarding_level(total_xp: int) -> int:
    return total_xp // 100 + 1


def trend_of(rank_change: int) -> Trend:
    if rank_change > 0:
        return Trend.UP
    if rank_change < 0:
        return Trend.DOWN
    return Trend.SAME


def merge_key(entry: LeaderboardEntry, system: str) -> str:
    """Email when known, otherwise the user id within its source system."""
    return entry.user_email or f"{system}:{entry.user_id}"


def is_current(email: str | None, current_user_email: str | None) -> bool:
    return bool(current_user_email) and email == current_user_email


def parse_filter(phase_filter: PhaseFilter | str) -> PhaseFilter:
    try:
        return PhaseFilter(phase_filter)
    except ValueError:
        raise ValidationError(f"Unknown leaderboard filter: {phase_filter!r}") from None


def merge_leaderboards(
    onboarding: list[LeaderboardEntry],
    enterprise: list[LeaderboardEntry],
    phase_filter: PhaseFilter | str = PhaseFilter.ALL,
    limit: int = 20,
) -> list[LeaderboardEntry]:
    """Merge two ranked leaderboards into one, re-ranked by total points.

    Inputs are not modified. Ties keep pre-merge order: onboarding entries
    first, in their source order, then enterprise-only entries.
    """
    view = parse_filter(phase_filter)
    if limit <= 0:
        raise ValidationError(f"Leaderboard limit must be positive, got {limit}")

    merged: dict[str, LeaderboardEntry] = {}
    for entry in onboarding:
        merged[merge_key(entry, "onboarding")] = entry.model_copy(update={"phase": Phase.ONBOARDING})

    for entry in enterprise:
        key = merge_key(entry, "enterprise")
        existing = merged.get(key)
        if existing is None:
            merged[key] = entry.model_copy(update={"phase": Phase.ACTIVE})
            continue
        # Trend stays as carried from the onboarding source
        existing.total_points += entry.total_points
        existing.phase = Phase.ACTIVE
        existing.is_current_user = existing.is_current_user or entry.is_current_user

    ranked = sorted(merged.values(), key=lambda e: e.total_points, reverse=True)
    for index, entry in enumerate(ranked):
        entry.rank = index + 1

    if view is PhaseFilter.ONBOARDING:
        ranked = [e for e in ranked if e.phase is Phase.ONBOARDING]
    elif view is PhaseFilter.DEPARTMENT:
        department = next((e.department for e in ranked if e.is_current_user), None)
        if department:
            ranked = [e for e in ranked if e.department == department]

    return ranked[:limit]


class LeaderboardMerger:
    """Reads both source leaderboards and maintains the enterprise snapshot."""

    def __init__(
        self,
        store: RecordStore,
        settings: Settings | None = None,
        tables: ThresholdTables = DEFAULT_TABLES,
    ) -> None:
        self.store = store
        self.settings = settings or get_settings()
        self.tables = tables

    async def onboarding_leaderboard(self, current_user_email: str | None = None) -> list[LeaderboardEntry]:
        """Onboarding progress ranked by XP, top N."""
        rows = await self.store.query(
            ONBOARDING_PROGRESS,
            order_by=("-total_xp",),
            limit=self.settings.onboarding_leaderboard_size,
        )
        entries = []
        for index, row in enumerate(rows):
            xp = row["total_xp"] or 0
            entries.append(LeaderboardEntry(
                rank=index + 1,
                user_id=row["user_email"],
                user_email=row["user_email"],
                display_name=row["display_name"] or "User",
                department=row["department"] or "",
                phase=Phase.ONBOARDING,
                total_points=xp,
                phase_points=xp,
                level=onboarding_level(xp),
                tier=tier_of(xp, self.tables)[0],
                badge_count=len(row["badges"] or []),
                streak_days=row["streak_days"] or 0,
                is_current_user=is_current(row["user_email"], current_user_email),
                trend=Trend.SAME,
            ))
        return entries

    async def enterprise_leaderboard(
        self, limit: int, current_user_email: str | None = None,
    ) -> list[LeaderboardEntry]:
        """Current enterprise snapshot rows in rank order."""
        rows = await self.store.query(
            ENTERPRISE_LEADERBOARD, {"is_current": True}, order_by=("rank",), limit=limit,
        )
        return [
            LeaderboardEntry(
                rank=row["rank"],
                user_id=str(row["user_id"]),
                user_email=row["user_email"],
                display_name=row["display_name"] or "User",
                department=row["department"] or "",
                phase=Phase.ACTIVE,
                total_points=row["points"],
                phase_points=row["points"],
                level=row["level"],
                tier=row["tier"],
                badge_count=row["achievement_count"],
                is_current_user=is_current(row["user_email"], current_user_email),
                trend=trend_of(row["rank_change"]),
                previous_rank=row["rank"] + row["rank_change"],
            )
            for row in rows
        ]

    async def merged_leaderboard(
        self,
        phase_filter: PhaseFilter | str = PhaseFilter.ALL,
        limit: int = 20,
        current_user_email: str | None = None,
    ) -> list[LeaderboardEntry]:
        """Fetch both leaderboards concurrently and merge them."""
        parse_filter(phase_filter)
        if limit <= 0:
            raise ValidationError(f"Leaderboard limit must be positive, got {limit}")

        onboarding, enterprise = await asyncio.gather(
            self.onboarding_leaderboard(current_user_email),
            self.enterprise_leaderboard(limit, current_user_email),
        )
        return merge_leaderboards(onboarding, enterprise, phase_filter, limit)

    async def rebuild_enterprise_snapshot(self, now: datetime | None = None) -> int:
        """Re-rank every profile by total points into a new current snapshot.

        ``rank_change`` is positive when a user moved up since the previous
        snapshot. Returns the number of ranked users.
        """
        if now is None:
            now = datetime.now(timezone.utc)

        profiles = await self.store.query(PROFILES, order_by=("-total_points",))
        previous: list[Record] = await self.store.query(ENTERPRISE_LEADERBOARD, {"is_current": True})
        previous_rank = {row["user_id"]: row["rank"] for row in previous}

        for index, profile in enumerate(profiles):
            rank = index + 1
            before = previous_rank.get(profile["user_id"])
            level, _ = level_of(profile["total_points"], self.tables)
            tier, _, _ = tier_with_floor(profile["total_points"], profile["tier_floor"], self.tables)
            await self.store.insert(ENTERPRISE_LEADERBOARD, {
                "user_id": profile["user_id"],
                "user_email": profile["user_email"],
                "display_name": profile["display_name"],
                "department": profile["department"],
                "points": profile["total_points"],
                "level": max(level, profile["current_level"]),
                "tier": tier,
                "achievement_count": profile["badge_count"],
                "rank": rank,
                "rank_change": before - rank if before is not None else 0,
                "is_current": True,
                "snapshot_at": now,
            })
            if profile["leaderboard_rank"] != rank:
                await self.store.update(PROFILES, profile["id"], {"leaderboard_rank": rank})

        for row in previous:
            await self.store.update(ENTERPRISE_LEADERBOARD, row["id"], {"is_current": False})

        logger.info("Enterprise leaderboard rebuilt: %d users", len(profiles))
        return len(profiles)
