"""Scoring engine: the only writer of profile aggregates.

``add_points`` applies one point delta to a user:
1. Load or lazily create the profile (under the user's lock)
2. Advance the daily streak and fold any streak bonus into the same write
3. Bump category sub-totals and counters
4. Recompute the level (never downward)
5. Persist everything with one atomic increment
6. Append the ledger entry (best effort) plus a Bonus entry for a streak bonus
7. Run achievement checks and emit a level-up notification
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any, NamedTuple

from gamebridge.config import Settings, get_settings
from gamebridge.errors import GamificationError, ValidationError
from gamebridge.gamification.calculator import level_of
from gamebridge.gamification.ledger import ProfileLedger
from gamebridge.gamification.locks import KeyedLock
from gamebridge.gamification.schemas import PointLedgerEntry, PointSource, UserProfile
from gamebridge.gamification.streaks import BonusKind, bonus_points, compute_streak
from gamebridge.gamification.thresholds import DEFAULT_TABLES, ThresholdTables
from gamebridge.notifications import Channel, Notification, NotificationSink, enqueue_best_effort
from gamebridge.store.base import Record, RecordStore

logger = logging.getLogger(__name__)

# source -> (points sub-total, activity counter)
CATEGORY_FIELDS: dict[PointSource, tuple[str, str | None]] = {
    PointSource.POLICY_READ: ("reading_points", "policies_read"),
    PointSource.ACKNOWLEDGEMENT: ("acknowledgement_points", None),
    PointSource.QUIZ: ("quiz_points", "quizzes_completed"),
    PointSource.BONUS: ("bonus_points", None),
    PointSource.ACHIEVEMENT: ("bonus_points", None),
}

BONUS_DESCRIPTIONS = {
    BonusKind.DAILY: "Daily streak bonus",
    BonusKind.WEEKLY: "7-day streak bonus",
    BonusKind.MONTHLY: "30-day streak bonus",
}

AchievementCheck = Callable[[int, UserProfile], Awaitable[Any]]


class Award(NamedTuple):
    """Outcome of one persisted award, pending its side effects."""

    user_id: int
    amount: int
    source: PointSource
    old_level: int
    new_level: int
    level_name: str


def _check_key(check: AchievementCheck) -> tuple[type, object]:
    # Bound methods key on (class, function) so one check per class is kept
    owner = getattr(check, "__self__", None)
    return type(owner), getattr(check, "__func__", check)


def parse_source(source: PointSource | str) -> PointSource:
    try:
        return PointSource(source)
    except ValueError:
        raise ValidationError(f"Unknown point source: {source!r}") from None


def _validate_amount(amount: object) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValidationError(f"Point amount must be an integer, got {amount!r}")


def _same_month(last: datetime | None, now: datetime) -> bool:
    return last is not None and (last.year, last.month) == (now.year, now.month)


class ScoringEngine:
    """Applies point awards and deductions to profiles and the ledger."""

    def __init__(
        self,
        store: RecordStore,
        settings: Settings | None = None,
        tables: ThresholdTables = DEFAULT_TABLES,
        notifier: NotificationSink | None = None,
        locks: KeyedLock | None = None,
    ) -> None:
        self.store = store
        self.ledger = ProfileLedger(store)
        self.settings = settings or get_settings()
        self.tables = tables
        self.notifier = notifier
        self.locks = locks or KeyedLock()
        self._achievement_checks: dict[tuple[type, object], AchievementCheck] = {}

    def on_scored(self, check: AchievementCheck) -> None:
        """Register a check run against the profile after every award.

        Re-registering the same check, or the same method of another instance
        of its class, replaces the earlier registration.
        """
        self._achievement_checks[_check_key(check)] = check

    # ------------------------------------------------------------------
    # Core award path
    # ------------------------------------------------------------------

    async def add_points(
        self,
        user_id: int,
        amount: int,
        source: PointSource | str,
        ref_id: str | int | None = None,
        ref_type: str | None = None,
        description: str | None = None,
        *,
        passed: bool | None = None,
        multiplier: float = 1.0,
        phase: str | None = None,
        user_email: str | None = None,
        display_name: str | None = None,
        now: datetime | None = None,
    ) -> UserProfile:
        """Apply a signed point delta and return the reloaded profile.

        Negative amounts are applied as-is; callers check balances first.
        Profile load and persist failures propagate. A failed ledger append
        is logged and does not undo the profile update.
        """
        _validate_amount(amount)
        parse_source(source)

        async with self.locks.hold(user_id):
            award = await self.add_points_unlocked(
                user_id, amount, source,
                ref_id=ref_id,
                ref_type=ref_type,
                description=description,
                passed=passed,
                multiplier=multiplier,
                phase=phase,
                user_email=user_email,
                display_name=display_name,
                now=now,
            )

        return await self.complete_award(award)

    async def add_points_unlocked(
        self,
        user_id: int,
        amount: int,
        source: PointSource | str,
        ref_id: str | int | None = None,
        ref_type: str | None = None,
        description: str | None = None,
        *,
        passed: bool | None = None,
        multiplier: float = 1.0,
        phase: str | None = None,
        user_email: str | None = None,
        display_name: str | None = None,
        now: datetime | None = None,
    ) -> Award:
        """Persist one award. The caller must hold ``self.locks`` for the user.

        Pass the result to ``complete_award`` once the lock is released.
        """
        _validate_amount(amount)
        tag = parse_source(source)
        if now is None:
            now = datetime.now(timezone.utc)

        profile = await self.ledger.get_or_create_profile(
            user_id, user_email or "", display_name or "", now=now,
        )
        old_level = profile["current_level"]
        new_level, level_name = await self._apply(
            profile, amount, tag,
            ref_id=ref_id,
            ref_type=ref_type,
            description=description,
            passed=passed,
            multiplier=multiplier,
            phase=phase,
            user_email=user_email,
            display_name=display_name,
            now=now,
        )
        return Award(user_id, amount, tag, old_level, new_level, level_name)

    async def complete_award(self, award: Award) -> UserProfile:
        """Level-up notification and achievement checks, outside the user's lock."""
        logger.info("Added %d points (%s) to user %s", award.amount, award.source.value, award.user_id)

        updated = UserProfile.model_validate(await self.ledger.load_profile(award.user_id))
        if award.new_level > award.old_level:
            await self._emit_level_up(updated, award.new_level, award.level_name)

        await self._run_achievement_checks(award.user_id, updated)
        return UserProfile.model_validate(await self.ledger.load_profile(award.user_id))

    async def _apply(
        self,
        profile: Record,
        amount: int,
        tag: PointSource,
        *,
        ref_id: str | int | None,
        ref_type: str | None,
        description: str | None,
        passed: bool | None,
        multiplier: float,
        phase: str | None,
        user_email: str | None,
        display_name: str | None,
        now: datetime,
    ) -> tuple[int, str]:
        """Single write for one award. Caller holds the user's lock."""
        deltas, values, bonus, bonus_kind = self._streak_changes(profile, now)

        deltas["total_points"] += amount
        deltas["available_points"] += amount
        deltas["lifetime_points"] += max(amount, 0)

        category = CATEGORY_FIELDS.get(tag)
        if category is not None:
            points_field, counter = category
            deltas[points_field] = deltas.get(points_field, 0) + amount
            if counter is not None:
                deltas[counter] = 1
        if tag is PointSource.QUIZ and passed is True:
            deltas["quizzes_passed"] = 1

        earned = max(amount, 0) + bonus
        if _same_month(profile["last_activity_date"], now):
            deltas["points_this_month"] = earned
        else:
            values["points_this_month"] = earned

        balance = profile["total_points"] + amount
        new_total = balance + bonus
        level, name = level_of(new_total, self.tables)
        if level > profile["current_level"]:
            values["current_level"] = level
            values["level_name"] = name
        else:
            level, name = profile["current_level"], profile["level_name"]

        if user_email and not profile["user_email"]:
            values["user_email"] = user_email
        if display_name and not profile["display_name"]:
            values["display_name"] = display_name

        await self.ledger.apply(profile, deltas, values)

        entry_phase = phase or profile["phase"]
        email = profile["user_email"] or user_email or ""
        await self._append_entry(profile["user_id"], {
            "user_id": profile["user_id"],
            "user_email": email,
            "points": amount,
            "source": tag.value,
            "source_description": description or f"{tag.value}: {amount} points",
            "phase": entry_phase,
            "timestamp": now,
            "related_item_id": str(ref_id) if ref_id is not None else None,
            "related_item_type": ref_type,
            "multiplier_applied": multiplier,
            "new_balance": balance,
        })
        if bonus_kind is not None:
            await self._append_bonus_entry(profile, bonus, bonus_kind, entry_phase, new_total, now)

        return level, name

    def _streak_changes(
        self, profile: Record, now: datetime,
    ) -> tuple[dict[str, int], dict[str, Any], int, BonusKind | None]:
        """Streak step for this activity as profile deltas and overwrites."""
        step = compute_streak(profile["last_activity_date"], profile["current_streak_days"], now)
        bonus = bonus_points(step.bonus, self.settings)

        deltas = {
            "total_points": bonus,
            "available_points": bonus,
            "lifetime_points": bonus,
        }
        if bonus:
            deltas["bonus_points"] = bonus

        values: dict[str, Any] = {
            "current_streak_days": step.days,
            "longest_streak_days": max(profile["longest_streak_days"], step.days),
            "last_activity_date": now,
            "updated_at": now,
        }
        return deltas, values, bonus, step.bonus

    async def _append_entry(self, user_id: int, entry: dict[str, Any]) -> None:
        try:
            await self.ledger.append_entry(entry)
        except GamificationError:
            logger.warning(
                "Failed to append ledger entry for user %s (%s %+d)",
                user_id, entry["source"], entry["points"], exc_info=True,
            )

    async def _append_bonus_entry(
        self,
        profile: Record,
        bonus: int,
        kind: BonusKind,
        phase: str,
        new_total: int,
        now: datetime,
    ) -> None:
        await self._append_entry(profile["user_id"], {
            "user_id": profile["user_id"],
            "user_email": profile["user_email"],
            "points": bonus,
            "source": PointSource.BONUS.value,
            "source_description": BONUS_DESCRIPTIONS[kind],
            "phase": phase,
            "timestamp": now,
            "related_item_type": "Streak",
            "multiplier_applied": 1.0,
            "new_balance": new_total,
        })

    # ------------------------------------------------------------------
    # Streaks
    # ------------------------------------------------------------------

    async def update_streak(
        self,
        user_id: int,
        profile: UserProfile | Record | None = None,
        now: datetime | None = None,
    ) -> int:
        """Advance the user's daily streak for activity at ``now``.

        The streak and any bonus are persisted in one write. Returns the new
        streak length.
        """
        if now is None:
            now = datetime.now(timezone.utc)

        async with self.locks.hold(user_id):
            if profile is None:
                record = await self.ledger.get_or_create_profile(user_id, now=now)
            elif isinstance(profile, UserProfile):
                record = profile.model_dump()
            else:
                record = dict(profile)

            deltas, values, bonus, kind = self._streak_changes(record, now)
            if bonus and not _same_month(record["last_activity_date"], now):
                values["points_this_month"] = bonus
            elif bonus:
                deltas["points_this_month"] = bonus

            new_total = record["total_points"] + bonus
            level, name = level_of(new_total, self.tables)
            if level > record["current_level"]:
                values["current_level"] = level
                values["level_name"] = name

            await self.ledger.apply(record, deltas, values)
            if kind is not None:
                await self._append_bonus_entry(record, bonus, kind, record["phase"], new_total, now)

        return values["current_streak_days"]

    # ------------------------------------------------------------------
    # Side effects
    # ------------------------------------------------------------------

    async def _run_achievement_checks(self, user_id: int, profile: UserProfile) -> None:
        for check in self._achievement_checks.values():
            try:
                await check(user_id, profile)
            except GamificationError:
                logger.warning("Achievement check failed for user %s", user_id, exc_info=True)

    async def _emit_level_up(self, profile: UserProfile, level: int, name: str) -> None:
        if not profile.user_email:
            return
        await enqueue_best_effort(self.notifier, Notification(
            recipient_email=profile.user_email,
            subject="Level Up!",
            body=f"Congratulations {profile.display_name or 'there'}, you reached Level {level}: {name}.",
            channel=Channel.TEAMS,
        ))

    # ------------------------------------------------------------------
    # Activity shortcuts
    # ------------------------------------------------------------------

    async def record_policy_read(
        self, user_id: int, policy_id: int | str, policy_title: str = "", **kwargs: Any,
    ) -> UserProfile:
        return await self.add_points(
            user_id, self.settings.points_policy_read, PointSource.POLICY_READ,
            ref_id=policy_id, ref_type="Policy",
            description=f"Read policy: {policy_title or policy_id}",
            **kwargs,
        )

    async def record_policy_acknowledgement(
        self, user_id: int, policy_id: int | str, policy_title: str = "", **kwargs: Any,
    ) -> UserProfile:
        return await self.add_points(
            user_id, self.settings.points_acknowledgement, PointSource.ACKNOWLEDGEMENT,
            ref_id=policy_id, ref_type="Policy",
            description=f"Acknowledged policy: {policy_title or policy_id}",
            **kwargs,
        )

    async def record_quiz_completion(
        self,
        user_id: int,
        quiz_id: int | str,
        passed: bool,
        score: int,
        **kwargs: Any,
    ) -> UserProfile | None:
        """Award quiz points: perfect score, pass, or nothing for a fail.

        Returns None when nothing was awarded.
        """
        if not passed:
            return None
        if score >= 100:
            amount = self.settings.points_quiz_perfect
            description = f"Perfect score on quiz {quiz_id}"
        else:
            amount = self.settings.points_quiz_passed
            description = f"Passed quiz {quiz_id} ({score}%)"
        return await self.add_points(
            user_id, amount, PointSource.QUIZ,
            ref_id=quiz_id, ref_type="Quiz", description=description,
            passed=True, **kwargs,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_transactions(self, user_id: int, limit: int = 20) -> list[PointLedgerEntry]:
        rows = await self.ledger.list_entries(user_id, limit=limit)
        return [PointLedgerEntry.model_validate(row) for row in rows]

    async def get_user_rank(self, user_id: int) -> int:
        return await self.ledger.user_rank(user_id)
