"""Achievement unlocks and onboarding badge sync.

Rule-based unlocks run after every award. Onboarding badges are mapped to
enterprise achievements through a static table. Every unlock relies on the
UNIQUE(user_id, achievement_code) constraint: a rejected insert means the
achievement was already earned.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from gamebridge.config import Settings
from gamebridge.errors import DuplicateRecordError, GamificationError, NotFoundError
from gamebridge.gamification.calculator import streak_multiplier_of
from gamebridge.gamification.phases import determine_phase
from gamebridge.gamification.schemas import (
    AchievementMapping,
    Phase,
    PointSource,
    RequirementType,
    SyncResult,
    UnifiedAchievement,
    UserProfile,
)
from gamebridge.gamification.scoring import ScoringEngine, parse_source
from gamebridge.notifications import Channel, Notification, NotificationSink, enqueue_best_effort
from gamebridge.store.base import (
    ACHIEVEMENTS,
    ONBOARDING_PROGRESS,
    PROFILES,
    USER_ACHIEVEMENTS,
    Record,
)

logger = logging.getLogger(__name__)

ACHIEVEMENT_MAPPINGS: tuple[AchievementMapping, ...] = (
    AchievementMapping(
        external_badge_id="day-one-hero",
        external_badge_name="Day One Hero",
        internal_achievement_code="ONBOARDING_DAY1",
        internal_achievement_name="First Day Champion",
        bonus_points_on_sync=100,
    ),
    AchievementMapping(
        external_badge_id="quest-master",
        external_badge_name="Quest Master",
        internal_achievement_code="ONBOARDING_QUEST",
        internal_achievement_name="Onboarding Graduate",
        bonus_points_on_sync=250,
        tier_upgrade_floor="Silver",
    ),
    AchievementMapping(
        external_badge_id="bingo-champion",
        external_badge_name="Bingo Champion",
        internal_achievement_code="ONBOARDING_BINGO",
        internal_achievement_name="First Week Star",
        bonus_points_on_sync=150,
    ),
    AchievementMapping(
        external_badge_id="coffee-connoisseur",
        external_badge_name="Coffee Connoisseur",
        internal_achievement_code="ONBOARDING_COFFEE",
        internal_achievement_name="Coffee Academy Graduate",
        bonus_points_on_sync=50,
    ),
    AchievementMapping(
        external_badge_id="team-explorer",
        external_badge_name="Team Explorer",
        internal_achievement_code="ONBOARDING_TEAM",
        internal_achievement_name="Team Connector",
        bonus_points_on_sync=75,
    ),
    AchievementMapping(
        external_badge_id="jargon-master",
        external_badge_name="Jargon Master",
        internal_achievement_code="ONBOARDING_JARGON",
        internal_achievement_name="Language Expert",
        bonus_points_on_sync=50,
    ),
    AchievementMapping(
        external_badge_id="social-butterfly",
        external_badge_name="Social Butterfly",
        internal_achievement_code="ONBOARDING_SOCIAL",
        internal_achievement_name="Community Champion",
        bonus_points_on_sync=75,
    ),
    AchievementMapping(
        external_badge_id="survival-expert",
        external_badge_name="Survival Expert",
        internal_achievement_code="ONBOARDING_SURVIVAL",
        internal_achievement_name="Setup Master",
        bonus_points_on_sync=100,
    ),
)

_BY_BADGE = {m.external_badge_id: m for m in ACHIEVEMENT_MAPPINGS}
_LINKED_CODES = {m.internal_achievement_code for m in ACHIEVEMENT_MAPPINGS}

RARITY_ORDER = {"legendary": 0, "epic": 1, "rare": 2, "uncommon": 3, "common": 4}

# Unmapped onboarding badges still show up in the unified view with this reward
DEFAULT_BADGE_POINTS = 50


def find_mapping(badge_id: str) -> AchievementMapping | None:
    return _BY_BADGE.get(badge_id)


def requirement_met(definition: Record, profile: UserProfile) -> bool:
    """Whether a profile satisfies a rule-based achievement definition.

    Completion and unknown requirement types need an external signal and
    never unlock here.
    """
    target = definition["requirement_value"]
    kind = definition["requirement_type"]
    if kind == RequirementType.READING.value:
        return profile.policies_read >= target
    if kind == RequirementType.QUIZ.value:
        return profile.quizzes_passed >= target
    if kind == RequirementType.STREAK.value:
        return profile.current_streak_days >= target
    if kind == RequirementType.MILESTONE.value:
        return profile.total_points >= target
    return False


class AchievementMapper:
    """Unlocks enterprise achievements and syncs onboarding badges into them."""

    def __init__(
        self,
        scoring: ScoringEngine,
        notifier: NotificationSink | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.scoring = scoring
        self.store = scoring.store
        self.notifier = notifier if notifier is not None else scoring.notifier
        self.settings = settings or scoring.settings
        scoring.on_scored(self.check_and_award)

    # ------------------------------------------------------------------
    # Rule-based unlocks
    # ------------------------------------------------------------------

    async def check_and_award(self, user_id: int, profile: UserProfile) -> list[str]:
        """Unlock every active achievement the profile now satisfies.

        Returns the codes newly awarded. Running it twice against the same
        profile awards nothing the second time.
        """
        definitions = await self.store.query(ACHIEVEMENTS, {"is_active": True}, order_by=("display_order",))
        earned = {
            row["achievement_code"]
            for row in await self.store.query(USER_ACHIEVEMENTS, {"user_id": user_id})
        }

        awarded: list[str] = []
        for definition in definitions:
            if definition["code"] in earned or not requirement_met(definition, profile):
                continue
            if await self._unlock(
                user_id,
                profile.user_email,
                definition["code"],
                definition["name"],
                definition["points_reward"],
                now=profile.last_activity_date,
            ):
                awarded.append(definition["code"])
        return awarded

    async def award_achievement(self, user_id: int, code: str, user_email: str = "") -> bool:
        """Award one achievement by code. Returns False if already earned."""
        definition = await self.store.first(ACHIEVEMENTS, {"code": code})
        if definition is None:
            raise NotFoundError("achievement", code)
        return await self._unlock(
            user_id, user_email, definition["code"], definition["name"], definition["points_reward"],
        )

    async def _unlock(
        self,
        user_id: int,
        user_email: str,
        code: str,
        name: str,
        points: int,
        source_badge: str | None = None,
        now: datetime | None = None,
    ) -> bool:
        """Insert the user achievement, then bump counts and award its points."""
        if now is None:
            now = datetime.now(timezone.utc)
        try:
            await self.store.insert(USER_ACHIEVEMENTS, {
                "user_id": user_id,
                "user_email": user_email,
                "achievement_code": code,
                "achievement_name": name,
                "unlocked_date": now,
                "points_earned": points,
                "source_badge": source_badge,
            })
        except DuplicateRecordError:
            return False

        profile = await self.scoring.ledger.get_or_create_profile(user_id, user_email, now=now)
        await self.store.increment(PROFILES, profile["id"], {"badge_count": 1})

        if points:
            try:
                await self.scoring.add_points(
                    user_id, points, PointSource.ACHIEVEMENT,
                    ref_id=code, ref_type="Achievement",
                    description=f"Earned: {name}",
                    user_email=user_email or None,
                    now=now,
                )
            except GamificationError:
                logger.warning("Failed to award points for achievement %s to user %s", code, user_id, exc_info=True)

        logger.info("Achievement %s unlocked for user %s", code, user_id)
        await self._emit_unlocked(user_email or profile["user_email"], name, points)
        return True

    async def _emit_unlocked(self, recipient: str, name: str, points: int) -> None:
        if not recipient:
            return
        await enqueue_best_effort(self.notifier, Notification(
            recipient_email=recipient,
            subject=f'Achievement Unlocked: "{name}"',
            body=f"You earned {name} and {points} bonus points.",
            channel=Channel.TEAMS,
        ))

    # ------------------------------------------------------------------
    # Onboarding badge sync
    # ------------------------------------------------------------------

    async def sync_badges(self, user_id: int, user_email: str, badge_ids: list[str]) -> SyncResult:
        """Map onboarding badges to achievements, awarding each sync bonus once."""
        result = SyncResult()
        floors: list[str] = []
        for badge_id in badge_ids:
            mapping = find_mapping(badge_id)
            if mapping is None:
                result.skipped_badges.append(badge_id)
                continue
            synced = await self._unlock(
                user_id,
                user_email,
                mapping.internal_achievement_code,
                mapping.internal_achievement_name,
                mapping.bonus_points_on_sync,
                source_badge=mapping.external_badge_id,
            )
            if not synced:
                continue
            result.achievements_synced += 1
            result.points_synced += mapping.bonus_points_on_sync
            if mapping.tier_upgrade_floor:
                floors.append(mapping.tier_upgrade_floor)

        if floors:
            await self._raise_tier_floor(user_id, floors)
        return result

    async def _raise_tier_floor(self, user_id: int, floors: list[str]) -> None:
        names = self.scoring.tables.tier_names()
        profile = await self.scoring.ledger.load_profile(user_id)
        candidates = [f for f in floors if f in names]
        if profile["tier_floor"] in names:
            candidates.append(profile["tier_floor"])
        if not candidates:
            return
        best = max(candidates, key=names.index)
        if best != profile["tier_floor"]:
            await self.store.update(PROFILES, profile["id"], {"tier_floor": best})

    async def sync_onboarding_to_enterprise(self, user_email: str, user_id: int | None = None) -> SyncResult:
        """Graduate a user: transfer onboarding XP and badges into the enterprise profile.

        A user whose onboarding is already marked completed is not synced again.
        """
        progress = await self.store.first(ONBOARDING_PROGRESS, {"user_email": user_email})
        if progress is None:
            raise NotFoundError("onboarding progress", user_email)

        if user_id is None:
            profile = await self.scoring.ledger.find_profile_by_email(user_email)
            if profile is None:
                raise NotFoundError("profile", user_email)
            user_id = profile["user_id"]

        if progress["onboarding_completed_date"] is not None:
            logger.info("Onboarding for %s already synced", user_email)
            return SyncResult()

        result = SyncResult()
        # XP already mirrored through record_xp_gain is on the ledger
        mirrored = await self.scoring.ledger.sum_points(user_id, PointSource.ONBOARDING.value)
        xp = max((progress["total_xp"] or 0) - mirrored, 0)
        if xp > 0:
            await self.scoring.add_points(
                user_id, xp, PointSource.ONBOARDING_SYNC,
                ref_id=progress["id"], ref_type="OnboardingProgress",
                description="Onboarding XP transfer",
                phase=Phase.ONBOARDING.value,
                user_email=user_email,
                display_name=progress["display_name"] or None,
            )
            result.points_synced += xp

        badges = await self.sync_badges(user_id, user_email, list(progress["badges"] or []))
        result.points_synced += badges.points_synced
        result.achievements_synced = badges.achievements_synced
        result.skipped_badges = badges.skipped_badges

        now = datetime.now(timezone.utc)
        await self.store.update(ONBOARDING_PROGRESS, progress["id"], {"onboarding_completed_date": now})

        profile = await self.scoring.ledger.get_or_create_profile(user_id, user_email, now=now)
        values = {"phase": Phase.ACTIVE.value, "updated_at": now}
        if not profile["department"] and progress["department"]:
            values["department"] = progress["department"]
        await self.store.update(PROFILES, profile["id"], values)

        logger.info(
            "Onboarding sync complete for %s: %d points, %d achievements",
            user_email, result.points_synced, result.achievements_synced,
        )
        await self._emit_welcome(user_email, progress["display_name"], result)
        return result

    async def _emit_welcome(self, user_email: str, display_name: str, result: SyncResult) -> None:
        await enqueue_best_effort(self.notifier, Notification(
            recipient_email=user_email,
            subject="Welcome aboard: your onboarding points have moved over",
            body=(
                f"Hi {display_name or 'there'}, you finished onboarding. "
                f"{result.points_synced} points and {result.achievements_synced} achievements "
                "now count towards your rewards profile."
            ),
            channel=Channel.EMAIL,
        ))

    # ------------------------------------------------------------------
    # XP recording across both systems
    # ------------------------------------------------------------------

    async def record_xp_gain(
        self,
        user_id: int,
        points: int,
        source: PointSource | str,
        description: str = "",
        related_item_id: str | None = None,
        user_email: str | None = None,
        now: datetime | None = None,
    ) -> UserProfile:
        """Award XP scaled by the onboarding streak multiplier.

        Onboarding-sourced XP is mirrored onto the onboarding progress total.
        """
        tag = parse_source(source)
        if now is None:
            now = datetime.now(timezone.utc)

        if user_email is None:
            existing = await self.scoring.ledger.find_profile(user_id)
            user_email = existing["user_email"] if existing else ""
        progress = await self.store.first(ONBOARDING_PROGRESS, {"user_email": user_email}) if user_email else None

        multiplier = streak_multiplier_of(progress["streak_days"] if progress else 0, self.scoring.tables)
        adjusted = round(points * multiplier)
        phase = determine_phase(progress, now, self.settings)

        profile = await self.scoring.add_points(
            user_id, adjusted, tag,
            ref_id=related_item_id,
            description=description or None,
            multiplier=multiplier,
            phase=phase.value,
            user_email=user_email or None,
            now=now,
        )

        if tag is PointSource.ONBOARDING and progress is not None:
            await self.store.increment(ONBOARDING_PROGRESS, progress["id"], {"total_xp": adjusted})

        logger.debug("XP recorded for user %s: %d (%d x %s)", user_id, adjusted, points, multiplier)
        return profile

    # ------------------------------------------------------------------
    # Unified view
    # ------------------------------------------------------------------

    async def unified_achievements(self, user_email: str) -> list[UnifiedAchievement]:
        """Onboarding badges plus enterprise achievements not linked to a badge.

        Unlocked entries come first, then by rarity from legendary down.
        """
        progress = await self.store.first(ONBOARDING_PROGRESS, {"user_email": user_email})
        profile = await self.scoring.ledger.find_profile_by_email(user_email)

        unified: list[UnifiedAchievement] = []
        for badge_id in (progress["badges"] or []) if progress else []:
            mapping = find_mapping(badge_id)
            unified.append(UnifiedAchievement(
                code=badge_id,
                name=mapping.external_badge_name if mapping else badge_id,
                category="onboarding",
                rarity="common",
                points_reward=mapping.bonus_points_on_sync if mapping else DEFAULT_BADGE_POINTS,
                icon="Badge",
                is_unlocked=True,
                source_system="onboarding",
                linked_achievements=[mapping.internal_achievement_code] if mapping else [],
            ))

        unlocked: dict[str, Record] = {}
        if profile is not None:
            rows = await self.store.query(USER_ACHIEVEMENTS, {"user_id": profile["user_id"]})
            unlocked = {row["achievement_code"]: row for row in rows}

        definitions = await self.store.query(ACHIEVEMENTS, {"is_active": True}, order_by=("display_order",))
        for definition in definitions:
            if definition["code"] in _LINKED_CODES:
                continue
            earned = unlocked.get(definition["code"])
            unified.append(UnifiedAchievement(
                code=definition["code"],
                name=definition["name"],
                description=definition["description"],
                category=definition["category"],
                rarity=definition["rarity"].lower(),
                points_reward=definition["points_reward"],
                icon=definition["icon"],
                is_unlocked=earned is not None,
                unlocked_date=earned["unlocked_date"] if earned else None,
                source_system="enterprise",
            ))

        unified.sort(key=lambda a: (not a.is_unlocked, RARITY_ORDER.get(a.rarity, len(RARITY_ORDER))))
        return unified
