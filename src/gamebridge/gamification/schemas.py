"""Pydantic read models and enum tags for the gamification engine."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict


class PointSource(str, Enum):
    POLICY_READ = "Policy Read"
    ACKNOWLEDGEMENT = "Acknowledgement"
    QUIZ = "Quiz Completed"
    BONUS = "Bonus"
    ACHIEVEMENT = "Achievement"
    REWARD_REDEMPTION = "Reward Redemption"
    RECOGNITION = "Recognition"
    TASK = "Task Completed"
    CHALLENGE = "Challenge Completed"
    ONBOARDING = "Onboarding"
    ONBOARDING_SYNC = "Onboarding Sync"


class Phase(str, Enum):
    ONBOARDING = "onboarding"
    ACTIVE = "active"


class Trend(str, Enum):
    UP = "up"
    DOWN = "down"
    SAME = "same"


class PhaseFilter(str, Enum):
    ALL = "all"
    ONBOARDING = "onboarding"
    DEPARTMENT = "department"


class RequirementType(str, Enum):
    READING = "Reading"
    QUIZ = "Quiz"
    STREAK = "Streak"
    MILESTONE = "Milestone"
    COMPLETION = "Completion"


# --- Profile + ledger ---


class UserProfile(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    user_email: str = ""
    display_name: str = ""
    department: str = ""
    phase: str = Phase.ONBOARDING.value
    total_points: int = 0
    available_points: int = 0
    lifetime_points: int = 0
    points_this_month: int = 0
    current_level: int = 1
    level_name: str = "Newcomer"
    tier_floor: str | None = None
    current_streak_days: int = 0
    longest_streak_days: int = 0
    last_activity_date: datetime | None = None
    reading_points: int = 0
    quiz_points: int = 0
    acknowledgement_points: int = 0
    bonus_points: int = 0
    policies_read: int = 0
    quizzes_completed: int = 0
    quizzes_passed: int = 0
    badge_count: int = 0
    leaderboard_rank: int = 0


class PointLedgerEntry(BaseModel):
    id: int
    user_id: int
    user_email: str = ""
    points: int
    source: str
    source_description: str = ""
    phase: str = Phase.ONBOARDING.value
    timestamp: datetime
    related_item_id: str | None = None
    related_item_type: str | None = None
    multiplier_applied: float = 1.0
    new_balance: int = 0


# --- Achievements ---


class AchievementMapping(BaseModel):
    """Static link from an onboarding badge to an enterprise achievement."""

    model_config = ConfigDict(frozen=True)

    external_badge_id: str
    external_badge_name: str
    internal_achievement_code: str
    internal_achievement_name: str
    bonus_points_on_sync: int
    tier_upgrade_floor: str | None = None


class UserAchievementRecord(BaseModel):
    user_id: int
    achievement_code: str
    achievement_name: str = ""
    unlocked_date: datetime
    points_earned: int = 0
    source_badge: str | None = None


class UnifiedAchievement(BaseModel):
    code: str
    name: str
    description: str = ""
    category: str
    rarity: str
    points_reward: int
    icon: str = "Trophy"
    is_unlocked: bool
    unlocked_date: datetime | None = None
    source_system: str
    linked_achievements: list[str] = []


class SyncResult(BaseModel):
    points_synced: int = 0
    achievements_synced: int = 0
    skipped_badges: list[str] = []


# --- Leaderboard ---


class LeaderboardEntry(BaseModel):
    rank: int
    user_id: str
    user_email: str
    display_name: str
    department: str = ""
    phase: Phase
    total_points: int
    phase_points: int
    level: int
    tier: str
    badge_count: int = 0
    streak_days: int = 0
    is_current_user: bool = False
    trend: Trend = Trend.SAME
    previous_rank: int | None = None


# --- Unified profile ---


class UnifiedProfile(BaseModel):
    user_id: str
    user_email: str
    display_name: str
    department: str = ""
    photo_url: str = ""

    phase: Phase
    start_date: datetime | None = None
    onboarding_completed: bool = False
    onboarding_completed_date: datetime | None = None

    total_lifetime_points: int
    available_points: int
    onboarding_points: int
    enterprise_points: int

    current_level: int
    level_name: str
    current_tier: str
    tier_multiplier: float
    tier_discount: int
    points_to_next_level: int
    points_to_next_tier: int

    total_badges: int
    onboarding_badges: int
    enterprise_badges: int

    current_streak: int
    longest_streak: int
    streak_multiplier: float

    global_rank: int = 0
    onboarding_cohort_rank: int = 0
    thresholds_version: str


class NextLevel(BaseModel):
    level: int
    level_name: str
    points_required: int
    points_remaining: int
    progress_percentage: int


class ProgressStats(BaseModel):
    total_activities: int
    this_week_points: int
    this_month_points: int
    average_quiz_score: int


class UserProgress(BaseModel):
    profile: UserProfile
    achievements: list[UserAchievementRecord]
    recent_transactions: list[PointLedgerEntry]
    next_level: NextLevel
    stats: ProgressStats


# --- Rewards ---


class RewardOffer(BaseModel):
    id: int
    code: str
    name: str
    points_cost: int
    original_cost: int
    tier_discount: int
    stock_level: int | None = None
    is_featured: bool = False
