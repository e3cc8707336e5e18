"""Achievement definition seed data.

Rule-based achievements unlock from profile counters; the ONBOARDING_* codes
are the targets of the onboarding badge mappings and only unlock through sync.
"""

from __future__ import annotations

import logging

from gamebridge.errors import DuplicateRecordError
from gamebridge.gamification.achievements import ACHIEVEMENT_MAPPINGS
from gamebridge.store.base import ACHIEVEMENTS, RecordStore

logger = logging.getLogger(__name__)

ACHIEVEMENT_SEED_DATA: list[dict] = [
    # Reading
    {
        "code": "FIRST_READ",
        "name": "First Steps",
        "description": "Read your first policy",
        "category": "policy",
        "rarity": "common",
        "icon": "ReadingMode",
        "points_reward": 25,
        "requirement_type": "Reading",
        "requirement_value": 1,
        "display_order": 1,
    },
    {
        "code": "BOOKWORM_10",
        "name": "Bookworm",
        "description": "Read 10 policies",
        "category": "policy",
        "rarity": "uncommon",
        "icon": "Library",
        "points_reward": 75,
        "requirement_type": "Reading",
        "requirement_value": 10,
        "display_order": 2,
    },
    {
        "code": "SCHOLAR_50",
        "name": "Policy Scholar",
        "description": "Read 50 policies",
        "category": "policy",
        "rarity": "rare",
        "icon": "Education",
        "points_reward": 200,
        "requirement_type": "Reading",
        "requirement_value": 50,
        "display_order": 3,
    },
    # Quizzes
    {
        "code": "QUIZ_ROOKIE",
        "name": "Quiz Rookie",
        "description": "Pass your first quiz",
        "category": "quiz",
        "rarity": "common",
        "icon": "Questionnaire",
        "points_reward": 25,
        "requirement_type": "Quiz",
        "requirement_value": 1,
        "display_order": 4,
    },
    {
        "code": "QUIZ_WHIZ_10",
        "name": "Quiz Whiz",
        "description": "Pass 10 quizzes",
        "category": "quiz",
        "rarity": "rare",
        "icon": "Lightbulb",
        "points_reward": 150,
        "requirement_type": "Quiz",
        "requirement_value": 10,
        "display_order": 5,
    },
    # Streaks
    {
        "code": "STREAK_7",
        "name": "Week Warrior",
        "description": "Maintained a 7-day streak",
        "category": "streak",
        "rarity": "rare",
        "icon": "Calories",
        "points_reward": 150,
        "requirement_type": "Streak",
        "requirement_value": 7,
        "display_order": 6,
    },
    {
        "code": "STREAK_30",
        "name": "Unstoppable",
        "description": "Maintained a 30-day streak",
        "category": "streak",
        "rarity": "epic",
        "icon": "Rocket",
        "points_reward": 500,
        "requirement_type": "Streak",
        "requirement_value": 30,
        "display_order": 7,
    },
    # Milestones
    {
        "code": "POINTS_1000",
        "name": "Rising Star",
        "description": "Earn 1,000 points",
        "category": "milestone",
        "rarity": "uncommon",
        "icon": "FavoriteStar",
        "points_reward": 100,
        "requirement_type": "Milestone",
        "requirement_value": 1000,
        "display_order": 8,
    },
    {
        "code": "POINTS_10000",
        "name": "Legend in the Making",
        "description": "Earn 10,000 points",
        "category": "milestone",
        "rarity": "legendary",
        "icon": "Trophy2",
        "points_reward": 1000,
        "requirement_type": "Milestone",
        "requirement_value": 10000,
        "display_order": 9,
    },
]

ACHIEVEMENT_SEED_DATA += [
    {
        "code": m.internal_achievement_code,
        "name": m.internal_achievement_name,
        "description": f"Synced from the onboarding badge {m.external_badge_name}",
        "category": "onboarding",
        "rarity": "uncommon" if m.tier_upgrade_floor else "common",
        "icon": "Badge",
        "points_reward": m.bonus_points_on_sync,
        "requirement_type": "Completion",
        "requirement_value": 1,
        "display_order": 100 + i,
    }
    for i, m in enumerate(ACHIEVEMENT_MAPPINGS)
]


async def seed_achievements(store: RecordStore) -> int:
    """Insert achievement definitions, skipping any already present.

    Returns the number of definitions inserted.
    """
    inserted = 0
    for definition in ACHIEVEMENT_SEED_DATA:
        try:
            await store.insert(ACHIEVEMENTS, {**definition, "is_active": True})
        except DuplicateRecordError:
            continue
        inserted += 1

    logger.info("Seeded %d achievement definitions", inserted)
    return inserted
