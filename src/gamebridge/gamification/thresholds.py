"""Level, tier and streak threshold tables.

Single source of truth for every component that derives a level, tier or
streak multiplier from a running total. Rows are strictly ascending by their
threshold; the first row of the level and tier tables starts at 0.
"""

from __future__ import annotations

from dataclasses import dataclass, field

LEVEL_THRESHOLDS: list[dict] = [
    {"level": 1, "name": "Newcomer", "points": 0},
    {"level": 2, "name": "Apprentice", "points": 100},
    {"level": 3, "name": "Explorer", "points": 300},
    {"level": 4, "name": "Achiever", "points": 750},
    {"level": 5, "name": "Expert", "points": 1500},
    {"level": 6, "name": "Master", "points": 3000},
    {"level": 7, "name": "Champion", "points": 6000},
    {"level": 8, "name": "Legend", "points": 10000},
    {"level": 9, "name": "Elite", "points": 20000},
    {"level": 10, "name": "Grandmaster", "points": 50000},
]

TIER_THRESHOLDS: list[dict] = [
    {"tier": "Bronze", "points": 0, "multiplier": 1.0, "discount": 0},
    {"tier": "Silver", "points": 2500, "multiplier": 1.25, "discount": 5},
    {"tier": "Gold", "points": 10000, "multiplier": 1.5, "discount": 10},
    {"tier": "Platinum", "points": 25000, "multiplier": 2.0, "discount": 15},
]

# Below the first milestone the multiplier is 1.0
STREAK_MULTIPLIERS: list[dict] = [
    {"days": 7, "multiplier": 1.1},
    {"days": 14, "multiplier": 1.25},
    {"days": 30, "multiplier": 1.5},
    {"days": 60, "multiplier": 1.75},
    {"days": 90, "multiplier": 2.0},
]

DEFAULT_STREAK_MULTIPLIER = 1.0


@dataclass(frozen=True)
class ThresholdTables:
    """Versioned bundle of the three tables, injected into every consumer."""

    version: str = "2024.1"
    levels: list[dict] = field(default_factory=lambda: list(LEVEL_THRESHOLDS))
    tiers: list[dict] = field(default_factory=lambda: list(TIER_THRESHOLDS))
    streaks: list[dict] = field(default_factory=lambda: list(STREAK_MULTIPLIERS))

    def __post_init__(self) -> None:
        for name, rows, key in (
            ("levels", self.levels, "points"),
            ("tiers", self.tiers, "points"),
            ("streaks", self.streaks, "days"),
        ):
            if not rows:
                raise ValueError(f"{name} table is empty")
            thresholds = [row[key] for row in rows]
            if any(b <= a for a, b in zip(thresholds, thresholds[1:])):
                raise ValueError(f"{name} thresholds must be strictly ascending")

    def tier_names(self) -> list[str]:
        return [row["tier"] for row in self.tiers]


DEFAULT_TABLES = ThresholdTables()
