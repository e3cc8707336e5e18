"""Tier, level and streak-multiplier lookups over the threshold tables.

All lookups scan from the highest threshold downward and return the first
row the value qualifies for.
"""

from __future__ import annotations

from gamebridge.gamification.thresholds import DEFAULT_STREAK_MULTIPLIER, DEFAULT_TABLES, ThresholdTables


def _row_index(rows: list[dict], key: str, value: int) -> int | None:
    for i in range(len(rows) - 1, -1, -1):
        if value >= rows[i][key]:
            return i
    return None


def level_of(points: int, tables: ThresholdTables = DEFAULT_TABLES) -> tuple[int, str]:
    """Return ``(level, name)`` for a point total."""
    idx = _row_index(tables.levels, "points", points)
    row = tables.levels[idx if idx is not None else 0]
    return row["level"], row["name"]


def tier_of(points: int, tables: ThresholdTables = DEFAULT_TABLES) -> tuple[str, float, int]:
    """Return ``(tier, multiplier, discount_percent)`` for a point total."""
    idx = _row_index(tables.tiers, "points", points)
    row = tables.tiers[idx if idx is not None else 0]
    return row["tier"], row["multiplier"], row["discount"]


def tier_with_floor(
    points: int, floor: str | None, tables: ThresholdTables = DEFAULT_TABLES,
) -> tuple[str, float, int]:
    """Like ``tier_of`` but never below ``floor`` (a tier granted by badge sync)."""
    earned = tier_of(points, tables)
    names = tables.tier_names()
    if floor not in names or names.index(floor) <= names.index(earned[0]):
        return earned
    row = tables.tiers[names.index(floor)]
    return row["tier"], row["multiplier"], row["discount"]


def streak_multiplier_of(days: int, tables: ThresholdTables = DEFAULT_TABLES) -> float:
    """Return the point multiplier earned by a streak of ``days``."""
    idx = _row_index(tables.streaks, "days", days)
    if idx is None:
        return DEFAULT_STREAK_MULTIPLIER
    return tables.streaks[idx]["multiplier"]


def points_to_next(kind: str, points: int, tables: ThresholdTables = DEFAULT_TABLES) -> int:
    """Distance to the next threshold of ``kind`` ("level", "tier" or "streak").

    Returns 0 once the top row has been reached.
    """
    if kind == "level":
        rows, key = tables.levels, "points"
    elif kind == "tier":
        rows, key = tables.tiers, "points"
    elif kind == "streak":
        rows, key = tables.streaks, "days"
    else:
        raise ValueError(f"Unknown threshold kind: {kind}")

    idx = _row_index(rows, key, points)
    next_idx = 0 if idx is None else idx + 1
    if next_idx >= len(rows):
        return 0
    return rows[next_idx][key] - points


def next_level_info(points: int, tables: ThresholdTables = DEFAULT_TABLES) -> dict:
    """Next-level target and progress through the current level.

    At max level the target is the current level and progress is 100.
    """
    level, name = level_of(points, tables)
    levels = tables.levels
    idx = next(i for i, row in enumerate(levels) if row["level"] == level)

    if idx + 1 >= len(levels):
        return {
            "level": level,
            "level_name": name,
            "points_required": 0,
            "points_remaining": 0,
            "progress_percentage": 100,
        }

    current_floor = levels[idx]["points"]
    nxt = levels[idx + 1]
    span = nxt["points"] - current_floor
    earned = points - current_floor
    return {
        "level": nxt["level"],
        "level_name": nxt["name"],
        "points_required": nxt["points"],
        "points_remaining": nxt["points"] - points,
        "progress_percentage": max(0, min(100, round(earned / span * 100))),
    }
