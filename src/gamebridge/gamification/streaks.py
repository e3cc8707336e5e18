"""Daily activity streaks: pure progression rules.

The streak step and its bonus are computed up front so the scoring engine can
apply the new streak and the bonus points in a single profile write.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum

from gamebridge.config import Settings


class BonusKind(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


@dataclass(frozen=True)
class StreakStep:
    """Outcome of one activity against the stored streak."""

    days: int
    bonus: BonusKind | None = None


def _as_date(value: datetime | date) -> date:
    return value.date() if isinstance(value, datetime) else value


def compute_streak(
    last_activity: datetime | date | None,
    current: int,
    today: datetime | date,
) -> StreakStep:
    """Advance a streak given the last activity day and today.

    - no previous activity: streak starts at 1, no bonus
    - same calendar day: unchanged, no bonus
    - previous calendar day: +1 with a monthly (every 30th day), weekly
      (every 7th day) or daily bonus
    - any longer gap: reset to 1, no bonus
    """
    if last_activity is None:
        return StreakStep(days=1)

    gap = (_as_date(today) - _as_date(last_activity)).days
    if gap <= 0:
        return StreakStep(days=current)
    if gap > 1:
        return StreakStep(days=1)

    days = current + 1
    if days % 30 == 0:
        bonus = BonusKind.MONTHLY
    elif days % 7 == 0:
        bonus = BonusKind.WEEKLY
    else:
        bonus = BonusKind.DAILY
    return StreakStep(days=days, bonus=bonus)


def bonus_points(bonus: BonusKind | None, settings: Settings) -> int:
    """Point value of a streak bonus under the configured point table."""
    if bonus is None:
        return 0
    return {
        BonusKind.DAILY: settings.points_daily_streak,
        BonusKind.WEEKLY: settings.points_weekly_streak,
        BonusKind.MONTHLY: settings.points_monthly_streak,
    }[bonus]
