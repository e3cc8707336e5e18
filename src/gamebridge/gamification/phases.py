"""Lifecycle phase derived from onboarding progress."""

from __future__ import annotations

from datetime import datetime, timezone

from gamebridge.config import Settings, get_settings
from gamebridge.gamification.schemas import Phase
from gamebridge.store.base import Record


def days_since(start: datetime | None, now: datetime | None = None) -> int:
    if start is None:
        return 0
    if now is None:
        now = datetime.now(timezone.utc)
    return (now - start).days


def determine_phase(
    progress: Record | None,
    now: datetime | None = None,
    settings: Settings | None = None,
) -> Phase:
    """Active once onboarding ran past the cutoff or enough sections are done."""
    if progress is None:
        return Phase.ONBOARDING
    settings = settings or get_settings()
    sections = len(progress.get("completed_sections") or [])
    if (
        days_since(progress.get("start_date"), now) > settings.onboarding_active_after_days
        or sections >= settings.onboarding_active_after_sections
    ):
        return Phase.ACTIVE
    return Phase.ONBOARDING


def onboarding_completed(progress: Record | None, settings: Settings | None = None) -> bool:
    if progress is None:
        return False
    settings = settings or get_settings()
    return len(progress.get("completed_sections") or []) >= settings.onboarding_completed_sections
