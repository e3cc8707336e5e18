"""Lifecycle phase rules."""

from datetime import datetime, timedelta, timezone

from gamebridge.config import Settings
from gamebridge.gamification.phases import days_since, determine_phase, onboarding_completed
from gamebridge.gamification.schemas import Phase

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)
SETTINGS = Settings(_env_file=None)


def progress(days_in: int, sections: int = 0) -> dict:
    return {
        "start_date": NOW - timedelta(days=days_in),
        "completed_sections": [f"section-{i}" for i in range(sections)],
    }


class TestDeterminePhase:
    """Onboarding until 30 days have passed or 8 sections are done."""

    def test_no_progress_is_onboarding(self):
        assert determine_phase(None, NOW, SETTINGS) is Phase.ONBOARDING

    def test_early_starter(self):
        assert determine_phase(progress(5, 2), NOW, SETTINGS) is Phase.ONBOARDING

    def test_day_30_is_still_onboarding(self):
        assert determine_phase(progress(30), NOW, SETTINGS) is Phase.ONBOARDING

    def test_day_31_is_active(self):
        assert determine_phase(progress(31), NOW, SETTINGS) is Phase.ACTIVE

    def test_eight_sections_is_active(self):
        assert determine_phase(progress(3, 8), NOW, SETTINGS) is Phase.ACTIVE

    def test_missing_start_date(self):
        assert determine_phase({"start_date": None, "completed_sections": None}, NOW, SETTINGS) is Phase.ONBOARDING


class TestOnboardingCompleted:
    """Completion needs five sections."""

    def test_thresholds(self):
        assert onboarding_completed(progress(1, 4), SETTINGS) is False
        assert onboarding_completed(progress(1, 5), SETTINGS) is True
        assert onboarding_completed(None, SETTINGS) is False


class TestDaysSince:
    def test_whole_days(self):
        assert days_since(NOW - timedelta(days=2, hours=23), NOW) == 2
        assert days_since(None, NOW) == 0
