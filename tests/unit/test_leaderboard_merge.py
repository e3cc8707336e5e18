"""Pure leaderboard merge: summing, re-ranking, filtering."""

import pytest

from gamebridge.errors import ValidationError
from gamebridge.gamification.leaderboard import merge_leaderboards, onboarding_level, trend_of
from gamebridge.gamification.schemas import LeaderboardEntry, Phase, Trend


def entry(email: str, points: int, phase: Phase, department: str = "HR", **fields) -> LeaderboardEntry:
    return LeaderboardEntry(
        rank=fields.pop("rank", 99),
        user_id=fields.pop("user_id", email),
        user_email=email,
        display_name=email.split("@")[0],
        department=department,
        phase=phase,
        total_points=points,
        phase_points=points,
        level=1,
        tier="Bronze",
        **fields,
    )


def onboarding(email: str, points: int, **fields) -> LeaderboardEntry:
    return entry(email, points, Phase.ONBOARDING, **fields)


def enterprise(email: str, points: int, **fields) -> LeaderboardEntry:
    return entry(email, points, Phase.ACTIVE, **fields)


class TestMergeLeaderboards:
    """Per-user merge of the two source leaderboards."""

    def test_user_in_both_is_summed_and_active(self):
        merged = merge_leaderboards([onboarding("a@x.com", 400)], [enterprise("a@x.com", 600)])
        assert len(merged) == 1
        assert merged[0].total_points == 1000
        assert merged[0].phase is Phase.ACTIVE
        assert merged[0].rank == 1

    def test_single_source_users_keep_their_phase(self):
        merged = merge_leaderboards([onboarding("a@x.com", 400)], [enterprise("b@x.com", 600)])
        by_email = {e.user_email: e for e in merged}
        assert by_email["a@x.com"].phase is Phase.ONBOARDING
        assert by_email["b@x.com"].phase is Phase.ACTIVE

    def test_ranks_are_reassigned_by_total(self):
        merged = merge_leaderboards(
            [onboarding("a@x.com", 100, rank=1), onboarding("b@x.com", 50, rank=2)],
            [enterprise("c@x.com", 700, rank=1), enterprise("b@x.com", 500, rank=2)],
        )
        assert [(e.user_email, e.rank, e.total_points) for e in merged] == [
            ("c@x.com", 1, 700),
            ("b@x.com", 2, 550),
            ("a@x.com", 3, 100),
        ]

    def test_ties_keep_pre_merge_order(self):
        merged = merge_leaderboards(
            [onboarding("a@x.com", 300), onboarding("b@x.com", 300)],
            [enterprise("c@x.com", 300)],
        )
        assert [e.user_email for e in merged] == ["a@x.com", "b@x.com", "c@x.com"]

    def test_merge_is_deterministic(self):
        ob = [onboarding(f"o{i}@x.com", (i % 3) * 100) for i in range(10)]
        ent = [enterprise(f"e{i}@x.com", (i % 4) * 75) for i in range(10)]
        first = merge_leaderboards(ob, ent, limit=50)
        second = merge_leaderboards(ob, ent, limit=50)
        assert [(e.user_email, e.rank) for e in first] == [(e.user_email, e.rank) for e in second]

    def test_inputs_are_not_mutated(self):
        source = onboarding("a@x.com", 400, rank=7)
        merge_leaderboards([source], [enterprise("a@x.com", 600)])
        assert source.total_points == 400
        assert source.rank == 7
        assert source.phase is Phase.ONBOARDING

    def test_merged_trend_is_carried_not_recomputed(self):
        merged = merge_leaderboards(
            [onboarding("a@x.com", 400, trend=Trend.SAME)],
            [enterprise("a@x.com", 600, trend=Trend.DOWN, previous_rank=1)],
        )
        assert merged[0].trend is Trend.SAME

    def test_limit_truncates(self):
        ob = [onboarding(f"u{i}@x.com", i) for i in range(30)]
        merged = merge_leaderboards(ob, [], limit=5)
        assert len(merged) == 5
        assert merged[0].total_points == 29


class TestMergeFilters:
    """Filters apply after global re-ranking."""

    def _boards(self):
        ob = [
            onboarding("a@x.com", 900, department="IT"),
            onboarding("b@x.com", 400, department="HR", is_current_user=True),
        ]
        ent = [
            enterprise("c@x.com", 1000, department="HR"),
            enterprise("d@x.com", 500, department="IT"),
        ]
        return ob, ent

    def test_onboarding_filter_keeps_global_rank(self):
        merged = merge_leaderboards(*self._boards(), phase_filter="onboarding")
        assert [(e.user_email, e.rank) for e in merged] == [("a@x.com", 2), ("b@x.com", 4)]

    def test_department_filter_uses_current_user(self):
        merged = merge_leaderboards(*self._boards(), phase_filter="department")
        assert [(e.user_email, e.rank) for e in merged] == [("c@x.com", 1), ("b@x.com", 4)]

    def test_department_filter_without_current_user_is_unfiltered(self):
        ob, ent = self._boards()
        ob[1] = ob[1].model_copy(update={"is_current_user": False})
        merged = merge_leaderboards(ob, ent, phase_filter="department")
        assert len(merged) == 4

    def test_unknown_filter(self):
        with pytest.raises(ValidationError, match="Unknown leaderboard filter"):
            merge_leaderboards([], [], phase_filter="cohort")

    @pytest.mark.parametrize("limit", [0, -3])
    def test_non_positive_limit(self, limit):
        with pytest.raises(ValidationError):
            merge_leaderboards([], [], limit=limit)


class TestHelpers:
    """Source leaderboard helpers."""

    def test_onboarding_level(self):
        assert onboarding_level(0) == 1
        assert onboarding_level(99) == 1
        assert onboarding_level(450) == 5

    def test_trend_of(self):
        assert trend_of(2) is Trend.UP
        assert trend_of(-1) is Trend.DOWN
        assert trend_of(0) is Trend.SAME


class TestMergeWithoutEmail:
    """Entries lacking an email merge on their per-system id."""

    def test_distinct_ids_are_not_collapsed(self):
        merged = merge_leaderboards([], [
            enterprise("", 200, user_id="2"),
            enterprise("", 100, user_id="1"),
        ])
        assert [(e.user_id, e.total_points) for e in merged] == [("2", 200), ("1", 100)]

    def test_same_id_in_other_system_is_another_user(self):
        merged = merge_leaderboards([onboarding("", 50, user_id="1")], [enterprise("", 70, user_id="1")])
        assert len(merged) == 2
        assert [e.phase for e in merged] == [Phase.ACTIVE, Phase.ONBOARDING]
