"""Tests for the pure rating math."""

import pytest

from arena.utils.elo import EloCalculator


class TestCalculateEloChange:
    """Tests for EloCalculator.calculate_elo_change."""

    def test_equal_ratings_transfer_half_k(self):
        assert EloCalculator.calculate_elo_change(1000, 1000) == 16

    def test_underdog_win_transfers_more(self):
        """1000 beating 1200: 32 * (1 - 1/(1 + 10^0.5)) = 24.3"""
        assert EloCalculator.calculate_elo_change(1000, 1200) == 24

    def test_favourite_win_transfers_less(self):
        assert EloCalculator.calculate_elo_change(1200, 1000) == 8

    @pytest.mark.parametrize("winner,loser", [
        (100, 3000), (3000, 100), (1000, 1000), (1500, 1499), (800, 2400),
    ])
    def test_change_is_never_negative(self, winner, loser):
        assert EloCalculator.calculate_elo_change(winner, loser) >= 0

    def test_custom_k_factor(self):
        assert EloCalculator.calculate_elo_change(1000, 1000, k_factor=64) == 32

    def test_expected_scores_sum_to_one(self):
        a = EloCalculator.calculate_expected_score(1100, 1350)
        b = EloCalculator.calculate_expected_score(1350, 1100)
        assert a + b == pytest.approx(1.0)


class TestApplyResult:
    """Tests for EloCalculator.apply_result."""

    def test_applies_delta_to_both_sides(self):
        assert EloCalculator.apply_result(1000, 1200, 24) == (1024, 1176)

    def test_loser_floor(self):
        winner, loser = EloCalculator.apply_result(1000, 105, 16)
        assert winner == 1016
        assert loser == 100

    def test_floor_holds_for_any_delta(self):
        _, loser = EloCalculator.apply_result(2000, 100, 500)
        assert loser == 100


class TestRankScore:
    """Tests for win rate and rank score."""

    def test_win_rate_with_no_games(self):
        assert EloCalculator.calculate_win_rate(0, 0) == 0.0

    def test_win_rate_is_percentage(self):
        assert EloCalculator.calculate_win_rate(3, 1) == 75.0

    def test_rank_score(self):
        assert EloCalculator.calculate_rank_score(4, 80.0) == 120.0
