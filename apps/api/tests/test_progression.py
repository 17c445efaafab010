"""
Tests for the progression calculator: level curve, progress percent and
streak milestone bonuses.
"""
import pytest

from services.progression import (
    EVERY_TEN_DAYS_BONUS,
    calculate_level,
    progression_snapshot,
    streak_milestone_bonus,
    xp_for_level,
    xp_progress_percent,
)


class TestLevelCurve:
    @pytest.mark.parametrize("xp,expected", [
        (0, 1),
        (49, 1),
        (50, 2),
        (199, 2),
        (200, 3),
        (449, 3),
        (450, 4),
        (5000, 11),
    ])
    def test_calculate_level(self, xp, expected):
        assert calculate_level(xp) == expected

    def test_level_boundaries_line_up_with_xp_for_level(self):
        """Reaching xp_for_level(L) is exactly what moves a user into level L + 1."""
        for level in range(1, 30):
            threshold = xp_for_level(level)
            assert calculate_level(threshold) == level + 1
            assert calculate_level(threshold - 1) == level

    def test_level_never_decreases(self):
        previous = calculate_level(0)
        for xp in range(0, 20000, 7):
            level = calculate_level(xp)
            assert level >= previous
            previous = level

    def test_negative_xp_clamps_to_level_one(self):
        assert calculate_level(-10) == 1

    def test_xp_for_level(self):
        assert xp_for_level(0) == 0
        assert xp_for_level(1) == 50
        assert xp_for_level(2) == 200
        assert xp_for_level(10) == 5000


class TestProgressPercent:
    @pytest.mark.parametrize("xp,expected", [
        (0, 0),
        (25, 50),
        (50, 0),
        (125, 50),
        (100, 33),
        (199, 99),
    ])
    def test_progress_within_level(self, xp, expected):
        assert xp_progress_percent(xp) == expected

    def test_half_rounds_up(self):
        # Level 2 spans 50..200; 68.75 XP in is 12.5%
        assert xp_progress_percent(50 + 18.75) == 13

    def test_always_within_bounds(self):
        for xp in range(0, 10000, 13):
            assert 0 <= xp_progress_percent(xp) <= 100

    def test_snapshot(self):
        snapshot = progression_snapshot(125)
        assert snapshot == {
            "xp": 125,
            "level": 2,
            "xp_progress_percent": 50,
            "xp_for_next_level": 200,
        }

    def test_snapshot_treats_missing_xp_as_zero(self):
        assert progression_snapshot(None)["level"] == 1


class TestStreakMilestones:
    @pytest.mark.parametrize("streak,bonus", [
        (3, 30),
        (7, 100),
        (14, 150),
        (30, 500),
        (100, 2000),
    ])
    def test_named_milestones(self, streak, bonus):
        assert streak_milestone_bonus(streak) == bonus

    @pytest.mark.parametrize("streak", [10, 20, 40, 50, 90, 110, 200])
    def test_every_tenth_day(self, streak):
        assert streak_milestone_bonus(streak) == EVERY_TEN_DAYS_BONUS

    @pytest.mark.parametrize("streak", [0, 1, 2, 4, 6, 8, 13, 15, 29, 31, 99, 101])
    def test_no_bonus(self, streak):
        assert streak_milestone_bonus(streak) == 0

    def test_named_milestone_wins_over_every_tenth_day(self):
        """30 and 100 are multiples of ten but only pay their named bonus."""
        assert streak_milestone_bonus(30) == 500
        assert streak_milestone_bonus(100) == 2000
