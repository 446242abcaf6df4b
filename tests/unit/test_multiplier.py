"""Unit tests for Multiplier tiers (vitalpoints/points/multiplier.py)"""
import pytest

from vitalpoints.points.multiplier import (
    MAX_MULTIPLIER,
    get_next_multiplier_info,
    get_streak_multiplier,
)


@pytest.mark.parametrize(
    "streak,expected",
    [
        (0, 1),
        (1, 1),
        (2, 1),
        (3, 2),
        (6, 2),
        (7, 3),
        (13, 3),
        (14, 4),
        (20, 4),
        (365, 4),
    ],
)
def test_get_streak_multiplier_tiers(streak, expected):
    """Test each tier boundary maps to the right multiplier"""
    assert get_streak_multiplier(streak) == expected


def test_multiplier_is_monotonic():
    """Test multiplier never decreases as the streak grows"""
    values = [get_streak_multiplier(n) for n in range(0, 40)]
    assert values == sorted(values)
    assert max(values) == MAX_MULTIPLIER == 4


def test_next_multiplier_info_dormant_account():
    """Test a zero streak is three days from 2x"""
    info = get_next_multiplier_info(0)

    assert info.next_multiplier == 2
    assert info.days_until == 3


def test_next_multiplier_info_mid_tier():
    """Test days remaining counts to the next threshold"""
    info = get_next_multiplier_info(4)

    assert info.next_multiplier == 3
    assert info.days_until == 3


def test_next_multiplier_info_on_threshold():
    """Test a streak exactly on a threshold points at the tier above"""
    info = get_next_multiplier_info(7)

    assert info.next_multiplier == 4
    assert info.days_until == 7


def test_next_multiplier_info_at_cap():
    """Test there is no next tier at 4x"""
    assert get_next_multiplier_info(14) is None
    assert get_next_multiplier_info(100) is None
