"""
Points system for health tracking actions

This module implements the points engine:
- Daily activity streaks on the user's local calendar
- Streak multiplier tiers (1x, 2x, 3x, 4x)
- Windowed rollups and lifetime reconciliation over the ledger
- Integration hooks for feature modules
"""

from vitalpoints.points.multiplier import get_streak_multiplier, get_next_multiplier_info
from vitalpoints.points.streak_system import update_streak, effective_streak, StreakTransition
from vitalpoints.points.aggregator import compute_rollups, reconcile_lifetime_points, reconcile_all

__all__ = [
    "get_streak_multiplier",
    "get_next_multiplier_info",
    "update_streak",
    "effective_streak",
    "StreakTransition",
    "compute_rollups",
    "reconcile_lifetime_points",
    "reconcile_all",
]
