"""
Streak Multiplier Tiers

Maps a streak length to the multiplier applied to base points:
- Day 1-2: 1x
- Day 3-6: 2x
- Day 7-13: 3x
- Day 14+: 4x (cap)

The multiplier for an award is resolved from the streak *after* today's
update, so the action that completes day 3 already earns 2x.
"""

from typing import Optional

from vitalpoints.models.points import NextMultiplierInfo

# (minimum streak, multiplier), highest first
MULTIPLIER_TIERS: list[tuple[int, int]] = [
    (14, 4),
    (7, 3),
    (3, 2),
    (0, 1),
]

MAX_MULTIPLIER = MULTIPLIER_TIERS[0][1]


def get_streak_multiplier(streak: int) -> int:
    """
    Multiplier for a streak length

    Args:
        streak: Consecutive active days (0 for a dormant account)

    Returns:
        1, 2, 3 or 4
    """
    for threshold, multiplier in MULTIPLIER_TIERS:
        if streak >= threshold:
            return multiplier
    return 1


def get_next_multiplier_info(streak: int) -> Optional[NextMultiplierInfo]:
    """
    Next tier above the current streak

    Returns:
        NextMultiplierInfo with days remaining at one qualifying day per
        day, or None once at the cap
    """
    current = get_streak_multiplier(streak)
    if current >= MAX_MULTIPLIER:
        return None

    # Walk tiers lowest first; the first threshold above the streak is next
    for threshold, multiplier in reversed(MULTIPLIER_TIERS):
        if multiplier > current:
            return NextMultiplierInfo(
                next_multiplier=multiplier,
                days_until=threshold - max(streak, 0),
            )
    return None
