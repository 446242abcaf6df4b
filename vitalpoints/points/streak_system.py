"""
Daily Activity Streak Tracking

A streak counts consecutive calendar days, in the user's own timezone,
that contain at least one qualifying action.

State machine per account:
- Dormant (streak 0) -> Active(1) on the first qualifying action
- Active(n) -> Active(n+1) on an action exactly one day after the last
- Active(n) -> Active(n) on a repeat action the same day
- Active(n) -> Active(1) on an action after a gap of 2+ days

Everything here is pure. The caller resolves "today" once per award
(see vitalpoints.utils.datetime_helpers.local_today) and passes it in,
so DST shifts and server clocks never affect the comparison.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from typing import Optional
import logging

from vitalpoints.models.points import PointsAccount

logger = logging.getLogger(__name__)


class StreakTransition(str, Enum):
    """Which edge of the state machine an update took"""
    STARTED = "started"
    CONTINUED = "continued"
    SAME_DAY = "same_day"
    RESET = "reset"


@dataclass(frozen=True)
class StreakUpdate:
    """Streak fields after applying one qualifying day"""
    current_streak: int
    longest_streak: int
    last_activity_date: date
    previous_streak: int
    transition: StreakTransition

    @property
    def advanced(self) -> bool:
        return self.transition in (StreakTransition.STARTED, StreakTransition.CONTINUED)


def update_streak(account: PointsAccount, today: date) -> StreakUpdate:
    """
    Apply a qualifying action on `today` to the account's streak

    Logic:
    - Same day as last activity: no change
    - Day after last activity: streak + 1
    - First activity, or gap > 1 day: streak = 1
    - longest_streak = max(longest_streak, current_streak)

    A date earlier than last_activity_date (timezone moved west between
    calls) is counted as already-active: no change, and last_activity_date
    never moves backwards.

    Args:
        account: Current account state (not mutated)
        today: The action's calendar date in the user's timezone

    Returns:
        StreakUpdate with the new streak fields
    """
    last_date = account.last_activity_date
    previous = account.current_streak

    if last_date is None:
        current = 1
        transition = StreakTransition.STARTED
        last_date = today
    elif today <= last_date:
        # Covers the same-day repeat and out-of-order dates
        current = previous if previous > 0 else 1
        transition = StreakTransition.SAME_DAY
    elif today == last_date + timedelta(days=1):
        current = previous + 1
        transition = StreakTransition.CONTINUED
        last_date = today
    else:
        gap_days = (today - last_date).days
        logger.info(
            f"Streak reset for user {account.user_id}: was {previous} days, "
            f"gap was {gap_days} days"
        )
        current = 1
        transition = StreakTransition.RESET
        last_date = today

    return StreakUpdate(
        current_streak=current,
        longest_streak=max(account.longest_streak, current),
        last_activity_date=last_date,
        previous_streak=previous,
        transition=transition,
    )


def effective_streak(account: PointsAccount, today: date) -> int:
    """
    Streak as it stands for display on `today`

    A stored streak whose last activity is older than yesterday is
    already broken; the next action will reset it to 1.
    """
    last_date: Optional[date] = account.last_activity_date
    if last_date is None:
        return 0
    if today - last_date > timedelta(days=1):
        return 0
    return account.current_streak
