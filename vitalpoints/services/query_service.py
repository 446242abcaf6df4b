"""
QueryService - Read-only Points Summaries

Serves presentation layers: the points summary card, transaction
history, and leaderboards. Never mutates; reads may trail an in-flight
award by a moment but never see half of one.
"""

import logging
from datetime import datetime
from typing import List, Optional

from vitalpoints.config import LEADERBOARD_MAX_LIMIT, TRANSACTIONS_MAX_LIMIT
from vitalpoints.db.store import PointsStore
from vitalpoints.exceptions import ValidationError
from vitalpoints.models.points import (
    LeaderboardEntry,
    LeaderboardPeriod,
    PointsSummary,
    PointTransaction,
)
from vitalpoints.points.aggregator import compute_rollups
from vitalpoints.points.multiplier import get_next_multiplier_info, get_streak_multiplier
from vitalpoints.points.streak_system import effective_streak
from vitalpoints.utils.datetime_helpers import local_today, now_utc, window_start_utc

logger = logging.getLogger(__name__)


class QueryService:
    """
    Service for points read models.

    Responsibilities:
    - Points summary with windowed rollups and multiplier progress
    - Transaction history, newest first
    - Leaderboards per rollup window
    """

    def __init__(self, store: PointsStore):
        """
        Initialize QueryService.

        Args:
            store: Points ledger store
        """
        self.store = store
        logger.debug("QueryService initialized")

    async def get_summary(
        self,
        user_id: str,
        timezone: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> PointsSummary:
        """
        Get a user's points summary.

        A user who never earned points gets a zero summary at 1x. The
        reported streak is the effective one: a streak whose last day is
        older than yesterday shows as 0, since the next action restarts it.

        Args:
            user_id: User identifier
            timezone: User's IANA timezone for streak day and windows
            now: Aware instant to evaluate at (defaults to current time)

        Returns:
            PointsSummary
        """
        now = now or now_utc()
        account = await self.store.get_account(user_id)

        if account is None:
            return PointsSummary(
                user_id=user_id,
                current_multiplier=get_streak_multiplier(0),
                next_multiplier_info=get_next_multiplier_info(0),
            )

        streak = effective_streak(account, local_today(timezone, now))
        rollups = await compute_rollups(self.store, user_id, timezone, now)

        return PointsSummary(
            user_id=user_id,
            lifetime_points=account.lifetime_points,
            spendable_points=account.spendable_points,
            daily_points=rollups["daily_points"],
            weekly_points=rollups["weekly_points"],
            monthly_points=rollups["monthly_points"],
            current_streak=streak,
            longest_streak=account.longest_streak,
            current_multiplier=get_streak_multiplier(streak),
            next_multiplier_info=get_next_multiplier_info(streak),
            last_activity_date=account.last_activity_date,
        )

    async def get_transactions(
        self,
        user_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: int = 100
    ) -> List[PointTransaction]:
        """
        Get transaction history, most recent first.

        Args:
            user_id: User identifier
            start: Inclusive lower bound on created_at (aware)
            end: Exclusive upper bound on created_at (aware)
            limit: Maximum rows, capped at TRANSACTIONS_MAX_LIMIT

        Returns:
            List of PointTransaction
        """
        if start is not None and start.tzinfo is None:
            raise ValidationError("start must be timezone-aware", field="start", value=str(start))
        if end is not None and end.tzinfo is None:
            raise ValidationError("end must be timezone-aware", field="end", value=str(end))
        if start is not None and end is not None and start > end:
            raise ValidationError("start must not be after end", field="start", value=str(start))
        if limit < 1:
            raise ValidationError("limit must be >= 1", field="limit", value=limit)

        return await self.store.list_transactions(
            user_id,
            start=start,
            end=end,
            limit=min(limit, TRANSACTIONS_MAX_LIMIT),
        )

    async def get_today_transactions(
        self,
        user_id: str,
        timezone: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> List[PointTransaction]:
        """Transactions since local midnight in the user's timezone"""
        now = now or now_utc()
        start = window_start_utc(LeaderboardPeriod.DAILY, timezone, now)
        return await self.get_transactions(user_id, start=start, end=now, limit=TRANSACTIONS_MAX_LIMIT)

    async def get_leaderboard(
        self,
        period: LeaderboardPeriod,
        limit: int = 10,
        timezone: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> List[LeaderboardEntry]:
        """
        Rank users by points earned in the current window.

        The window boundary is taken from one timezone (the viewer's, or
        DEFAULT_TIMEZONE) so every row is compared over the same interval.

        Args:
            period: daily, weekly or monthly
            limit: Number of rows, capped at LEADERBOARD_MAX_LIMIT
            timezone: Timezone that defines the window
            now: Aware instant closing the window

        Returns:
            Ranked entries; equal points share a rank
        """
        if limit < 1:
            raise ValidationError("limit must be >= 1", field="limit", value=limit)

        now = now or now_utc()
        start = window_start_utc(period, timezone, now)
        rows = await self.store.sum_points_by_user(start, now, min(limit, LEADERBOARD_MAX_LIMIT))

        entries = []
        previous_points = None
        rank = 0
        for position, (user_id, points) in enumerate(rows, start=1):
            if points != previous_points:
                rank = position
                previous_points = points
            entries.append(LeaderboardEntry(rank=rank, user_id=user_id, points=points))
        return entries
