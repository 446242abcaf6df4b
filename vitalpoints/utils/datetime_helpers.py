"""
Standardized Date/Time Handling Utilities

This module provides centralized functions for date/time operations to ensure:
1. All DB timestamps stored in UTC
2. Streak days and rollup windows use the user's local calendar
3. "Today" is resolved once, at the boundary, and passed down explicitly

CRITICAL RULES:
- Always store datetimes in DB as UTC (use to_utc())
- Never derive a user's day from server time (use local_today())
- Never mix naive and aware datetimes
"""

import logging
from datetime import datetime, date, time, timedelta
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from vitalpoints.config import DEFAULT_TIMEZONE
from vitalpoints.models.points import LeaderboardPeriod

logger = logging.getLogger(__name__)

UTC = ZoneInfo("UTC")


def get_zone(tz_name: Optional[str]) -> ZoneInfo:
    """
    Resolve an IANA timezone name, falling back to DEFAULT_TIMEZONE

    Args:
        tz_name: e.g. "Europe/Stockholm"; None uses the default

    Returns:
        ZoneInfo object
    """
    if not tz_name:
        return ZoneInfo(DEFAULT_TIMEZONE)

    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        logger.warning(f"Invalid timezone '{tz_name}', using {DEFAULT_TIMEZONE}: {e}")
        return ZoneInfo(DEFAULT_TIMEZONE)


def now_utc() -> datetime:
    """
    Get current datetime in UTC (timezone-aware)

    Returns:
        Current datetime in UTC with timezone info
    """
    return datetime.now(UTC)


def to_utc(dt: datetime) -> datetime:
    """
    Convert an aware datetime to UTC

    Raises:
        ValueError: If dt is naive
    """
    if dt.tzinfo is None:
        raise ValueError("Cannot convert naive datetime to UTC; attach a timezone first")
    return dt.astimezone(UTC)


def local_today(tz_name: Optional[str] = None, now: Optional[datetime] = None) -> date:
    """
    Calendar date in the user's timezone

    Args:
        tz_name: User's IANA timezone
        now: Aware instant to evaluate (defaults to current time)

    Returns:
        The user's local date at that instant
    """
    instant = now or now_utc()
    return to_utc(instant).astimezone(get_zone(tz_name)).date()


def local_midnight_utc(local_date: date, tz_name: Optional[str] = None) -> datetime:
    """
    UTC instant at which local_date begins in the user's timezone

    zoneinfo resolves DST gaps and folds, so days of 23 or 25 hours
    map to the correct instant.
    """
    local_start = datetime.combine(local_date, time.min, tzinfo=get_zone(tz_name))
    return local_start.astimezone(UTC)


def window_start_date(period: LeaderboardPeriod, today: date) -> date:
    """
    First local date of the rollup window containing today

    daily: today; weekly: Monday of the ISO week; monthly: the 1st
    """
    if period == LeaderboardPeriod.DAILY:
        return today
    if period == LeaderboardPeriod.WEEKLY:
        return today - timedelta(days=today.weekday())
    return today.replace(day=1)


def window_start_utc(
    period: LeaderboardPeriod,
    tz_name: Optional[str] = None,
    now: Optional[datetime] = None
) -> datetime:
    """UTC start of the period's window as seen from the user's timezone"""
    today = local_today(tz_name, now)
    return local_midnight_utc(window_start_date(period, today), tz_name)


def is_valid_timezone(tz_name: str) -> bool:
    """True if tz_name is a known IANA timezone"""
    try:
        ZoneInfo(tz_name)
        return True
    except (ZoneInfoNotFoundError, ValueError):
        return False
