"""Points ledger models for gamification"""
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ActionType(str, Enum):
    """Qualifying actions that earn points"""
    FOOD_LOG = "food_log"
    WORKOUT = "workout"
    BIOFEEDBACK = "biofeedback"
    STEPS = "steps"
    MILESTONE = "milestone"


class LeaderboardPeriod(str, Enum):
    """Rollup windows, in the user's local calendar"""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


def compute_total_points(base_points: int, multiplier: int, bonus_points: int = 0) -> int:
    """round(base * multiplier) + bonus, rounding halves up"""
    scaled = Decimal(base_points) * Decimal(multiplier)
    return int(scaled.quantize(Decimal("1"), rounding=ROUND_HALF_UP)) + bonus_points


class PointTransaction(BaseModel):
    """Immutable ledger entry"""
    model_config = ConfigDict(frozen=True)

    id: str
    user_id: str
    action_type: ActionType
    base_points: int
    multiplier: int
    bonus_points: int = 0
    total_points: int
    description: str = ""
    reference_id: Optional[str] = None
    reference_type: Optional[str] = None
    created_at: datetime


class PointsAccount(BaseModel):
    """A user's running totals and streak state"""
    user_id: str
    lifetime_points: int = 0
    spendable_points: int = 0
    # Derived from the ledger at read time, never persisted
    daily_points: int = 0
    weekly_points: int = 0
    monthly_points: int = 0
    current_streak: int = Field(default=0, ge=0)
    longest_streak: int = Field(default=0, ge=0)
    last_activity_date: Optional[date] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class NextMultiplierInfo(BaseModel):
    """Next multiplier tier and days left to reach it at one action per day"""
    next_multiplier: int
    days_until: int


class PointsSummary(BaseModel):
    """Read model for presentation layers"""
    user_id: str
    lifetime_points: int = 0
    spendable_points: int = 0
    daily_points: int = 0
    weekly_points: int = 0
    monthly_points: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    current_multiplier: int = 1
    next_multiplier_info: Optional[NextMultiplierInfo] = None
    last_activity_date: Optional[date] = None


class AwardResult(BaseModel):
    """Outcome of one award call"""
    transaction: PointTransaction
    summary: PointsSummary
    idempotent_hit: bool = False


class LeaderboardEntry(BaseModel):
    """One ranked row of a leaderboard"""
    rank: int
    user_id: str
    points: int


class ReconciliationReport(BaseModel):
    """lifetime_points compared against the ledger sum"""
    user_id: str
    recorded_lifetime_points: int
    ledger_total_points: int
    drift: int
    repaired: bool = False

    @property
    def consistent(self) -> bool:
        return self.drift == 0
