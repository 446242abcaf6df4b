"""Pydantic models for API request/response validation"""
from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from vitalpoints.models.points import (
    ActionType,
    LeaderboardEntry,
    LeaderboardPeriod,
    NextMultiplierInfo,
    PointsSummary,
    PointTransaction,
)


class AwardRequest(BaseModel):
    """Request to award points for one qualifying action"""
    action_type: ActionType = Field(..., description="food_log, workout, biofeedback, steps or milestone")
    base_points: int = Field(..., ge=0, description="Points before the streak multiplier")
    bonus_points: int = Field(default=0, ge=0, description="Flat points added after the multiplier")
    reference_id: Optional[str] = Field(default=None, description="Id of the domain record (idempotency key)")
    reference_type: Optional[str] = Field(default=None, description="Kind of domain record (idempotency key)")
    description: str = Field(default="", max_length=500)
    local_date: Optional[date] = Field(
        default=None,
        description="The action's calendar date in the user's timezone (defaults to today there)"
    )
    timezone: Optional[str] = Field(default=None, description="User's IANA timezone")


class AwardResponse(BaseModel):
    """Response with the transaction and refreshed summary"""
    transaction: PointTransaction
    summary: PointsSummary
    idempotent_hit: bool


class PointsSummaryResponse(BaseModel):
    """Response with a user's points summary"""
    user_id: str
    lifetime_points: int
    spendable_points: int
    daily_points: int
    weekly_points: int
    monthly_points: int
    current_streak: int
    longest_streak: int
    current_multiplier: int
    next_multiplier_info: Optional[NextMultiplierInfo] = None

    @classmethod
    def from_summary(cls, summary: PointsSummary) -> "PointsSummaryResponse":
        return cls(**summary.model_dump(exclude={"last_activity_date"}))


class TransactionListResponse(BaseModel):
    """Response with a list of transactions, newest first"""
    user_id: str
    transactions: List[PointTransaction]
    count: int


class LeaderboardResponse(BaseModel):
    """Response with a ranked leaderboard"""
    period: LeaderboardPeriod
    entries: List[LeaderboardEntry]


class HealthCheckResponse(BaseModel):
    """Health check response"""
    status: str = Field(..., description="Service status")
    database: str = Field(..., description="Database connection status")
    timestamp: datetime = Field(..., description="Check timestamp")


class ErrorResponse(BaseModel):
    """Error response model"""
    error: str = Field(..., description="Error type")
    message: str = Field(..., description="Error message")
    user_message: Optional[str] = None
    request_id: Optional[str] = None
    timestamp: Optional[datetime] = None
