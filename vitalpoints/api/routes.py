"""API routes for the points engine"""
import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from vitalpoints.api.auth import verify_api_key
from vitalpoints.api.middleware import limiter
from vitalpoints.api.models import (
    AwardRequest,
    AwardResponse,
    ErrorResponse,
    HealthCheckResponse,
    LeaderboardResponse,
    PointsSummaryResponse,
    TransactionListResponse,
)
from vitalpoints.config import LEADERBOARD_MAX_LIMIT, TRANSACTIONS_MAX_LIMIT
from vitalpoints.models.points import LeaderboardPeriod
from vitalpoints.services.awarding_service import AwardingService
from vitalpoints.services.container import get_container
from vitalpoints.services.query_service import QueryService
from vitalpoints.utils.datetime_helpers import is_valid_timezone

logger = logging.getLogger(__name__)

# Engine errors are rendered by PointsEngineError.to_dict()
router = APIRouter(
    responses={
        status.HTTP_401_UNAUTHORIZED: {"model": ErrorResponse, "description": "Unknown API key"},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse, "description": "Account busy or store unavailable"},
    }
)


def get_awarding_service() -> AwardingService:
    return get_container().awarding_service


def get_query_service() -> QueryService:
    return get_container().query_service


def _check_timezone(timezone: Optional[str]) -> None:
    if timezone is not None and not is_valid_timezone(timezone):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Unknown timezone: {timezone}"
        )


@router.post(
    "/api/v1/users/{user_id}/points/awards",
    response_model=AwardResponse,
    status_code=status.HTTP_201_CREATED
)
@limiter.limit("120/minute")
async def award_points(
    request: Request,
    response: Response,
    user_id: str,
    award_request: AwardRequest,
    api_key: str = Depends(verify_api_key),
    awarding_service: AwardingService = Depends(get_awarding_service)
):
    """
    Award points for one qualifying action (Rate limit: 120/minute)

    Returns 201 with the new transaction, or 200 with the original one
    when the reference was already awarded.
    """
    result = await awarding_service.award(
        user_id=user_id,
        action_type=award_request.action_type,
        base_points=award_request.base_points,
        bonus_points=award_request.bonus_points,
        reference_id=award_request.reference_id,
        reference_type=award_request.reference_type,
        description=award_request.description,
        local_date=award_request.local_date,
        timezone=award_request.timezone,
    )

    if result.idempotent_hit:
        response.status_code = status.HTTP_200_OK

    return AwardResponse(
        transaction=result.transaction,
        summary=result.summary,
        idempotent_hit=result.idempotent_hit
    )


@router.get("/api/v1/users/{user_id}/points", response_model=PointsSummaryResponse)
@limiter.limit("60/minute")
async def get_points_summary(
    request: Request,
    user_id: str,
    timezone: Optional[str] = Query(default=None, description="User's IANA timezone"),
    api_key: str = Depends(verify_api_key),
    query_service: QueryService = Depends(get_query_service)
):
    """Get user points summary (Rate limit: 60/minute)"""
    _check_timezone(timezone)
    summary = await query_service.get_summary(user_id, timezone=timezone)
    return PointsSummaryResponse.from_summary(summary)


@router.get("/api/v1/users/{user_id}/points/transactions", response_model=TransactionListResponse)
@limiter.limit("60/minute")
async def get_points_transactions(
    request: Request,
    user_id: str,
    start: Optional[datetime] = Query(default=None, description="Inclusive, ISO 8601 with offset"),
    end: Optional[datetime] = Query(default=None, description="Exclusive, ISO 8601 with offset"),
    limit: int = Query(default=100, ge=1, le=TRANSACTIONS_MAX_LIMIT),
    api_key: str = Depends(verify_api_key),
    query_service: QueryService = Depends(get_query_service)
):
    """Get transaction history, newest first (Rate limit: 60/minute)"""
    transactions = await query_service.get_transactions(user_id, start=start, end=end, limit=limit)
    return TransactionListResponse(user_id=user_id, transactions=transactions, count=len(transactions))


@router.get("/api/v1/users/{user_id}/points/transactions/today", response_model=TransactionListResponse)
@limiter.limit("60/minute")
async def get_today_points_transactions(
    request: Request,
    user_id: str,
    timezone: Optional[str] = Query(default=None, description="User's IANA timezone"),
    api_key: str = Depends(verify_api_key),
    query_service: QueryService = Depends(get_query_service)
):
    """Get transactions since local midnight (Rate limit: 60/minute)"""
    _check_timezone(timezone)
    transactions = await query_service.get_today_transactions(user_id, timezone=timezone)
    return TransactionListResponse(user_id=user_id, transactions=transactions, count=len(transactions))


@router.get("/api/v1/points/leaderboard", response_model=LeaderboardResponse)
@limiter.limit("30/minute")
async def get_points_leaderboard(
    request: Request,
    period: LeaderboardPeriod = Query(default=LeaderboardPeriod.WEEKLY),
    limit: int = Query(default=10, ge=1, le=LEADERBOARD_MAX_LIMIT),
    timezone: Optional[str] = Query(default=None, description="Timezone defining the window"),
    api_key: str = Depends(verify_api_key),
    query_service: QueryService = Depends(get_query_service)
):
    """Get leaderboard for the current day, week or month (Rate limit: 30/minute)"""
    _check_timezone(timezone)
    entries = await query_service.get_leaderboard(period, limit=limit, timezone=timezone)
    return LeaderboardResponse(period=period, entries=entries)


@router.get("/api/health", response_model=HealthCheckResponse)
@limiter.limit("60/minute")
async def health_check(request: Request):
    """Health check endpoint (Rate limit: 60/minute for monitoring systems)"""
    db_ok = await get_container().store.ping()
    db_status = "connected" if db_ok else "disconnected"

    return HealthCheckResponse(
        status="healthy" if db_ok else "degraded",
        database=db_status,
        timestamp=datetime.now()
    )


@router.get("/metrics")
async def prometheus_metrics():
    """Prometheus exposition endpoint"""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
