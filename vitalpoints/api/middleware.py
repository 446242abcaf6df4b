"""API middleware for rate limiting, CORS and request metrics"""
import logging
import os
import time
from typing import Callable

from fastapi import Request, Response
from fastapi.middleware.cors import CORSMiddleware
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware

from vitalpoints.monitoring.prometheus_metrics import metrics

logger = logging.getLogger(__name__)

limiter = Limiter(
    key_func=get_remote_address,
    enabled=os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"
)


def setup_cors(app):
    """Allow the presentation backends listed in CORS_ORIGINS to call the API"""
    origins = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",") if o.strip()]

    # Bearer keys travel in a header, not cookies
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=False,
        allow_methods=["GET", "POST"],
        allow_headers=["Authorization", "Content-Type"],
    )

    logger.info(f"[API] CORS origins: {origins}")


def setup_rate_limiting(app):
    """Configure rate limiting"""
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    logger.info(f"Rate limiting configured (enabled={limiter.enabled})")


class PrometheusMiddleware(BaseHTTPMiddleware):
    """
    Collect request count and latency per route

    Routes are labelled by their template (/api/v1/users/{user_id}/points)
    so user ids never become label values.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        method = request.method
        start_time = time.time()
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            route = request.scope.get("route")
            endpoint = getattr(route, "path", "unmatched")
            duration = time.time() - start_time

            metrics.http_requests_total.labels(
                method=method, endpoint=endpoint, status=status_code
            ).inc()
            metrics.http_request_duration_seconds.labels(
                method=method, endpoint=endpoint
            ).observe(duration)


def setup_metrics_middleware(app):
    """Add Prometheus metrics middleware when metrics are enabled"""
    if not metrics.enabled:
        logger.info("Metrics collection is disabled (ENABLE_PROMETHEUS=false)")
        return

    app.add_middleware(PrometheusMiddleware)
    logger.info("Prometheus metrics middleware added to FastAPI")
