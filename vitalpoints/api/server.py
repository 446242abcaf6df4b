"""FastAPI application setup"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from vitalpoints.api.routes import router
from vitalpoints.api.middleware import setup_cors, setup_metrics_middleware, setup_rate_limiting
from vitalpoints.config import LOG_LEVEL, validate_config
from vitalpoints.db.store import PointsStore, get_store
from vitalpoints.exceptions import (
    AuthenticationError,
    ConcurrencyContentionError,
    DatabaseError,
    PointsEngineError,
    ValidationError,
)
from vitalpoints.monitoring import capture_exception, init_sentry
from vitalpoints.services.container import init_container, reset_container

# Configure logging
logging.basicConfig(
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    level=getattr(logging, LOG_LEVEL)
)

logger = logging.getLogger(__name__)


def _error_status(exc: PointsEngineError) -> int:
    if isinstance(exc, AuthenticationError):
        return status.HTTP_401_UNAUTHORIZED
    if isinstance(exc, ValidationError):
        return status.HTTP_422_UNPROCESSABLE_ENTITY
    if isinstance(exc, (ConcurrencyContentionError, DatabaseError)):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def create_api_application(store: PointsStore = None) -> FastAPI:
    """
    Create and configure FastAPI application

    Args:
        store: Ledger store to serve; defaults to the one selected by POINTS_STORE
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifecycle manager for FastAPI application"""
        # Startup
        logger.info("Starting points API server...")
        validate_config()
        init_sentry()
        points_store = store or get_store()
        await points_store.init()
        init_container(points_store)
        logger.info(f"Points store ready: {type(points_store).__name__}")

        yield

        # Shutdown
        logger.info("Shutting down points API server...")
        await points_store.close()
        reset_container()
        logger.info("Points store closed")

    app = FastAPI(
        title="VitalPoints API",
        description="Gamification points engine for health tracking",
        version="1.0.0",
        lifespan=lifespan
    )

    # Setup middleware
    setup_cors(app)
    setup_rate_limiting(app)
    setup_metrics_middleware(app)

    # Include routes
    app.include_router(router)

    @app.exception_handler(PointsEngineError)
    async def points_exception_handler(request: Request, exc: PointsEngineError):
        return JSONResponse(status_code=_error_status(exc), content=exc.to_dict())

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        capture_exception(exc, path=request.url.path)
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "detail": str(exc)}
        )

    logger.info("FastAPI application created")

    return app


app = create_api_application()
