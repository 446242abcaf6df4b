"""
Errors raised by the points engine

Every error logs itself once when constructed, carries a request_id that
is echoed in API responses, and maps to an HTTP status in api/server.py.
"""

from datetime import datetime, timezone
from typing import Optional, Dict, Any
from uuid import uuid4
import logging

logger = logging.getLogger(__name__)


class PointsEngineError(Exception):
    """
    Root of the engine's error tree

    `message` is for logs, `user_message` is safe to show in the app.
    Subclasses pick their log level through the `log_level` attribute.

    Example:
        raise PointsEngineError(
            message="Failed to award points",
            user_id="123456",
            operation="award_points",
            context={"reference_id": "food-entry-123"}
        )
    """

    log_level: int = logging.ERROR

    def __init__(
        self,
        message: str,
        user_id: Optional[str] = None,
        request_id: Optional[str] = None,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        user_message: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.user_id = user_id
        self.request_id = request_id or str(uuid4())
        self.operation = operation
        self.context = context or {}
        self.cause = cause
        self.user_message = user_message or "Something went wrong with your points. Please try again."
        self.timestamp = datetime.now(timezone.utc)

        self._log_error()

    def _log_error(self) -> None:
        # LogRecord reserves `message`, so fields are prefixed
        extra = {
            "points_error": self.__class__.__name__,
            "points_request_id": self.request_id,
            "points_user_id": self.user_id,
            "points_operation": self.operation,
            "points_context": self.context,
        }
        if self.cause is not None:
            extra["points_cause"] = repr(self.cause)

        logger.log(
            self.log_level,
            f"{self.__class__.__name__}: {self.message}",
            extra=extra,
            exc_info=self.cause
        )

    def to_dict(self) -> Dict[str, Any]:
        """JSON body returned by the API error handler"""
        return dict(
            error=type(self).__name__,
            message=self.message,
            user_message=self.user_message,
            request_id=self.request_id,
            timestamp=self.timestamp.isoformat(),
        )


# --- validation errors (caller input) ---

class ValidationError(PointsEngineError):
    """
    Raised when an award request fails validation

    Examples:
    - Unrecognized action type
    - Negative base or bonus points
    - Half of an idempotency key

    Example:
        raise ValidationError(
            message="base_points must be >= 0",
            field="base_points",
            value=-5,
            user_id="123456"
        )
    """

    log_level = logging.WARNING

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        **kwargs
    ):
        self.field = field
        self.value = value
        super().__init__(
            message=message,
            user_message=f"Invalid {field}: {message}" if field else message,
            context={"field": field, "value": value},
            **kwargs
        )


# --- concurrency errors ---

class ConcurrencyContentionError(PointsEngineError):
    """
    Another award for the same user held the critical section too long,
    or the database aborted the transaction (serialization failure,
    deadlock, lock timeout). Transient: callers may retry with the same
    idempotency key.
    """

    log_level = logging.WARNING

    def __init__(self, message: str = "Points account is busy", **kwargs):
        super().__init__(
            message=message,
            user_message="Your points are being updated. Please try again in a moment.",
            **kwargs
        )


# --- database errors ---

class DatabaseError(PointsEngineError):
    """The ledger store failed; the award did not commit"""


class PersistenceError(DatabaseError):
    """Reading or writing the points ledger failed"""

    def __init__(
        self,
        message: str,
        query: Optional[str] = None,
        **kwargs
    ):
        self.query = query
        kwargs.setdefault("user_message", "Points could not be credited right now. They will be added later.")
        kwargs.setdefault("context", {"query": query})
        super().__init__(message=message, **kwargs)


class ConnectionError(DatabaseError):
    """The store could not be reached"""

    def __init__(self, message: str = "Points store unreachable", **kwargs):
        super().__init__(
            message=message,
            user_message="Points are temporarily unavailable. Please try again in a moment.",
            **kwargs
        )


# --- authentication ---

class AuthenticationError(PointsEngineError):
    """A caller presented no API key or an unknown one"""

    log_level = logging.WARNING

    def __init__(
        self,
        message: str = "Unknown API key",
        **kwargs
    ):
        super().__init__(
            message=message,
            user_message="This service is not allowed to call the points API.",
            **kwargs
        )


# --- configuration errors ---

class ConfigurationError(PointsEngineError):
    """An environment setting is missing or out of range"""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        **kwargs
    ):
        self.config_key = config_key
        super().__init__(
            message=message,
            user_message="The points service is misconfigured. Please contact support.",
            context={"config_key": config_key},
            **kwargs
        )


# --- helper functions ---

# SQLSTATE codes the award path treats as contention
_CONTENTION_SQLSTATES = {
    "40001",  # serialization_failure
    "40P01",  # deadlock_detected
    "55P03",  # lock_not_available
    "57014",  # query_canceled (statement/lock timeout)
}


def wrap_external_exception(
    error: Exception,
    operation: str,
    user_id: Optional[str] = None,
    context: Optional[Dict[str, Any]] = None
) -> PointsEngineError:
    """
    Translate a psycopg or asyncio failure into a PointsEngineError

    Lock waits, serialization failures and deadlocks become
    ConcurrencyContentionError so the award path retries them. Other
    driver errors become ConnectionError or PersistenceError.
    Engine errors pass through unchanged.

    Example:
        try:
            await cur.execute(INSERT_TRANSACTION, params)
        except psycopg.Error as e:
            raise wrap_external_exception(e, "append_transaction", user_id) from e
    """
    import asyncio
    import psycopg

    if isinstance(error, PointsEngineError):
        return error

    if isinstance(error, psycopg.Error) and getattr(error, "sqlstate", None) in _CONTENTION_SQLSTATES:
        return ConcurrencyContentionError(
            message=f"Database contention during {operation}: {error}",
            user_id=user_id,
            operation=operation,
            context=context,
            cause=error
        )
    if isinstance(error, psycopg.OperationalError):
        return ConnectionError(
            message=f"Points store unreachable during {operation}: {error}",
            user_id=user_id,
            operation=operation,
            context=context,
            cause=error
        )
    if isinstance(error, psycopg.Error):
        return PersistenceError(
            message=f"Ledger query failed during {operation}: {error}",
            user_id=user_id,
            operation=operation,
            context=context,
            cause=error
        )
    if isinstance(error, asyncio.TimeoutError):
        return ConcurrencyContentionError(
            message=f"Timed out waiting for points account lock during {operation}",
            user_id=user_id,
            operation=operation,
            context=context,
            cause=error
        )

    return PointsEngineError(
        message=f"{operation} failed: {error!r}",
        user_id=user_id,
        operation=operation,
        context=context,
        cause=error
    )
