"""
Contention retry for per-user critical sections

Two awards for the same user serialize on the account lock. When the lock
wait times out, or Postgres aborts one side with a serialization failure,
deadlock or a racing idempotency-key insert, the loser raises
ConcurrencyContentionError and is re-run here after a short jittered pause.
The re-run sees the winner's committed state, so a repeated reference
resolves to the existing transaction instead of a duplicate.
"""

import asyncio
import logging
import random
from functools import wraps
from typing import Any, Awaitable, Callable, TypeVar

from vitalpoints.config import AWARD_MAX_RETRIES
from vitalpoints.exceptions import ConcurrencyContentionError
from vitalpoints.monitoring.prometheus_metrics import metrics

logger = logging.getLogger(__name__)

T = TypeVar('T')

MAX_RETRIES = AWARD_MAX_RETRIES
BASE_DELAY = 0.05  # seconds
MAX_DELAY = 1.0  # seconds
JITTER = 0.1  # +/- fraction of the delay


def is_retryable_error(exc: BaseException) -> bool:
    """Only contention is worth re-running; anything else fails the same way twice"""
    return isinstance(exc, ConcurrencyContentionError)


def calculate_backoff(attempt: int) -> float:
    """
    Delay before re-run number `attempt` (0-indexed)

    Doubles from BASE_DELAY up to MAX_DELAY, then spreads by +/-JITTER so
    two callers that collided once do not collide again in lockstep.
    """
    ceiling = min(BASE_DELAY * (2 ** attempt), MAX_DELAY)
    spread = ceiling * JITTER
    return max(ceiling + random.uniform(-spread, spread), 0.0)


async def retry_with_backoff(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    max_retries: int = MAX_RETRIES,
    **kwargs: Any
) -> T:
    """
    Await func(*args, **kwargs), re-running it on contention

    Makes at most max_retries + 1 attempts. Non-retryable errors propagate
    from the first attempt; contention propagates once attempts run out.
    """
    name = getattr(func, "__name__", repr(func))
    attempt = 0
    while True:
        try:
            return await func(*args, **kwargs)
        except Exception as e:
            if not is_retryable_error(e):
                raise
            if attempt >= max_retries:
                logger.error(f"[RETRY] {name} still contended after {attempt + 1} attempts")
                raise

            delay = calculate_backoff(attempt)
            attempt += 1
            metrics.record_contention_retry()
            logger.info(f"[RETRY] {name} contended, re-run {attempt}/{max_retries} in {delay:.3f}s")
            await asyncio.sleep(delay)


def with_retry(max_retries: int = MAX_RETRIES) -> Callable:
    """Decorator form of retry_with_backoff for async functions"""
    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            return await retry_with_backoff(func, *args, max_retries=max_retries, **kwargs)
        return wrapper
    return decorator
