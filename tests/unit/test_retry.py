"""Unit tests for retry with backoff (vitalpoints/resilience/retry.py)"""
import pytest
from unittest.mock import AsyncMock, patch

from vitalpoints.exceptions import ConcurrencyContentionError, PersistenceError, ValidationError
from vitalpoints.resilience.retry import (
    BASE_DELAY,
    MAX_DELAY,
    calculate_backoff,
    is_retryable_error,
    retry_with_backoff,
    with_retry,
)


def test_is_retryable_error():
    assert is_retryable_error(ConcurrencyContentionError())
    assert not is_retryable_error(PersistenceError("insert failed"))
    assert not is_retryable_error(ValidationError("bad", field="x"))
    assert not is_retryable_error(RuntimeError("boom"))


def test_calculate_backoff_grows_and_caps():
    for attempt in range(10):
        delay = calculate_backoff(attempt)
        expected = min(BASE_DELAY * (2 ** attempt), MAX_DELAY)
        assert expected * 0.9 <= delay <= expected * 1.1


@pytest.mark.asyncio
async def test_retry_succeeds_after_contention():
    func = AsyncMock(side_effect=[ConcurrencyContentionError(), "ok"])
    func.__name__ = "award_once"

    with patch("vitalpoints.resilience.retry.asyncio.sleep", AsyncMock()) as sleep:
        result = await retry_with_backoff(func, "user", max_retries=3)

    assert result == "ok"
    assert func.await_count == 2
    sleep.assert_awaited_once()


@pytest.mark.asyncio
async def test_retry_exhausted_reraises():
    func = AsyncMock(side_effect=ConcurrencyContentionError())
    func.__name__ = "award_once"

    with patch("vitalpoints.resilience.retry.asyncio.sleep", AsyncMock()):
        with pytest.raises(ConcurrencyContentionError):
            await retry_with_backoff(func, max_retries=2)

    assert func.await_count == 3


@pytest.mark.asyncio
async def test_non_retryable_error_raises_immediately():
    func = AsyncMock(side_effect=PersistenceError("insert failed"))
    func.__name__ = "award_once"

    with pytest.raises(PersistenceError):
        await retry_with_backoff(func, max_retries=3)

    assert func.await_count == 1


@pytest.mark.asyncio
async def test_with_retry_decorator():
    calls = {"count": 0}

    @with_retry(max_retries=1)
    async def flaky():
        calls["count"] += 1
        if calls["count"] == 1:
            raise ConcurrencyContentionError()
        return calls["count"]

    with patch("vitalpoints.resilience.retry.asyncio.sleep", AsyncMock()):
        assert await flaky() == 2
