"""Unit tests for feature-module hooks (vitalpoints/points/integrations.py)"""
import pytest
from unittest.mock import AsyncMock, patch

from vitalpoints.exceptions import ConcurrencyContentionError, PersistenceError
from vitalpoints.models.points import ActionType
from vitalpoints.points.integrations import (
    award_biofeedback_points,
    award_food_log_points,
    award_milestone_points,
    award_step_points,
    award_workout_points,
)


@pytest.mark.asyncio
async def test_award_food_log_points(container, store, test_user_id):
    result = await award_food_log_points(test_user_id, "entry-1", "Oatmeal")

    assert result.transaction.action_type == ActionType.FOOD_LOG
    assert result.transaction.total_points == 10
    assert result.transaction.reference_type == "food_entry"
    assert result.transaction.reference_id == "entry-1"
    assert result.transaction.description == "Logged: Oatmeal"


@pytest.mark.asyncio
async def test_food_log_hook_is_idempotent(container, store, test_user_id):
    """Test a re-fired hook for the same entry pays out once"""
    await award_food_log_points(test_user_id, "entry-1", "Oatmeal")
    again = await award_food_log_points(test_user_id, "entry-1", "Oatmeal")

    assert again.idempotent_hit is True
    assert (await store.get_account(test_user_id)).lifetime_points == 10


@pytest.mark.asyncio
async def test_award_workout_points(container, test_user_id):
    result = await award_workout_points(test_user_id, "ex-9", "Running", duration_minutes=30)

    assert result.transaction.base_points == 50
    assert result.transaction.reference_type == "exercise_log"
    assert result.transaction.description == "Workout: Running (30 min)"


@pytest.mark.asyncio
async def test_biofeedback_zero_points_is_skipped(container, store, test_user_id):
    """Test nothing is recorded when the daily-log module decides 0 points"""
    result = await award_biofeedback_points(test_user_id, "log-1", 0)

    assert result is None
    assert await store.get_account(test_user_id) is None


@pytest.mark.asyncio
async def test_biofeedback_and_steps_share_a_daily_log(container, store, test_user_id):
    """Test biofeedback and step awards on one daily log are separate keys"""
    bio = await award_biofeedback_points(test_user_id, "log-1", 15, fields=["sleep", "mood"])
    steps = await award_step_points(test_user_id, "log-1", 25, steps=10000)

    assert bio.transaction.reference_id == "log-1:biofeedback"
    assert bio.transaction.description == "Logged biofeedback: sleep, mood"
    assert steps.transaction.reference_id == "log-1:steps:25"
    assert steps.transaction.description == "Steps milestone: 10,000 steps"
    assert (await store.get_account(test_user_id)).lifetime_points == 40


@pytest.mark.asyncio
async def test_step_resync_within_tier_pays_once(container, store, test_user_id):
    """Test a wearable re-sync with a higher count in the same tier is not paid again"""
    first = await award_step_points(test_user_id, "log-1", 20, steps=5000)
    resync = await award_step_points(test_user_id, "log-1", 20, steps=5200)

    assert first.idempotent_hit is False
    assert resync.idempotent_hit is True
    assert resync.transaction.id == first.transaction.id
    assert len(await store.list_transactions(test_user_id)) == 1
    assert (await store.get_account(test_user_id)).lifetime_points == 20


@pytest.mark.asyncio
async def test_step_tier_upgrade_pays_the_difference(container, store, test_user_id):
    await award_step_points(test_user_id, "log-1", 10, steps=5000)
    higher = await award_step_points(test_user_id, "log-1", 25, steps=10000, previous_points=10)
    again = await award_step_points(test_user_id, "log-1", 25, steps=10400, previous_points=10)

    assert higher.idempotent_hit is False
    assert higher.transaction.base_points == 15
    assert higher.transaction.reference_id == "log-1:steps:25"
    assert again.idempotent_hit is True
    assert (await store.get_account(test_user_id)).lifetime_points == 25


@pytest.mark.asyncio
async def test_step_tier_already_credited_is_skipped(container, store, test_user_id):
    result = await award_step_points(test_user_id, "log-1", 25, steps=10000, previous_points=25)

    assert result is None
    assert await store.get_account(test_user_id) is None


@pytest.mark.asyncio
async def test_award_milestone_points(container, test_user_id):
    first = await award_milestone_points(test_user_id, "first_workout", 100, "First workout!")
    second = await award_milestone_points(test_user_id, "first_workout", 100, "First workout!")

    assert first.transaction.base_points == 0
    assert first.transaction.bonus_points == 100
    assert first.transaction.total_points == 100
    assert second.idempotent_hit is True


@pytest.mark.asyncio
async def test_hook_swallows_storage_failure(container, test_user_id):
    """Test a failing award is logged and reported, never raised"""
    error = PersistenceError("database unavailable", user_id=test_user_id)

    with patch.object(container.awarding_service, "award", AsyncMock(side_effect=error)):
        with patch("vitalpoints.points.integrations.capture_exception") as capture:
            result = await award_food_log_points(test_user_id, "entry-1", "Oatmeal")

    assert result is None
    capture.assert_called_once()
    assert capture.call_args.args[0] is error
    assert capture.call_args.kwargs["hook"] == "award_food_log_points"


@pytest.mark.asyncio
async def test_hook_swallows_contention(container, test_user_id):
    with patch.object(
        container.awarding_service,
        "award",
        AsyncMock(side_effect=ConcurrencyContentionError(user_id=test_user_id))
    ):
        result = await award_workout_points(test_user_id, "ex-1", "Yoga")

    assert result is None


@pytest.mark.asyncio
async def test_hook_swallows_validation_error(container, store, test_user_id):
    """Test bad input from a feature module does not break its save path"""
    with patch("vitalpoints.points.integrations.capture_exception") as capture:
        result = await award_food_log_points(test_user_id, "entry-1", "Oatmeal", base_points=-10)

    assert result is None
    assert await store.get_account(test_user_id) is None
    capture.assert_called_once()
    assert capture.call_args.kwargs["caller_bug"] is True
