"""
Points Integration Hooks

Feature modules (food logging, workouts, daily biofeedback, step goals,
milestones) call these right after their own record is saved. Each hook
supplies a stable reference to that record, so a retried or duplicated
trigger for the same record never pays out twice.

Points are an incentive layer, not a gate: a hook never raises. On
failure it logs, reports to Sentry, and returns None. The caller's
record stays saved and the same hook can be called again later.

Usage:
    from vitalpoints.points.integrations import award_food_log_points

    # After saving the food entry
    result = await award_food_log_points(user_id, entry_id, "Oatmeal", timezone="Europe/Stockholm")
"""

import logging
from datetime import date
from typing import Iterable, Optional

from vitalpoints.config import POINT_VALUES
from vitalpoints.exceptions import PointsEngineError, ValidationError
from vitalpoints.models.points import ActionType, AwardResult
from vitalpoints.monitoring.sentry_config import capture_exception

logger = logging.getLogger(__name__)

# reference_type values recorded on transactions
REFERENCE_FOOD_ENTRY = "food_entry"
REFERENCE_EXERCISE_LOG = "exercise_log"
REFERENCE_DAILY_LOG = "daily_log"
REFERENCE_MILESTONE = "milestone"


def _awarding_service():
    from vitalpoints.services.container import get_container
    return get_container().awarding_service


async def _safe_award(hook: str, user_id: str, **award_kwargs) -> Optional[AwardResult]:
    """Run one award; swallow and report any engine failure"""
    logger.info(
        f"[POINTS] {hook} called: user={user_id}, "
        f"reference={award_kwargs.get('reference_type')}:{award_kwargs.get('reference_id')}"
    )
    try:
        return await _awarding_service().award(user_id=user_id, **award_kwargs)
    except ValidationError as e:
        # A caller bug, not a transient failure
        logger.error(f"[POINTS] {hook} rejected for user {user_id}: {e.message}")
        capture_exception(e, hook=hook, user_id=user_id, caller_bug=True)
        return None
    except PointsEngineError as e:
        logger.error(
            f"[POINTS] {hook} failed for user {user_id}; points not yet credited "
            f"(request_id={e.request_id}): {e.message}"
        )
        capture_exception(e, hook=hook, user_id=user_id)
        return None


async def award_food_log_points(
    user_id: str,
    food_entry_id: str,
    food_name: str,
    base_points: int = POINT_VALUES["food_log"],
    local_date: Optional[date] = None,
    timezone: Optional[str] = None
) -> Optional[AwardResult]:
    """
    Award points for a saved food entry

    Args:
        user_id: User identifier
        food_entry_id: Id of the saved food entry
        food_name: Shown in the transaction description
        base_points: Defaults to POINT_VALUES['food_log']
        local_date: The entry's day in the user's timezone
        timezone: User's IANA timezone

    Returns:
        AwardResult, or None if awarding failed
    """
    return await _safe_award(
        "award_food_log_points",
        user_id,
        action_type=ActionType.FOOD_LOG,
        base_points=base_points,
        reference_id=food_entry_id,
        reference_type=REFERENCE_FOOD_ENTRY,
        description=f"Logged: {food_name}",
        local_date=local_date,
        timezone=timezone,
    )


async def award_workout_points(
    user_id: str,
    exercise_log_id: str,
    workout_name: str,
    base_points: int = POINT_VALUES["workout"],
    duration_minutes: Optional[int] = None,
    local_date: Optional[date] = None,
    timezone: Optional[str] = None
) -> Optional[AwardResult]:
    """
    Award points for a saved workout

    base_points is decided by the workout module (duration bonuses
    included); it defaults to POINT_VALUES['workout'].
    """
    description = f"Workout: {workout_name}"
    if duration_minutes is not None:
        description += f" ({duration_minutes} min)"

    return await _safe_award(
        "award_workout_points",
        user_id,
        action_type=ActionType.WORKOUT,
        base_points=base_points,
        reference_id=exercise_log_id,
        reference_type=REFERENCE_EXERCISE_LOG,
        description=description,
        local_date=local_date,
        timezone=timezone,
    )


async def award_biofeedback_points(
    user_id: str,
    daily_log_id: str,
    base_points: int,
    fields: Iterable[str] = (),
    local_date: Optional[date] = None,
    timezone: Optional[str] = None
) -> Optional[AwardResult]:
    """
    Award points for biofeedback on a daily log (sleep, energy, mood, ...)

    Args:
        daily_log_id: Id of the daily log the fields were saved on
        base_points: Decided by the daily-log module; 0 means nothing to award
        fields: Names of the fields logged, for the description

    Returns:
        AwardResult, or None if nothing was awarded
    """
    if base_points == 0:
        return None

    logged = ", ".join(fields)
    return await _safe_award(
        "award_biofeedback_points",
        user_id,
        action_type=ActionType.BIOFEEDBACK,
        base_points=base_points,
        reference_id=f"{daily_log_id}:biofeedback",
        reference_type=REFERENCE_DAILY_LOG,
        description=f"Logged biofeedback: {logged}" if logged else "Logged biofeedback",
        local_date=local_date,
        timezone=timezone,
    )


async def award_step_points(
    user_id: str,
    daily_log_id: str,
    base_points: int,
    steps: int,
    previous_points: int = 0,
    local_date: Optional[date] = None,
    timezone: Optional[str] = None
) -> Optional[AwardResult]:
    """
    Award points for reaching a step goal tier on a daily log

    Wearables re-sync the same daily log many times a day. The reference
    is keyed on the tier reached, not the raw count, so a re-sync that
    stays within a tier is an idempotent hit. When the count climbs into
    a higher tier only the difference over the tier already credited is
    paid.

    Args:
        daily_log_id: Id of the daily log holding the step count
        base_points: Tier points for `steps`, decided by the step-goal module;
            0 means nothing to award
        steps: Step count that reached the tier, for the description
        previous_points: Tier points already credited for this log

    Returns:
        AwardResult, or None if nothing was awarded
    """
    points_to_award = max(0, base_points - previous_points)
    if points_to_award == 0:
        return None

    return await _safe_award(
        "award_step_points",
        user_id,
        action_type=ActionType.STEPS,
        base_points=points_to_award,
        reference_id=f"{daily_log_id}:steps:{base_points}",
        reference_type=REFERENCE_DAILY_LOG,
        description=f"Steps milestone: {steps:,} steps",
        local_date=local_date,
        timezone=timezone,
    )


async def award_milestone_points(
    user_id: str,
    milestone_key: str,
    bonus_points: int,
    description: str,
    local_date: Optional[date] = None,
    timezone: Optional[str] = None
) -> Optional[AwardResult]:
    """
    Award a one-time milestone bonus (first workout, first week, ...)

    Milestones carry no base points; bonus_points is added after the
    multiplier, so streak tier does not scale it. milestone_key is the
    reference, so each milestone pays out once per user.
    """
    return await _safe_award(
        "award_milestone_points",
        user_id,
        action_type=ActionType.MILESTONE,
        base_points=0,
        bonus_points=bonus_points,
        reference_id=milestone_key,
        reference_type=REFERENCE_MILESTONE,
        description=description,
        local_date=local_date,
        timezone=timezone,
    )
