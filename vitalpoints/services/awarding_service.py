"""
AwardingService - The Points Write Path

The only entry point that writes to the points ledger. One award runs
as a single serialized, all-or-nothing unit per user:

1. Idempotency lookup on (reference_type, reference_id)
2. Load or create the PointsAccount
3. Streak update for the caller's local date
4. Multiplier from the *updated* streak
5. total_points = round(base * multiplier) + bonus
6. Append the PointTransaction
7. Write streak fields, lifetime_points and spendable_points

The lookup sits inside the same unit as the writes, so two racing calls
for one reference cannot both pass it. Lock or serialization contention
is retried with backoff; anything else fails the award with prior state
untouched.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Callable, Optional, Tuple, Union
from uuid import uuid4

from vitalpoints.db.store import PointsStore
from vitalpoints.exceptions import PointsEngineError, ValidationError, wrap_external_exception
from vitalpoints.models.points import (
    ActionType,
    AwardResult,
    PointTransaction,
    compute_total_points,
)
from vitalpoints.monitoring.prometheus_metrics import metrics, track_award
from vitalpoints.points.multiplier import get_streak_multiplier
from vitalpoints.points.streak_system import update_streak
from vitalpoints.resilience.retry import MAX_RETRIES, retry_with_backoff
from vitalpoints.services.query_service import QueryService
from vitalpoints.utils.datetime_helpers import is_valid_timezone, local_today, now_utc

logger = logging.getLogger(__name__)


class AwardingService:
    """
    Service that awards points.

    Responsibilities:
    - Input validation before any storage access
    - Per-user critical section with idempotency, streak, multiplier,
      ledger append and account update
    - Bounded retry on contention
    - Fresh summary for the caller after commit
    """

    def __init__(
        self,
        store: PointsStore,
        query_service: Optional[QueryService] = None,
        clock: Callable[[], datetime] = now_utc,
        max_retries: int = MAX_RETRIES
    ):
        """
        Initialize AwardingService.

        Args:
            store: Points ledger store
            query_service: Read side used for the post-award summary
            clock: Source of aware UTC instants for created_at
            max_retries: Contention retries before giving up
        """
        self.store = store
        self.query_service = query_service or QueryService(store)
        self.clock = clock
        self.max_retries = max_retries
        logger.debug("AwardingService initialized")

    async def award(
        self,
        user_id: str,
        action_type: Union[ActionType, str],
        base_points: int,
        bonus_points: int = 0,
        reference_id: Optional[str] = None,
        reference_type: Optional[str] = None,
        description: str = "",
        local_date: Optional[date] = None,
        timezone: Optional[str] = None
    ) -> AwardResult:
        """
        Award points for one qualifying action.

        Args:
            user_id: User identifier
            action_type: food_log, workout, biofeedback, steps or milestone
            base_points: Points before the multiplier (>= 0)
            bonus_points: Flat points added after the multiplier (>= 0)
            reference_id: Id of the domain record behind the award
            reference_type: Kind of that record (food_entry, exercise_log, ...)
            description: Human-readable line for the history view
            local_date: The action's calendar date in the user's timezone
            timezone: Used to derive local_date when it is not given, and
                for the returned summary's windows

        Returns:
            AwardResult; idempotent_hit is True when the reference had
            already been awarded and nothing changed

        The returned summary is evaluated at the clock's current local day,
        like every other summary. A backfilled local_date older than
        yesterday therefore credits its streak but reports
        current_streak=0, since the streak is already broken as of today.

        Raises:
            ValidationError: Bad input, nothing touched
            ConcurrencyContentionError: Still contended after retries
            PersistenceError / ConnectionError: Storage failed, nothing committed
        """
        action = self._validate(
            user_id, action_type, base_points, bonus_points, reference_id, reference_type
        )
        if timezone is not None and not is_valid_timezone(timezone):
            raise ValidationError("Unknown IANA timezone", field="timezone", value=timezone, user_id=user_id)
        today = local_date or local_today(timezone, self.clock())

        with track_award():
            try:
                transaction, idempotent_hit = await retry_with_backoff(
                    self._award_once,
                    user_id,
                    action,
                    base_points,
                    bonus_points,
                    reference_id,
                    reference_type,
                    description,
                    today,
                    max_retries=self.max_retries,
                )
            except PointsEngineError as e:
                metrics.record_award_failure(type(e).__name__)
                raise
            except Exception as e:
                error = wrap_external_exception(
                    e,
                    operation="award_points",
                    user_id=user_id,
                    context={"reference_id": reference_id, "reference_type": reference_type}
                )
                metrics.record_award_failure(type(error).__name__)
                raise error from e

        if idempotent_hit:
            metrics.record_idempotent_hit(action.value)
        else:
            metrics.record_award(action.value, transaction.multiplier, transaction.total_points)

        # Windows end exclusively at `now`; evaluate just after the new row
        summary_at = max(self.clock(), transaction.created_at + timedelta(microseconds=1))
        summary = await self.query_service.get_summary(user_id, timezone=timezone, now=summary_at)

        return AwardResult(transaction=transaction, summary=summary, idempotent_hit=idempotent_hit)

    async def _award_once(
        self,
        user_id: str,
        action: ActionType,
        base_points: int,
        bonus_points: int,
        reference_id: Optional[str],
        reference_type: Optional[str],
        description: str,
        today: date
    ) -> Tuple[PointTransaction, bool]:
        """One attempt at the critical section"""
        async with self.store.unit_of_work(user_id) as uow:
            if reference_id is not None and reference_type is not None:
                existing = await uow.find_by_reference(reference_type, reference_id)
                if existing is not None:
                    if existing.action_type != action or existing.base_points != base_points:
                        logger.warning(
                            f"[POINTS] Reference {reference_type}:{reference_id} reused for user "
                            f"{user_id} with a different payload; keeping original award"
                        )
                    logger.info(
                        f"[POINTS] Idempotent hit for user {user_id}: "
                        f"{reference_type}:{reference_id} -> transaction {existing.id}"
                    )
                    return existing, True

            account = await uow.get_or_create_account()
            streak = update_streak(account, today)
            multiplier = get_streak_multiplier(streak.current_streak)
            total_points = compute_total_points(base_points, multiplier, bonus_points)

            transaction = PointTransaction(
                id=str(uuid4()),
                user_id=user_id,
                action_type=action,
                base_points=base_points,
                multiplier=multiplier,
                bonus_points=bonus_points,
                total_points=total_points,
                description=description,
                reference_id=reference_id,
                reference_type=reference_type,
                created_at=self.clock(),
            )
            await uow.append_transaction(transaction)

            account.current_streak = streak.current_streak
            account.longest_streak = streak.longest_streak
            account.last_activity_date = streak.last_activity_date
            account.lifetime_points += total_points
            account.spendable_points += total_points
            await uow.save_account(account)

        logger.info(
            f"[POINTS] Awarded {total_points} points to user {user_id} for {action.value} "
            f"(base={base_points}, x{multiplier}, bonus={bonus_points}). "
            f"Streak: {streak.previous_streak} → {streak.current_streak} ({streak.transition.value}), "
            f"lifetime: {account.lifetime_points}"
        )
        return transaction, False

    @staticmethod
    def _validate(
        user_id: str,
        action_type: Union[ActionType, str],
        base_points: int,
        bonus_points: int,
        reference_id: Optional[str],
        reference_type: Optional[str]
    ) -> ActionType:
        """Reject bad input before any storage access"""
        if not isinstance(user_id, str) or not user_id.strip():
            raise ValidationError("user_id is required", field="user_id", value=user_id)

        try:
            action = ActionType(action_type)
        except ValueError:
            raise ValidationError(
                f"Unrecognized action type; expected one of {[a.value for a in ActionType]}",
                field="action_type",
                value=action_type,
                user_id=user_id
            )

        for field, value in (("base_points", base_points), ("bonus_points", bonus_points)):
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValidationError(f"{field} must be an integer", field=field, value=value, user_id=user_id)
            if value < 0:
                raise ValidationError(f"{field} must be >= 0", field=field, value=value, user_id=user_id)

        if (reference_id is None) != (reference_type is None):
            raise ValidationError(
                "reference_id and reference_type must be given together",
                field="reference_id" if reference_id is None else "reference_type",
                value=None,
                user_id=user_id
            )

        return action
