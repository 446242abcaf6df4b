"""
Points Rollups and Reconciliation

daily/weekly/monthly points are sums over the ledger for
[window_start, now), where window_start is local midnight of the day,
ISO week (Monday) or month in the user's timezone. They are never kept
as counters, so there is no rollover to forget.

lifetime_points is the one incrementally maintained counter. It is
checked against sum(total_points) by reconcile_lifetime_points(), which
a periodic job runs for every account via reconcile_all().
"""

from datetime import datetime
from typing import Optional
import logging

from vitalpoints.db.store import PointsStore
from vitalpoints.models.points import LeaderboardPeriod, ReconciliationReport
from vitalpoints.resilience.retry import with_retry
from vitalpoints.utils.datetime_helpers import now_utc, window_start_utc

logger = logging.getLogger(__name__)


async def get_window_points(
    store: PointsStore,
    user_id: str,
    period: LeaderboardPeriod,
    timezone: Optional[str] = None,
    now: Optional[datetime] = None
) -> int:
    """
    Points earned in the current window

    Args:
        store: Ledger store
        user_id: User identifier
        period: daily, weekly or monthly
        timezone: User's IANA timezone
        now: Aware instant that closes the window (defaults to current time)

    Returns:
        Sum of total_points with created_at in [window_start, now)
    """
    end = now or now_utc()
    start = window_start_utc(period, timezone, end)
    return await store.sum_points(user_id, start=start, end=end)


async def compute_rollups(
    store: PointsStore,
    user_id: str,
    timezone: Optional[str] = None,
    now: Optional[datetime] = None
) -> dict[str, int]:
    """
    All three windowed sums evaluated at the same instant

    Returns:
        {'daily_points': int, 'weekly_points': int, 'monthly_points': int}
    """
    end = now or now_utc()
    rollups = {}
    for period in LeaderboardPeriod:
        rollups[f"{period.value}_points"] = await get_window_points(
            store, user_id, period, timezone, end
        )
    return rollups


@with_retry()
async def reconcile_lifetime_points(
    store: PointsStore,
    user_id: str,
    repair: bool = False
) -> ReconciliationReport:
    """
    Compare lifetime_points with the ledger sum for one user

    Runs inside the user's critical section so no award lands between
    the two reads. With repair=True a drifted counter is overwritten with
    the ledger sum, and spendable_points shifts by the same delta.
    Contention with an in-flight award is retried.

    Args:
        store: Ledger store
        user_id: User identifier
        repair: Rewrite lifetime_points on drift

    Returns:
        ReconciliationReport
    """
    if await store.get_account(user_id) is None:
        # No account means no award ever committed for this user
        return ReconciliationReport(
            user_id=user_id,
            recorded_lifetime_points=0,
            ledger_total_points=0,
            drift=0,
        )

    async with store.unit_of_work(user_id) as uow:
        account = await uow.get_or_create_account()
        recorded = account.lifetime_points
        ledger_total = await uow.ledger_total()
        drift = recorded - ledger_total
        repaired = False

        if drift != 0:
            logger.warning(
                f"[POINTS] lifetime_points drift for user {user_id}: "
                f"recorded={recorded}, ledger={ledger_total}, drift={drift}"
            )
            if repair:
                account.lifetime_points = ledger_total
                account.spendable_points = max(account.spendable_points - drift, 0)
                await uow.save_account(account)
                repaired = True
                logger.info(f"[POINTS] Repaired lifetime_points for user {user_id}")

    return ReconciliationReport(
        user_id=user_id,
        recorded_lifetime_points=recorded,
        ledger_total_points=ledger_total,
        drift=drift,
        repaired=repaired,
    )


async def reconcile_all(store: PointsStore, repair: bool = False) -> list[ReconciliationReport]:
    """
    Reconcile every account; returns only the reports that found drift

    Intended for a periodic job.
    """
    from vitalpoints.monitoring.prometheus_metrics import metrics

    drifted = []
    for user_id in await store.list_account_user_ids():
        report = await reconcile_lifetime_points(store, user_id, repair=repair)
        if not report.consistent:
            drifted.append(report)

    metrics.record_reconciliation(len(drifted), sum(abs(r.drift) for r in drifted))
    logger.info(f"[POINTS] Reconciliation finished: {len(drifted)} account(s) drifted")
    return drifted
