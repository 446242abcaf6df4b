"""
In-Memory Points Store

Process-local implementation of the PointsStore contract, selected with
POINTS_STORE=memory. Used for development and tests; nothing survives a
restart.

Each unit of work stages its writes and applies them in one synchronous
step on clean exit, so other coroutines never see a transaction without
its account update. Per-user serialization uses a KeyedLock.
"""

import asyncio
import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncGenerator, Optional

from vitalpoints.config import AWARD_LOCK_TIMEOUT_SECONDS
from vitalpoints.db.store import PointsStore, PointsUnitOfWork
from vitalpoints.exceptions import PersistenceError, wrap_external_exception
from vitalpoints.models.points import PointsAccount, PointTransaction
from vitalpoints.utils.datetime_helpers import now_utc
from vitalpoints.utils.keyed_lock import KeyedLock

logger = logging.getLogger(__name__)


def _in_window(tx: PointTransaction, start: Optional[datetime], end: Optional[datetime]) -> bool:
    if start is not None and tx.created_at < start:
        return False
    if end is not None and tx.created_at >= end:
        return False
    return True


class MemoryUnitOfWork(PointsUnitOfWork):
    """Staged writes for one user, applied by commit()"""

    def __init__(self, store: "InMemoryPointsStore", user_id: str):
        self._store = store
        self.user_id = user_id
        self._account: Optional[PointsAccount] = None
        self._new_transactions: list[PointTransaction] = []

    async def find_by_reference(
        self,
        reference_type: str,
        reference_id: str
    ) -> Optional[PointTransaction]:
        key = (self.user_id, reference_type, reference_id)
        for tx in self._new_transactions:
            if (tx.user_id, tx.reference_type, tx.reference_id) == key:
                return tx
        return self._store._by_reference.get(key)

    async def get_or_create_account(self) -> PointsAccount:
        if self._account is None:
            existing = self._store._accounts.get(self.user_id)
            if existing is not None:
                self._account = existing.model_copy()
            else:
                now = now_utc()
                self._account = PointsAccount(user_id=self.user_id, created_at=now, updated_at=now)
                logger.info(f"Created new points account for user {self.user_id}")
        return self._account.model_copy()

    async def append_transaction(self, transaction: PointTransaction) -> None:
        if transaction.reference_id is not None and transaction.reference_type is not None:
            existing = await self.find_by_reference(transaction.reference_type, transaction.reference_id)
            if existing is not None:
                raise PersistenceError(
                    "Duplicate idempotency key in point_transactions",
                    user_id=self.user_id,
                    operation="append_transaction",
                    context={
                        "reference_type": transaction.reference_type,
                        "reference_id": transaction.reference_id,
                    }
                )
        self._new_transactions.append(transaction)

    async def save_account(self, account: PointsAccount) -> None:
        self._account = account.model_copy(update={
            "daily_points": 0,
            "weekly_points": 0,
            "monthly_points": 0,
            "updated_at": now_utc(),
        })

    async def ledger_total(self) -> int:
        committed = sum(tx.total_points for tx in self._store._transactions.get(self.user_id, []))
        return committed + sum(tx.total_points for tx in self._new_transactions)

    def commit(self) -> None:
        """Apply staged writes. Synchronous, so no other task interleaves."""
        if self._account is not None:
            self._store._accounts[self.user_id] = self._account
        for tx in self._new_transactions:
            self._store._transactions[self.user_id].append(tx)
            if tx.reference_id is not None and tx.reference_type is not None:
                self._store._by_reference[(tx.user_id, tx.reference_type, tx.reference_id)] = tx


class InMemoryPointsStore(PointsStore):
    """Points ledger held in process memory"""

    def __init__(self, lock_timeout: float = AWARD_LOCK_TIMEOUT_SECONDS):
        self.lock_timeout = lock_timeout
        self._locks = KeyedLock()
        self._accounts: dict[str, PointsAccount] = {}
        self._transactions: dict[str, list[PointTransaction]] = defaultdict(list)
        self._by_reference: dict[tuple[str, str, str], PointTransaction] = {}
        logger.warning("InMemoryPointsStore initialized - points are NOT persisted across restarts")

    async def ping(self) -> bool:
        return True

    @asynccontextmanager
    async def unit_of_work(self, user_id: str) -> AsyncGenerator[MemoryUnitOfWork, None]:
        entered = False
        try:
            async with self._locks.hold(user_id, timeout=self.lock_timeout):
                entered = True
                uow = MemoryUnitOfWork(self, user_id)
                yield uow
                uow.commit()
        except asyncio.TimeoutError as e:
            if entered:
                raise
            raise wrap_external_exception(e, operation="unit_of_work", user_id=user_id) from e

    async def get_account(self, user_id: str) -> Optional[PointsAccount]:
        account = self._accounts.get(user_id)
        return account.model_copy() if account else None

    async def list_account_user_ids(self) -> list[str]:
        return sorted(self._accounts)

    async def list_transactions(
        self,
        user_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: Optional[int] = None
    ) -> list[PointTransaction]:
        matching = [tx for tx in self._transactions.get(user_id, []) if _in_window(tx, start, end)]
        # Appended in commit order; reverse first so equal timestamps stay newest-first
        matching.reverse()
        matching.sort(key=lambda tx: tx.created_at, reverse=True)
        return matching[:limit] if limit is not None else matching

    async def sum_points(
        self,
        user_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> int:
        return sum(
            tx.total_points
            for tx in self._transactions.get(user_id, [])
            if _in_window(tx, start, end)
        )

    async def sum_points_by_user(
        self,
        start: datetime,
        end: datetime,
        limit: int
    ) -> list[tuple[str, int]]:
        totals = []
        for user_id, transactions in self._transactions.items():
            points = sum(tx.total_points for tx in transactions if _in_window(tx, start, end))
            if points > 0:
                totals.append((user_id, points))
        totals.sort(key=lambda item: (-item[1], item[0]))
        return totals[:limit]
