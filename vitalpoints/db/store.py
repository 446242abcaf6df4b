"""
Points ledger storage contract

The ledger (point_transactions) is the source of truth. points_accounts
holds streak state and the incrementally maintained lifetime counter.

Writes go through a unit of work opened per user. A unit of work:
- is serialized against every other unit of work for the same user
- commits all of its writes together, or none of them
- is the only place an account or a transaction is written

Reads outside a unit of work may be briefly stale but never observe a
transaction without its account update.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from datetime import datetime
from typing import Optional
import logging

from vitalpoints.models.points import PointsAccount, PointTransaction

logger = logging.getLogger(__name__)


class PointsUnitOfWork(ABC):
    """Writes and consistent reads for one user inside the critical section"""

    user_id: str

    @abstractmethod
    async def find_by_reference(
        self,
        reference_type: str,
        reference_id: str
    ) -> Optional[PointTransaction]:
        """Existing transaction for this user's idempotency key"""

    @abstractmethod
    async def get_or_create_account(self) -> PointsAccount:
        """Load the account, creating a zero-valued one on first award"""

    @abstractmethod
    async def append_transaction(self, transaction: PointTransaction) -> None:
        """Append one immutable ledger entry"""

    @abstractmethod
    async def save_account(self, account: PointsAccount) -> None:
        """Persist streak fields, lifetime_points and spendable_points"""

    @abstractmethod
    async def ledger_total(self) -> int:
        """Sum of total_points over every transaction for this user"""


class PointsStore(ABC):
    """Backend-agnostic ledger store"""

    async def init(self) -> None:
        """Open resources (pools, schema)"""

    async def close(self) -> None:
        """Release resources"""

    @abstractmethod
    async def ping(self) -> bool:
        """True if the backend is reachable"""

    @abstractmethod
    def unit_of_work(self, user_id: str) -> AbstractAsyncContextManager[PointsUnitOfWork]:
        """
        Open the serialized, atomic critical section for one user

        Raises:
            ConcurrencyContentionError: Could not enter in time
            PersistenceError: Storage failed; nothing was committed
        """

    @abstractmethod
    async def get_account(self, user_id: str) -> Optional[PointsAccount]:
        """Account as last committed, or None if the user never earned points"""

    @abstractmethod
    async def list_account_user_ids(self) -> list[str]:
        """Every user with an account"""

    @abstractmethod
    async def list_transactions(
        self,
        user_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: Optional[int] = None
    ) -> list[PointTransaction]:
        """Transactions with created_at in [start, end), newest first"""

    @abstractmethod
    async def sum_points(
        self,
        user_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> int:
        """Sum of total_points with created_at in [start, end)"""

    @abstractmethod
    async def sum_points_by_user(
        self,
        start: datetime,
        end: datetime,
        limit: int
    ) -> list[tuple[str, int]]:
        """Top users by windowed sum, highest first, ties by user_id"""


_store: Optional[PointsStore] = None


def get_store() -> PointsStore:
    """
    Process-wide store selected by POINTS_STORE

    Returns:
        PostgresPointsStore or InMemoryPointsStore
    """
    global _store
    if _store is None:
        from vitalpoints.config import POINTS_STORE

        if POINTS_STORE == "memory":
            from vitalpoints.db.memory_store import InMemoryPointsStore
            _store = InMemoryPointsStore()
        else:
            from vitalpoints.db.queries.points import PostgresPointsStore
            _store = PostgresPointsStore()
        logger.info(f"Points store backend: {type(_store).__name__}")
    return _store
