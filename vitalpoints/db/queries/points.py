"""Points ledger database queries"""
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncGenerator, Optional

import psycopg
from psycopg import errors as pg_errors

from vitalpoints.config import AWARD_LOCK_TIMEOUT_SECONDS
from vitalpoints.db.connection import Database, db as default_db
from vitalpoints.db.store import PointsStore, PointsUnitOfWork
from vitalpoints.exceptions import ConcurrencyContentionError, wrap_external_exception
from vitalpoints.models.points import PointsAccount, PointTransaction

logger = logging.getLogger(__name__)

_ACCOUNT_COLUMNS = """
    user_id, lifetime_points, spendable_points, current_streak, longest_streak,
    last_activity_date, created_at, updated_at
"""

_TRANSACTION_COLUMNS = """
    id, user_id, action_type, base_points, multiplier, bonus_points, total_points,
    description, reference_id, reference_type, created_at
"""


def _row_to_account(row: dict) -> PointsAccount:
    return PointsAccount(**row)


def _row_to_transaction(row: dict) -> PointTransaction:
    data = dict(row)
    data["id"] = str(data["id"])
    return PointTransaction(**data)


# ==========================================
# Critical Section (one user, one transaction)
# ==========================================

class PostgresUnitOfWork(PointsUnitOfWork):
    """Queries bound to a connection holding the user's advisory lock"""

    def __init__(self, conn: psycopg.AsyncConnection, user_id: str):
        self._conn = conn
        self.user_id = user_id

    async def find_by_reference(
        self,
        reference_type: str,
        reference_id: str
    ) -> Optional[PointTransaction]:
        async with self._conn.cursor() as cur:
            await cur.execute(
                f"""
                SELECT {_TRANSACTION_COLUMNS}
                FROM point_transactions
                WHERE user_id = %s AND reference_type = %s AND reference_id = %s
                """,
                (self.user_id, reference_type, reference_id)
            )
            row = await cur.fetchone()
            return _row_to_transaction(row) if row else None

    async def get_or_create_account(self) -> PointsAccount:
        async with self._conn.cursor() as cur:
            await cur.execute(
                f"""
                SELECT {_ACCOUNT_COLUMNS}
                FROM points_accounts
                WHERE user_id = %s
                FOR UPDATE
                """,
                (self.user_id,)
            )
            row = await cur.fetchone()

            if not row:
                await cur.execute(
                    f"""
                    INSERT INTO points_accounts (user_id)
                    VALUES (%s)
                    RETURNING {_ACCOUNT_COLUMNS}
                    """,
                    (self.user_id,)
                )
                row = await cur.fetchone()
                logger.info(f"Created new points account for user {self.user_id}")

            return _row_to_account(row)

    async def append_transaction(self, transaction: PointTransaction) -> None:
        async with self._conn.cursor() as cur:
            try:
                await cur.execute(
                    """
                    INSERT INTO point_transactions (
                        id, user_id, action_type, base_points, multiplier, bonus_points,
                        total_points, description, reference_id, reference_type, created_at
                    )
                    VALUES (%s::uuid, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                    """,
                    (
                        transaction.id,
                        transaction.user_id,
                        transaction.action_type.value,
                        transaction.base_points,
                        transaction.multiplier,
                        transaction.bonus_points,
                        transaction.total_points,
                        transaction.description,
                        transaction.reference_id,
                        transaction.reference_type,
                        transaction.created_at,
                    )
                )
            except pg_errors.UniqueViolation as e:
                # Another writer committed the same key first; a retry will see it
                raise ConcurrencyContentionError(
                    "Idempotency key committed concurrently",
                    user_id=self.user_id,
                    operation="append_transaction",
                    context={
                        "reference_type": transaction.reference_type,
                        "reference_id": transaction.reference_id,
                    },
                    cause=e
                ) from e

    async def save_account(self, account: PointsAccount) -> None:
        async with self._conn.cursor() as cur:
            await cur.execute(
                """
                UPDATE points_accounts
                SET lifetime_points = %s,
                    spendable_points = %s,
                    current_streak = %s,
                    longest_streak = %s,
                    last_activity_date = %s,
                    updated_at = CURRENT_TIMESTAMP
                WHERE user_id = %s
                """,
                (
                    account.lifetime_points,
                    account.spendable_points,
                    account.current_streak,
                    account.longest_streak,
                    account.last_activity_date,
                    self.user_id,
                )
            )

    async def ledger_total(self) -> int:
        async with self._conn.cursor() as cur:
            await cur.execute(
                """
                SELECT COALESCE(SUM(total_points), 0) AS total
                FROM point_transactions
                WHERE user_id = %s
                """,
                (self.user_id,)
            )
            row = await cur.fetchone()
            return int(row["total"])


class PostgresPointsStore(PointsStore):
    """
    Points ledger in PostgreSQL

    Each unit of work runs in one database transaction that first takes
    pg_advisory_xact_lock keyed on the user id. The lock serializes award
    calls for that user across every worker process, including the very
    first award that creates the account row, and is released on commit
    or rollback.
    """

    def __init__(
        self,
        database: Database = default_db,
        lock_timeout: float = AWARD_LOCK_TIMEOUT_SECONDS
    ):
        self.db = database
        self.lock_timeout = lock_timeout

    async def init(self) -> None:
        from vitalpoints.db.schema import init_schema

        await self.db.init_pool()
        await init_schema(self.db)

    async def close(self) -> None:
        await self.db.close_pool()

    async def ping(self) -> bool:
        try:
            async with self.db.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute("SELECT 1")
                    await cur.fetchone()
            return True
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return False

    @asynccontextmanager
    async def unit_of_work(self, user_id: str) -> AsyncGenerator[PostgresUnitOfWork, None]:
        try:
            async with self.db.connection() as conn:
                async with conn.transaction():
                    async with conn.cursor() as cur:
                        await cur.execute(
                            "SELECT set_config('lock_timeout', %s, true)",
                            (f"{int(self.lock_timeout * 1000)}ms",)
                        )
                        await cur.execute(
                            "SELECT pg_advisory_xact_lock(hashtextextended(%s, 0))",
                            (user_id,)
                        )
                    yield PostgresUnitOfWork(conn, user_id)
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation="unit_of_work", user_id=user_id) from e

    # ==========================================
    # Reads (outside the critical section)
    # ==========================================

    async def get_account(self, user_id: str) -> Optional[PointsAccount]:
        try:
            async with self.db.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        f"""
                        SELECT {_ACCOUNT_COLUMNS}
                        FROM points_accounts
                        WHERE user_id = %s
                        """,
                        (user_id,)
                    )
                    row = await cur.fetchone()
                    return _row_to_account(row) if row else None
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation="get_account", user_id=user_id) from e

    async def list_account_user_ids(self) -> list[str]:
        try:
            async with self.db.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute("SELECT user_id FROM points_accounts ORDER BY user_id")
                    rows = await cur.fetchall()
                    return [row["user_id"] for row in rows]
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation="list_account_user_ids") from e

    async def list_transactions(
        self,
        user_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: Optional[int] = None
    ) -> list[PointTransaction]:
        try:
            async with self.db.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        f"""
                        SELECT {_TRANSACTION_COLUMNS}
                        FROM point_transactions
                        WHERE user_id = %s
                          AND (%s::timestamptz IS NULL OR created_at >= %s)
                          AND (%s::timestamptz IS NULL OR created_at < %s)
                        ORDER BY created_at DESC
                        LIMIT %s
                        """,
                        (user_id, start, start, end, end, limit)
                    )
                    rows = await cur.fetchall()
                    return [_row_to_transaction(row) for row in rows]
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation="list_transactions", user_id=user_id) from e

    async def sum_points(
        self,
        user_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> int:
        try:
            async with self.db.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        """
                        SELECT COALESCE(SUM(total_points), 0) AS total
                        FROM point_transactions
                        WHERE user_id = %s
                          AND (%s::timestamptz IS NULL OR created_at >= %s)
                          AND (%s::timestamptz IS NULL OR created_at < %s)
                        """,
                        (user_id, start, start, end, end)
                    )
                    row = await cur.fetchone()
                    return int(row["total"])
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation="sum_points", user_id=user_id) from e

    async def sum_points_by_user(
        self,
        start: datetime,
        end: datetime,
        limit: int
    ) -> list[tuple[str, int]]:
        try:
            async with self.db.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        """
                        SELECT user_id, SUM(total_points) AS points
                        FROM point_transactions
                        WHERE created_at >= %s AND created_at < %s
                        GROUP BY user_id
                        HAVING SUM(total_points) > 0
                        ORDER BY points DESC, user_id ASC
                        LIMIT %s
                        """,
                        (start, end, limit)
                    )
                    rows = await cur.fetchall()
                    return [(row["user_id"], int(row["points"])) for row in rows]
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation="sum_points_by_user") from e
