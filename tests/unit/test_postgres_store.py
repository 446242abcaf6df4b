"""Unit tests for the PostgreSQL store (vitalpoints/db/queries/points.py)"""
import pytest
from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from uuid import UUID

import psycopg
from psycopg import errors as pg_errors

from vitalpoints.db.queries.points import PostgresPointsStore, _row_to_transaction
from vitalpoints.exceptions import ConcurrencyContentionError, ConnectionError, PersistenceError
from vitalpoints.models.points import ActionType, PointsAccount, PointTransaction


class FakeCursor:
    """Records executed SQL and replays queued rows"""

    def __init__(self, rows=None, fail_on=None, error=None):
        self.executed = []
        self._rows = list(rows or [])
        self._fail_on = fail_on
        self._error = error

    async def execute(self, query, params=None):
        self.executed.append((" ".join(query.split()), params))
        if self._fail_on and self._fail_on in query:
            raise self._error

    async def fetchone(self):
        return self._rows.pop(0) if self._rows else None

    async def fetchall(self):
        rows, self._rows = self._rows, []
        return rows

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False


class FakeConnection:
    def __init__(self, cursor):
        self._cursor = cursor
        self.rolled_back = False

    def cursor(self):
        return self._cursor

    @asynccontextmanager
    async def transaction(self):
        try:
            yield
        except BaseException:
            self.rolled_back = True
            raise


class FakeDatabase:
    def __init__(self, conn=None, error=None):
        self.conn = conn
        self.error = error

    @asynccontextmanager
    async def connection(self):
        if self.error:
            raise self.error
        yield self.conn


def make_store(cursor=None, error=None, lock_timeout=5.0):
    conn = FakeConnection(cursor or FakeCursor())
    return PostgresPointsStore(FakeDatabase(conn, error), lock_timeout=lock_timeout), conn


def sample_transaction(**overrides):
    data = dict(
        id="6f1c1d9e-2b7a-4c4e-9a57-0c5d7f1b2a10",
        user_id="123456789",
        action_type=ActionType.FOOD_LOG,
        base_points=10,
        multiplier=1,
        total_points=10,
        reference_id="food-entry-123",
        reference_type="food_entry",
        created_at=datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc),
    )
    data.update(overrides)
    return PointTransaction(**data)


# ============================================================================
# Row Mapping Tests
# ============================================================================

def test_row_to_transaction_stringifies_uuid():
    row = sample_transaction().model_dump()
    row["id"] = UUID(row["id"])
    row["action_type"] = "food_log"

    tx = _row_to_transaction(row)

    assert tx.id == "6f1c1d9e-2b7a-4c4e-9a57-0c5d7f1b2a10"
    assert tx.action_type == ActionType.FOOD_LOG


# ============================================================================
# Read Tests
# ============================================================================

@pytest.mark.asyncio
async def test_ping_ok():
    store, _ = make_store(FakeCursor(rows=[{"?column?": 1}]))
    assert await store.ping() is True


@pytest.mark.asyncio
async def test_ping_reports_unreachable_database():
    store, _ = make_store(error=psycopg.OperationalError("connection refused"))
    assert await store.ping() is False


@pytest.mark.asyncio
async def test_get_account_maps_row():
    row = {
        "user_id": "123456789",
        "lifetime_points": 80,
        "spendable_points": 80,
        "current_streak": 3,
        "longest_streak": 3,
        "last_activity_date": date(2024, 1, 15),
        "created_at": datetime(2024, 1, 13, tzinfo=timezone.utc),
        "updated_at": datetime(2024, 1, 15, tzinfo=timezone.utc),
    }
    store, _ = make_store(FakeCursor(rows=[row]))

    account = await store.get_account("123456789")

    assert account.lifetime_points == 80
    assert account.current_streak == 3


@pytest.mark.asyncio
async def test_get_account_missing():
    store, _ = make_store(FakeCursor())
    assert await store.get_account("nobody") is None


@pytest.mark.asyncio
async def test_read_failure_is_wrapped():
    store, _ = make_store(error=psycopg.OperationalError("connection refused"))

    with pytest.raises(ConnectionError):
        await store.sum_points("123456789")


@pytest.mark.asyncio
async def test_sum_points_by_user():
    cursor = FakeCursor(rows=[{"user_id": "alice", "points": 100}, {"user_id": "bob", "points": 50}])
    store, _ = make_store(cursor)

    rows = await store.sum_points_by_user(
        datetime(2024, 1, 15, tzinfo=timezone.utc),
        datetime(2024, 1, 16, tzinfo=timezone.utc),
        10,
    )

    assert rows == [("alice", 100), ("bob", 50)]
    assert "ORDER BY points DESC, user_id ASC" in cursor.executed[0][0]


# ============================================================================
# Unit of Work Tests
# ============================================================================

@pytest.mark.asyncio
async def test_unit_of_work_takes_advisory_lock():
    cursor = FakeCursor()
    store, _ = make_store(cursor, lock_timeout=2.5)

    async with store.unit_of_work("123456789"):
        pass

    assert cursor.executed[0] == ("SELECT set_config('lock_timeout', %s, true)", ("2500ms",))
    assert cursor.executed[1] == ("SELECT pg_advisory_xact_lock(hashtextextended(%s, 0))", ("123456789",))


@pytest.mark.asyncio
async def test_unit_of_work_creates_missing_account():
    created = {
        "user_id": "123456789",
        "lifetime_points": 0,
        "spendable_points": 0,
        "current_streak": 0,
        "longest_streak": 0,
        "last_activity_date": None,
        "created_at": datetime(2024, 1, 15, tzinfo=timezone.utc),
        "updated_at": datetime(2024, 1, 15, tzinfo=timezone.utc),
    }
    # SELECT ... FOR UPDATE finds nothing, INSERT ... RETURNING yields the new row
    cursor = FakeCursor()
    store, _ = make_store(cursor)

    async with store.unit_of_work("123456789") as uow:
        cursor._rows = [None, created]
        account = await uow.get_or_create_account()

    assert account.lifetime_points == 0
    assert any("FOR UPDATE" in sql for sql, _ in cursor.executed)
    assert any(sql.startswith("INSERT INTO points_accounts") for sql, _ in cursor.executed)


@pytest.mark.asyncio
async def test_duplicate_key_insert_becomes_contention():
    """Test a concurrent commit of the same key is retried, not surfaced as a failure"""
    cursor = FakeCursor(
        fail_on="INSERT INTO point_transactions",
        error=pg_errors.UniqueViolation("duplicate key value"),
    )
    store, conn = make_store(cursor)

    with pytest.raises(ConcurrencyContentionError):
        async with store.unit_of_work("123456789") as uow:
            await uow.append_transaction(sample_transaction())

    assert conn.rolled_back is True


@pytest.mark.asyncio
async def test_lock_timeout_becomes_contention():
    cursor = FakeCursor(
        fail_on="pg_advisory_xact_lock",
        error=pg_errors.LockNotAvailable("canceling statement due to lock timeout"),
    )
    store, _ = make_store(cursor)

    with pytest.raises(ConcurrencyContentionError):
        async with store.unit_of_work("123456789"):
            pass


@pytest.mark.asyncio
async def test_write_failure_rolls_back():
    cursor = FakeCursor(
        fail_on="UPDATE points_accounts",
        error=pg_errors.CheckViolation("violates check constraint"),
    )
    store, conn = make_store(cursor)

    with pytest.raises(PersistenceError):
        async with store.unit_of_work("123456789") as uow:
            await uow.save_account(PointsAccount(user_id="123456789", lifetime_points=10))

    assert conn.rolled_back is True
