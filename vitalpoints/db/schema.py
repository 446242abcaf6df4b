"""PostgreSQL schema for the points ledger"""
import logging

from vitalpoints.db.connection import Database, db as default_db
from vitalpoints.models.points import ActionType

logger = logging.getLogger(__name__)

_ACTION_TYPES_SQL = ", ".join(f"'{a.value}'" for a in ActionType)

SCHEMA_STATEMENTS: list[str] = [
    """
    CREATE TABLE IF NOT EXISTS points_accounts (
        user_id TEXT PRIMARY KEY,
        lifetime_points BIGINT NOT NULL DEFAULT 0 CHECK (lifetime_points >= 0),
        spendable_points BIGINT NOT NULL DEFAULT 0,
        current_streak INTEGER NOT NULL DEFAULT 0 CHECK (current_streak >= 0),
        longest_streak INTEGER NOT NULL DEFAULT 0,
        last_activity_date DATE,
        created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
        CHECK (longest_streak >= current_streak)
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS point_transactions (
        id UUID PRIMARY KEY,
        user_id TEXT NOT NULL REFERENCES points_accounts (user_id),
        action_type TEXT NOT NULL CHECK (action_type IN ({_ACTION_TYPES_SQL})),
        base_points INTEGER NOT NULL CHECK (base_points >= 0),
        multiplier INTEGER NOT NULL CHECK (multiplier >= 1),
        bonus_points INTEGER NOT NULL DEFAULT 0 CHECK (bonus_points >= 0),
        total_points INTEGER NOT NULL,
        description TEXT NOT NULL DEFAULT '',
        reference_id TEXT,
        reference_type TEXT,
        created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_point_transactions_user_created
        ON point_transactions (user_id, created_at DESC)
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_point_transactions_created
        ON point_transactions (created_at)
    """,
    """
    CREATE UNIQUE INDEX IF NOT EXISTS uq_point_transactions_reference
        ON point_transactions (user_id, reference_type, reference_id)
        WHERE reference_id IS NOT NULL AND reference_type IS NOT NULL
    """,
    # Ledger rows are append-only
    """
    CREATE OR REPLACE FUNCTION point_transactions_append_only() RETURNS trigger AS $$
    BEGIN
        RAISE EXCEPTION 'point_transactions is append-only';
    END;
    $$ LANGUAGE plpgsql
    """,
    """
    DROP TRIGGER IF EXISTS trg_point_transactions_append_only ON point_transactions
    """,
    """
    CREATE TRIGGER trg_point_transactions_append_only
        BEFORE UPDATE OR DELETE ON point_transactions
        FOR EACH ROW EXECUTE FUNCTION point_transactions_append_only()
    """,
]


async def init_schema(database: Database = default_db) -> None:
    """Create points tables, indexes and the append-only trigger"""
    async with database.connection() as conn:
        async with conn.transaction():
            async with conn.cursor() as cur:
                for statement in SCHEMA_STATEMENTS:
                    await cur.execute(statement)
    logger.info("Points ledger schema ready")
