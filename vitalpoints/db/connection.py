"""PostgreSQL connection pool for the points ledger"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import psycopg
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from vitalpoints.config import DATABASE_URL, DB_POOL_MAX_SIZE, DB_POOL_MIN_SIZE, DB_POOL_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)


async def _configure_connection(conn: psycopg.AsyncConnection) -> None:
    """Run once per new pooled connection"""
    conn.row_factory = dict_row


class Database:
    """
    Async connection pool manager

    Every connection handed out returns rows as dicts. Callers own
    transaction boundaries (see PostgresPointsStore.unit_of_work).
    """

    def __init__(
        self,
        connection_string: str = DATABASE_URL,
        min_size: int = DB_POOL_MIN_SIZE,
        max_size: int = DB_POOL_MAX_SIZE,
        timeout: float = DB_POOL_TIMEOUT_SECONDS
    ):
        self.connection_string = connection_string
        self.min_size = min_size
        self.max_size = max_size
        self.timeout = timeout
        self._pool: Optional[AsyncConnectionPool] = None

    @property
    def is_open(self) -> bool:
        return self._pool is not None

    async def init_pool(self) -> None:
        """Open the pool; a no-op if already open"""
        if self._pool is not None:
            return

        logger.info(f"Opening points database pool (min={self.min_size}, max={self.max_size})")
        self._pool = AsyncConnectionPool(
            self.connection_string,
            min_size=self.min_size,
            max_size=self.max_size,
            timeout=self.timeout,
            kwargs={"application_name": "vitalpoints"},
            configure=_configure_connection,
            open=False
        )
        await self._pool.open()

    async def close_pool(self) -> None:
        """Close the pool and release its connections"""
        if self._pool:
            logger.info("Closing points database pool")
            await self._pool.close()
            self._pool = None

    @asynccontextmanager
    async def connection(self) -> AsyncGenerator[psycopg.AsyncConnection, None]:
        """
        Borrow a connection from the pool

        Raises:
            RuntimeError: If init_pool() has not run
            psycopg_pool.PoolTimeout: If none is free within the pool timeout
        """
        if not self._pool:
            raise RuntimeError("Database pool not initialized")

        async with self._pool.connection() as conn:
            yield conn


# Global database instance
db = Database()
