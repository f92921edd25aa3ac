# app/db/pool.py
"""
PostgreSQL connection pool for the API process and the one-shot worker.

The FastAPI lifespan and `run_scheduled_cleanup` both call `initialize()`
and `close()`. A closed manager can be initialized again, so repeated
in-process job runs each get a fresh pool.
"""

import asyncio
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import psycopg
from psycopg import sql
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from app.config import settings
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

CLOSE_TIMEOUT_SECONDS = 30.0
STATEMENT_TIMEOUT = "60s"


class DatabasePoolManager:
    """Owns one AsyncConnectionPool with dict rows, autocommit and UTC sessions."""

    def __init__(self):
        self.pool: AsyncConnectionPool | None = None

    @property
    def initialized(self) -> bool:
        return self.pool is not None

    async def initialize(self) -> None:
        if self.pool is not None:
            logger.warning("Database pool already initialized")
            return

        config = settings.get_db_pool_config()
        pool = AsyncConnectionPool(
            conninfo=settings.DATABASE_URL,
            open=False,
            check=AsyncConnectionPool.check_connection,
            configure=self._configure_connection,
            **config,
        )

        try:
            await pool.open(wait=True)
            async with pool.connection() as conn:
                await self._round_trip(conn)
        except Exception as e:
            logger.error(
                "Failed to initialize database pool", error=str(e), error_type=type(e).__name__
            )
            await pool.close()
            raise RuntimeError(f"Database pool initialization failed: {e}") from e

        self.pool = pool
        logger.info(
            "Database pool initialized",
            min_size=config["min_size"],
            max_size=config["max_size"],
            timeout=config["timeout"],
        )

    @staticmethod
    async def _configure_connection(conn: psycopg.AsyncConnection) -> None:
        conn.row_factory = dict_row
        # Every engine write is a single-row statement
        await conn.set_autocommit(True)
        app_name = f"spam-cleanup-{settings.environment}"
        await conn.execute(sql.SQL("SET application_name = {}").format(sql.Literal(app_name)))
        await conn.execute("SET timezone = 'UTC'")
        await conn.execute(
            sql.SQL("SET statement_timeout = {}").format(sql.Literal(STATEMENT_TIMEOUT))
        )

    @staticmethod
    async def _round_trip(conn: psycopg.AsyncConnection) -> None:
        async with conn.cursor() as cur:
            await cur.execute("SELECT 1 AS ok")
            row = await cur.fetchone()
        if not row or row["ok"] != 1:
            raise RuntimeError("Database round trip returned an unexpected result")

    async def close(self) -> None:
        if self.pool is None:
            return

        pool, self.pool = self.pool, None
        try:
            await asyncio.wait_for(pool.close(), timeout=CLOSE_TIMEOUT_SECONDS)
            logger.info("Database pool closed")
        except TimeoutError:
            logger.warning("Database pool close timed out", timeout=CLOSE_TIMEOUT_SECONDS)

    @asynccontextmanager
    async def connection(self) -> AsyncGenerator[psycopg.AsyncConnection, None]:
        """Borrow a pooled connection for the duration of the block."""
        if self.pool is None:
            raise RuntimeError("Database pool not initialized. Call initialize() first.")

        async with self.pool.connection() as conn:
            yield conn

    async def health_check(self) -> dict[str, Any]:
        """Timed round trip plus pool statistics."""
        if self.pool is None:
            return {"healthy": False, "error": "Pool not initialized", "service": "database_pool"}

        start_time = time.time()
        try:
            async with self.connection() as conn:
                await self._round_trip(conn)
        except Exception as e:
            logger.error("Database pool health check failed", error=str(e))
            return {
                "healthy": False,
                "service": "database_pool",
                "error": str(e),
                "error_type": type(e).__name__,
            }

        stats = self.pool.get_stats()
        return {
            "healthy": True,
            "service": "database_pool",
            "connection_time_ms": round((time.time() - start_time) * 1000, 2),
            "pool_stats": {
                "pool_size": stats.get("pool_size", 0),
                "pool_available": stats.get("pool_available", 0),
                "requests_waiting": stats.get("requests_waiting", 0),
            },
        }


db_pool = DatabasePoolManager()


async def get_db_connection():
    """Connection context manager from the global pool (`async with await ...`)."""
    return db_pool.connection()


async def db_health_check() -> dict[str, Any]:
    return await db_pool.health_check()
