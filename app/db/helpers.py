# app/db/helpers.py
"""
Query helpers for the repository layer.

Every helper borrows a pooled connection, runs one statement, and turns
psycopg failures into DatabaseError. Connection-level failures
(OperationalError) are flagged `recoverable`; `with_db_retry` only retries
those.
"""

import asyncio
import functools
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import psycopg

from app.db.pool import get_db_connection
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class DatabaseError(Exception):
    """A failed database operation. `recoverable` marks transient failures."""

    def __init__(self, message: str, operation: str = "unknown", recoverable: bool = False):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


def as_uuid(value: str | uuid.UUID | None) -> uuid.UUID | None:
    """Parse an id taken from a request; None when it cannot match a UUID column."""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        return None


@asynccontextmanager
async def _cursor(operation: str, query: str) -> AsyncIterator[psycopg.AsyncCursor]:
    try:
        async with await get_db_connection() as conn:
            async with conn.cursor() as cur:
                yield cur
    except psycopg.Error as e:
        recoverable = isinstance(e, psycopg.OperationalError)
        logger.error(
            "Database query failed",
            operation=operation,
            query=" ".join(query.split())[:100],
            error=str(e),
            error_type=type(e).__name__,
            recoverable=recoverable,
        )
        raise DatabaseError(
            f"Query failed: {e}", operation=operation, recoverable=recoverable
        ) from e


async def fetch_one(query: str, params: tuple = ()) -> dict[str, Any] | None:
    """Single row as a dict, or None."""
    async with _cursor("fetch_one", query) as cur:
        await cur.execute(query, params)
        return await cur.fetchone()


async def fetch_all(query: str, params: tuple = ()) -> list[dict[str, Any]]:
    async with _cursor("fetch_all", query) as cur:
        await cur.execute(query, params)
        return await cur.fetchall()


async def fetch_val(query: str, params: tuple = ()) -> Any:
    """First column of the first row, or None."""
    async with _cursor("fetch_val", query) as cur:
        await cur.execute(query, params)
        row = await cur.fetchone()
        return next(iter(row.values())) if row else None


async def execute_query(query: str, params: tuple = ()) -> int:
    """
    Run a write statement.

    Returns:
        Number of affected rows
    """
    async with _cursor("execute", query) as cur:
        await cur.execute(query, params)
        return cur.rowcount


def with_db_retry(max_retries: int = 3, base_delay: float = 0.1):
    """
    Retry a repository call on recoverable DatabaseError with exponential backoff.

    Integrity and data errors are permanent and surface immediately.
    """

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            attempt = 0
            while True:
                try:
                    return await func(*args, **kwargs)
                except DatabaseError as e:
                    if not e.recoverable or attempt >= max_retries:
                        raise

                    delay = base_delay * (2**attempt)
                    attempt += 1
                    logger.warning(
                        "Database operation failed, retrying",
                        operation=func.__name__,
                        attempt=attempt,
                        max_retries=max_retries,
                        delay=delay,
                        error=str(e),
                    )
                    await asyncio.sleep(delay)

        return wrapper

    return decorator
