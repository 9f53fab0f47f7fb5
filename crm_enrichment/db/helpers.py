"""
Thin query helpers over the shared pool.

Each helper borrows one pooled connection, runs a single statement and
converts psycopg failures into DatabaseError so callers deal with one
exception type.
"""

from typing import Any

import psycopg
from psycopg import sql

from crm_enrichment.db.pool import get_db_connection
from crm_enrichment.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

Query = str | sql.Composable


class DatabaseError(Exception):
    """A query failed; `operation` names the helper or repository method."""

    def __init__(self, message: str, operation: str = "unknown", recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


def _failure(operation: str, query: Query, error: psycopg.Error) -> DatabaseError:
    logger.error(f"Database {operation} error", query=str(query)[:100], error=str(error))
    return DatabaseError(f"Query failed: {error}", operation=operation)


async def fetch_one(query: Query, params: tuple = ()) -> dict[str, Any] | None:
    """First row as a dict, or None."""
    try:
        async with await get_db_connection() as conn:
            cursor = await conn.execute(query, params)
            return await cursor.fetchone()
    except psycopg.Error as e:
        raise _failure("fetch_one", query, e) from e


async def fetch_all(query: Query, params: tuple = ()) -> list[dict[str, Any]]:
    try:
        async with await get_db_connection() as conn:
            cursor = await conn.execute(query, params)
            return await cursor.fetchall()
    except psycopg.Error as e:
        raise _failure("fetch_all", query, e) from e


async def execute_query(query: Query, params: tuple = ()) -> int:
    """
    Run a write statement.

    Returns:
        Number of affected rows
    """
    try:
        async with await get_db_connection() as conn:
            cursor = await conn.execute(query, params)
            return cursor.rowcount
    except psycopg.Error as e:
        raise _failure("execute", query, e) from e
