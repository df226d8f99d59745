"""
Connection handling helper for database operations.

Lets every component accept either an AsyncEngine or an AsyncConnection.
With an engine, each operation opens its own connection (and transaction)
and closes it afterwards, so nothing pgflare does holds a session or a
transaction open across a polling interval.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine


@asynccontextmanager
async def execute_with_connection(
    conn: AsyncConnection | AsyncEngine,
    transactional: bool = True,
    autocommit: bool = False,
) -> AsyncIterator[AsyncConnection]:
    """
    Context manager for executing database operations.

    Args:
        conn: Database connection or engine
        transactional: If True, wrap in transaction (begin).
                       If False, use bare connection (connect).
                       Only applies when conn is an AsyncEngine.
        autocommit: Run in AUTOCOMMIT isolation, required for statements
                    PostgreSQL refuses inside a transaction block
                    (CREATE DATABASE, CREATE SUBSCRIPTION, ...).
                    Only applies when conn is an AsyncEngine.

    Yields:
        AsyncConnection ready for execute() calls

    Example:
        >>> async with execute_with_connection(self._conn) as conn:
        ...     await conn.execute(query, params)

    Note:
        When passing an existing AsyncConnection, transaction management is
        the caller's responsibility and both flags have no effect.
    """
    if isinstance(conn, AsyncEngine):
        if autocommit:
            async with conn.execution_options(isolation_level="AUTOCOMMIT").connect() as connection:
                yield connection
        elif transactional:
            async with conn.begin() as connection:
                yield connection
        else:
            async with conn.connect() as connection:
                yield connection
    else:
        yield conn
