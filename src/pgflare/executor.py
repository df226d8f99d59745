"""
StatementExecutor - Administrative statements against one database.

The executor is the only component that talks to a server. It is stateless
and does not retry: each call runs exactly one statement in its own short
transaction and turns any database failure into a StatementError naming the
statement, the database and the server.

Usage:
    >>> from pgflare.connection import connect
    >>>
    >>> executor = connect(config.publisher.db_owner_info(), "appdb")
    >>> await executor.execute(statements.revoke_connect("appdb"))
    >>> rows = await executor.fetch_all(statements.LIST_CONNECTIONS, {"dbname": "appdb"})
    >>> await executor.dispose()
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from sqlalchemy import Row, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from pgflare._connection import execute_with_connection
from pgflare.exceptions import StatementError
from pgflare.observability import (
    ATTR_DB_NAME,
    ATTR_DB_OPERATION,
    ATTR_DB_SYSTEM,
    Tracer,
    create_tracer,
)

logger = logging.getLogger(__name__)


def _operation(statement: str) -> str:
    words = statement.split(maxsplit=1)
    return words[0].upper() if words else ""


class StatementExecutor:
    """
    Runs single statements against one database of one server.

    Example:
        >>> executor = StatementExecutor(engine, database="appdb", server="publisher:5432")
        >>> affected = await executor.execute("REVOKE CONNECT ON DATABASE \\"appdb\\" FROM PUBLIC;")

    Attributes:
        database: Database the executor is connected to.
        server: host:port label used in errors and logs.
    """

    def __init__(
        self,
        conn: AsyncConnection | AsyncEngine,
        *,
        database: str,
        server: str = "",
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the executor.

        Args:
            conn: Database engine (one connection per call) or an existing
                connection managed by the caller.
            database: Database name, for errors and tracing.
            server: Server label, for errors and logs.
            tracer: Optional custom Tracer instance.
            enable_tracing: Whether to enable OpenTelemetry tracing.
        """
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._conn = conn
        self.database = database
        self.server = server

    async def execute(
        self,
        statement: str,
        params: dict[str, Any] | None = None,
        *,
        autocommit: bool = False,
    ) -> int:
        """
        Run one statement and commit.

        Args:
            statement: SQL text; bind parameters use ``:name``.
            params: Bind parameter values.
            autocommit: Run outside a transaction block.

        Returns:
            Rows affected as reported by the driver.

        Raises:
            StatementError: If the statement fails.
        """
        with self._tracer.span(
            "pgflare.executor.execute",
            {
                ATTR_DB_SYSTEM: "postgresql",
                ATTR_DB_NAME: self.database,
                ATTR_DB_OPERATION: _operation(statement),
            },
        ):
            try:
                async with execute_with_connection(
                    self._conn, transactional=True, autocommit=autocommit
                ) as conn:
                    result = await conn.execute(text(statement), params or {})
                    return result.rowcount
            except (SQLAlchemyError, OSError) as e:
                raise self._wrap(e, statement) from e

    async def fetch_all(self, query: str, params: dict[str, Any] | None = None) -> Sequence[Row]:
        """
        Run a query and return every row.

        Raises:
            StatementError: If the query fails.
        """
        with self._tracer.span(
            "pgflare.executor.fetch_all",
            {
                ATTR_DB_SYSTEM: "postgresql",
                ATTR_DB_NAME: self.database,
                ATTR_DB_OPERATION: _operation(query),
            },
        ):
            try:
                async with execute_with_connection(self._conn, transactional=True) as conn:
                    result = await conn.execute(text(query), params or {})
                    return result.fetchall()
            except (SQLAlchemyError, OSError) as e:
                raise self._wrap(e, query) from e

    async def fetch_one(self, query: str, params: dict[str, Any] | None = None) -> Row | None:
        """Run a query and return its first row, or None when it returned nothing."""
        rows = await self.fetch_all(query, params)
        return rows[0] if rows else None

    async def fetch_scalar(self, query: str, params: dict[str, Any] | None = None) -> Any:
        """Run a query and return the first column of its first row."""
        row = await self.fetch_one(query, params)
        return row[0] if row is not None else None

    async def dispose(self) -> None:
        """Release the engine's resources. Connections passed in are left alone."""
        if isinstance(self._conn, AsyncEngine):
            await self._conn.dispose()

    def _wrap(self, error: Exception, statement: str) -> StatementError:
        logger.debug(
            "Statement failed on %s/%s: %s",
            self.server,
            self.database,
            statement.strip(),
        )
        return StatementError(
            f"statement failed on {self.server or 'server'}: {error}",
            statement=statement.strip(),
            database=self.database,
            server=self.server,
        )


__all__ = [
    "StatementExecutor",
]
