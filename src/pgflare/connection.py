"""
Engines and identity checks for the publisher and the subscriber.

Engines use NullPool: a connection exists only for the duration of one
statement, so the session reaper never sees (or kills) an idle pgflare
session and no pgflare connection counts against the drain.

Before any command touches a server, connect_with_verify() compares the
server's system identifier with the configured one, so a typo in a host name
cannot point a REVOKE at the wrong cluster.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool

from pgflare.config import UserInfo
from pgflare.exceptions import SystemIdentifierError
from pgflare.executor import StatementExecutor
from pgflare.observability import Tracer
from pgflare.statements import SYSTEM_IDENTIFIER

logger = logging.getLogger(__name__)


def create_engine(user_info: UserInfo, dbname: str) -> AsyncEngine:
    """Create an asyncpg engine for ``dbname`` that never pools connections."""
    return create_async_engine(
        user_info.sqlalchemy_url(dbname),
        poolclass=NullPool,
    )


def connect(
    user_info: UserInfo,
    dbname: str,
    *,
    tracer: Tracer | None = None,
    enable_tracing: bool = True,
) -> StatementExecutor:
    """
    Build a StatementExecutor for ``dbname`` as ``user_info``.

    No connection is opened until the first statement runs.
    """
    return StatementExecutor(
        create_engine(user_info, dbname),
        database=dbname,
        server=user_info.host_info.label,
        tracer=tracer,
        enable_tracing=enable_tracing,
    )


async def get_system_identifier(executor: StatementExecutor) -> str:
    """Return the server's system identifier as text."""
    identifier = await executor.fetch_scalar(SYSTEM_IDENTIFIER)
    return str(identifier)


async def verify_system_identifier(executor: StatementExecutor, expected: str) -> None:
    """
    Compare the server's system identifier with ``expected``.

    Raises:
        SystemIdentifierError: On mismatch.
    """
    got = await get_system_identifier(executor)
    if got != expected:
        raise SystemIdentifierError(expected=expected, got=got)
    logger.debug("System identifier of %s verified: %s", executor.server, got)


async def connect_with_verify(
    user_info: UserInfo,
    dbname: str,
    *,
    tracer: Tracer | None = None,
    enable_tracing: bool = True,
) -> StatementExecutor:
    """
    Connect and verify the server identity.

    The engine is disposed before raising when verification fails.

    Raises:
        SystemIdentifierError: If the server is not the configured one.
        StatementError: If the server cannot be queried.
    """
    executor = connect(user_info, dbname, tracer=tracer, enable_tracing=enable_tracing)
    try:
        await verify_system_identifier(executor, user_info.host_info.system_identifier)
    except Exception:
        await executor.dispose()
        raise
    return executor


@asynccontextmanager
async def connected(
    user_info: UserInfo,
    dbname: str,
    *,
    verify: bool = False,
    tracer: Tracer | None = None,
    enable_tracing: bool = True,
) -> AsyncIterator[StatementExecutor]:
    """
    Scope an executor to a block and dispose its engine afterwards.

    Example:
        >>> async with connected(config.publisher.superuser_info(), "postgres") as executor:
        ...     await executor.fetch_all(statements.LIST_REPLICATION_SLOTS, {"dbname": "appdb"})
    """
    if verify:
        executor = await connect_with_verify(
            user_info, dbname, tracer=tracer, enable_tracing=enable_tracing
        )
    else:
        executor = connect(user_info, dbname, tracer=tracer, enable_tracing=enable_tracing)
    try:
        yield executor
    finally:
        await executor.dispose()


__all__ = [
    "create_engine",
    "connect",
    "get_system_identifier",
    "verify_system_identifier",
    "connect_with_verify",
    "connected",
]
