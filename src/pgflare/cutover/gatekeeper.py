"""
ConnectionGatekeeper - Open and close a database to new connections.

Closing the gate revokes CONNECT from PUBLIC, so no new application session
can start. Sessions that are already connected are left alone; draining them
is the SessionReaper's job. The database owner and superusers keep CONNECT,
so pgflare itself can still reach the database.

Both operations are idempotent: PostgreSQL accepts repeated REVOKE/GRANT and
ends in the same privilege state.

Usage:
    >>> gatekeeper = ConnectionGatekeeper(connect(config.publisher.db_owner_info(), "appdb"))
    >>> await gatekeeper.close_gate("appdb")
    >>> ...
    >>> await gatekeeper.open_gate("appdb")
"""

from __future__ import annotations

import logging

from pgflare import statements
from pgflare.executor import StatementExecutor
from pgflare.observability import ATTR_DB_NAME, Tracer, create_tracer

logger = logging.getLogger(__name__)


class ConnectionGatekeeper:
    """
    Toggles the CONNECT privilege of PUBLIC on a database.

    Failures are never caught here: a StatementError from the executor
    propagates to the caller unchanged.
    """

    def __init__(
        self,
        executor: StatementExecutor,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._executor = executor

    async def close_gate(self, db: str) -> None:
        """
        Stop new connections to ``db``.

        Raises:
            StatementError: If the REVOKE fails.
        """
        with self._tracer.span("pgflare.gatekeeper.close_gate", {ATTR_DB_NAME: db}):
            await self._executor.execute(statements.revoke_connect(db))
            logger.info("Revoked CONNECT on database %s from PUBLIC", db)

    async def open_gate(self, db: str) -> None:
        """
        Allow new connections to ``db`` again.

        Raises:
            StatementError: If the GRANT fails.
        """
        with self._tracer.span("pgflare.gatekeeper.open_gate", {ATTR_DB_NAME: db}):
            await self._executor.execute(statements.grant_connect(db))
            logger.info("Granted CONNECT on database %s to PUBLIC", db)


__all__ = [
    "ConnectionGatekeeper",
]
