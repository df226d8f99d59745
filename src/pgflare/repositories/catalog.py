"""
CatalogRepository - Read access to PostgreSQL statistics views.

The cutover components observe replication and sessions only through these
views; nothing here writes.

Views used:
    - pg_replication_slots (publisher): replication channels per database
    - pg_stat_replication (publisher): walsenders per subscription
    - pg_stat_subscription (subscriber): apply workers per subscription
    - pg_stat_activity (either): sessions per database
    - pg_extension, pg_control_system(), pg_current_wal_lsn()

Usage:
    >>> catalog = PostgreSQLCatalogRepository(publisher_superuser)
    >>> slots = await catalog.list_replication_slots("appdb")
    >>> fence = await catalog.current_wal_lsn()
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from pgflare import statements
from pgflare.executor import StatementExecutor
from pgflare.models import (
    LSN,
    ReplicationSlot,
    ReplicationStat,
    SessionRecord,
    SubscriptionStat,
)


@runtime_checkable
class CatalogRepository(Protocol):
    """Protocol for reading server statistics."""

    async def list_replication_slots(self, dbname: str) -> list[ReplicationSlot]:
        """Replication slots belonging to ``dbname``."""
        ...

    async def list_replication_stats(self, subname: str) -> list[ReplicationStat]:
        """Walsenders whose application_name is ``subname``."""
        ...

    async def list_subscription_stats(self, subname: str) -> list[SubscriptionStat]:
        """Apply and table-sync workers of subscription ``subname``."""
        ...

    async def list_connections(self, dbname: str) -> list[SessionRecord]:
        """Sessions connected to ``dbname``."""
        ...

    async def current_wal_lsn(self) -> LSN:
        """The server's current WAL write position."""
        ...

    async def list_installed_extensions(self) -> list[str]:
        """Extension names installed in the connected database."""
        ...

    async def get_system_identifier(self) -> str:
        """The server's system identifier from pg_control_system()."""
        ...


class PostgreSQLCatalogRepository:
    """
    PostgreSQL implementation of CatalogRepository.

    Each method is a single query through the StatementExecutor, so each
    observation is taken in its own short transaction.
    """

    def __init__(self, executor: StatementExecutor) -> None:
        self._executor = executor

    async def list_replication_slots(self, dbname: str) -> list[ReplicationSlot]:
        rows = await self._executor.fetch_all(
            statements.LIST_REPLICATION_SLOTS, {"dbname": dbname}
        )
        return [self._row_to_slot(row) for row in rows]

    async def list_replication_stats(self, subname: str) -> list[ReplicationStat]:
        rows = await self._executor.fetch_all(
            statements.LIST_REPLICATION_STATS, {"subname": subname}
        )
        return [self._row_to_replication_stat(row) for row in rows]

    async def list_subscription_stats(self, subname: str) -> list[SubscriptionStat]:
        rows = await self._executor.fetch_all(
            statements.LIST_SUBSCRIPTION_STATS, {"subname": subname}
        )
        return [self._row_to_subscription_stat(row) for row in rows]

    async def list_connections(self, dbname: str) -> list[SessionRecord]:
        rows = await self._executor.fetch_all(statements.LIST_CONNECTIONS, {"dbname": dbname})
        return [self._row_to_session(row) for row in rows]

    async def current_wal_lsn(self) -> LSN:
        value = await self._executor.fetch_scalar(statements.CURRENT_WAL_LSN)
        return LSN.parse(value)

    async def list_installed_extensions(self) -> list[str]:
        rows = await self._executor.fetch_all(statements.LIST_INSTALLED_EXTENSIONS)
        return [row.extname for row in rows]

    async def get_system_identifier(self) -> str:
        value = await self._executor.fetch_scalar(statements.SYSTEM_IDENTIFIER)
        return str(value)

    @staticmethod
    def _row_to_slot(row: Any) -> ReplicationSlot:
        return ReplicationSlot(
            slot_name=row.slot_name,
            plugin=row.plugin,
            slot_type=row.slot_type,
            database=row.database,
            temporary=bool(row.temporary),
            active=bool(row.active),
            confirmed_flush_lsn=LSN.parse_optional(row.confirmed_flush_lsn),
        )

    @staticmethod
    def _row_to_replication_stat(row: Any) -> ReplicationStat:
        return ReplicationStat(
            pid=row.pid,
            user_name=row.usename,
            application_name=row.application_name,
            client_addr=row.client_addr,
            backend_start=row.backend_start,
            state=row.state,
            sent_lsn=LSN.parse_optional(row.sent_lsn),
            write_lsn=LSN.parse_optional(row.write_lsn),
            flush_lsn=LSN.parse_optional(row.flush_lsn),
            replay_lsn=LSN.parse_optional(row.replay_lsn),
        )

    @staticmethod
    def _row_to_subscription_stat(row: Any) -> SubscriptionStat:
        return SubscriptionStat(
            subid=row.subid,
            subname=row.subname,
            pid=row.pid,
            received_lsn=LSN.parse_optional(row.received_lsn),
            last_msg_send_time=row.last_msg_send_time,
            last_msg_receipt_time=row.last_msg_receipt_time,
            latest_end_lsn=LSN.parse_optional(row.latest_end_lsn),
            latest_end_time=row.latest_end_time,
        )

    @staticmethod
    def _row_to_session(row: Any) -> SessionRecord:
        return SessionRecord(
            database=row.datname,
            pid=row.pid,
            user_name=row.usename,
            application_name=row.application_name,
            client_addr=row.client_addr,
            backend_start=row.backend_start,
            wait_event=row.wait_event,
            wait_event_type=row.wait_event_type,
            state=row.state,
        )


__all__ = [
    "CatalogRepository",
    "PostgreSQLCatalogRepository",
]
