"""
ProbeRecordRepository - The flare_replication_status table.

A probe record is written on the publisher after sessions are drained and
looked up on the subscriber. The table must exist in the database on both
sides and be part of the publication.

Usage:
    >>> publisher = PostgreSQLProbeRecordRepository(publisher_owner)
    >>> subscriber = PostgreSQLProbeRecordRepository(subscriber_owner)
    >>> record = ProbeRecord(system_identifier="7012...", token=str(uuid4()))
    >>> await publisher.write(record)
    >>> await subscriber.exists(record)
    False
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from pgflare import statements
from pgflare.executor import StatementExecutor
from pgflare.models import ProbeRecord


@runtime_checkable
class ProbeRecordRepository(Protocol):
    """Protocol for probe record storage."""

    async def create_table(self) -> None:
        """Create flare_replication_status if it does not exist."""
        ...

    async def write(self, record: ProbeRecord) -> None:
        """Insert a probe record."""
        ...

    async def exists(self, record: ProbeRecord) -> bool:
        """
        Look up a probe record.

        Returns False when the row is absent. Query failures raise.
        """
        ...

    async def delete_all(self, system_identifier: str) -> int:
        """Delete every probe record of ``system_identifier``; returns rows deleted."""
        ...


class PostgreSQLProbeRecordRepository:
    """PostgreSQL implementation of ProbeRecordRepository."""

    def __init__(self, executor: StatementExecutor) -> None:
        self._executor = executor

    async def create_table(self) -> None:
        await self._executor.execute(statements.CREATE_PROBE_TABLE)

    async def write(self, record: ProbeRecord) -> None:
        await self._executor.execute(
            statements.INSERT_PROBE_RECORD,
            {"system_identifier": record.system_identifier, "token": record.token},
        )

    async def exists(self, record: ProbeRecord) -> bool:
        row = await self._executor.fetch_one(
            statements.SELECT_PROBE_RECORD,
            {"system_identifier": record.system_identifier, "token": record.token},
        )
        return row is not None

    async def delete_all(self, system_identifier: str) -> int:
        return await self._executor.execute(
            statements.DELETE_PROBE_RECORDS,
            {"system_identifier": system_identifier},
        )


__all__ = [
    "ProbeRecordRepository",
    "PostgreSQLProbeRecordRepository",
]
