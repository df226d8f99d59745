"""
ReplicationHealthCheck - Preconditions on the replication channel.

Before the gate is closed the database must have exactly one active
replication channel, and the walsender serving the subscription must have
been running for at least ``min_stable_duration``. A second active slot
usually means an initial table sync is still copying; a young walsender
means the subscriber is crash-looping.

These checks are preconditions. They are never retried: a failure means the
operator has to look at the topology.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta

from pgflare.exceptions import (
    AmbiguousReplicationError,
    ReplicationChannelNotFoundError,
    UnstableReplicationError,
)
from pgflare.models import ReplicationStat
from pgflare.observability import (
    ATTR_CHANNEL_AGE_SECONDS,
    ATTR_CHANNEL_COUNT,
    ATTR_DB_NAME,
    ATTR_SUBSCRIPTION,
    Tracer,
    create_tracer,
)
from pgflare.repositories.catalog import CatalogRepository

logger = logging.getLogger(__name__)


class ReplicationHealthCheck:
    """
    Verifies the replication channel of a database on the publisher.

    Example:
        >>> health = ReplicationHealthCheck(PostgreSQLCatalogRepository(publisher_superuser))
        >>> stat = await health.verify("appdb", "appdb_sub", timedelta(minutes=1))
        >>> stat.backend_start
        datetime.datetime(2024, 5, 1, 9, 30, tzinfo=...)
    """

    def __init__(
        self,
        catalog: CatalogRepository,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the health check.

        Args:
            catalog: Catalog repository of the publisher.
            tracer: Optional custom Tracer instance.
            enable_tracing: Whether to enable OpenTelemetry tracing.
        """
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._catalog = catalog

    async def verify(
        self,
        db: str,
        channel_name: str,
        min_stable_duration: timedelta,
        *,
        now: datetime | None = None,
    ) -> ReplicationStat:
        """
        Check that ``db`` has one stable replication channel.

        Args:
            db: Database under cutover.
            channel_name: Subscription name (application_name of the walsender).
            min_stable_duration: Minimum walsender age.
            now: Reference time; defaults to the current UTC time.

        Returns:
            The pg_stat_replication row of the channel.

        Raises:
            AmbiguousReplicationError: If the number of active channels is
                not exactly one, or several walsenders serve the subscription.
            ReplicationChannelNotFoundError: If no walsender serves the subscription.
            UnstableReplicationError: If the walsender is younger than min_stable_duration.
        """
        with self._tracer.span(
            "pgflare.health.verify",
            {ATTR_DB_NAME: db, ATTR_SUBSCRIPTION: channel_name},
        ) as span:
            slots = await self._catalog.list_replication_slots(db)
            active = [slot for slot in slots if slot.active]
            if span is not None:
                span.set_attribute(ATTR_CHANNEL_COUNT, len(active))

            if len(active) != 1:
                raise AmbiguousReplicationError(
                    f"expected exactly one active replication slot, found {len(active)}: "
                    f"{', '.join(slot.slot_name for slot in active) or 'none'}",
                    channel_count=len(active),
                    database=db,
                    subscription=channel_name,
                )

            stat = await self._get_stat(channel_name)
            age = stat.age(now or datetime.now(UTC))
            if span is not None:
                span.set_attribute(ATTR_CHANNEL_AGE_SECONDS, age.total_seconds())

            if age < min_stable_duration:
                raise UnstableReplicationError(
                    age=age,
                    min_stable_duration=min_stable_duration,
                    subscription=channel_name,
                )

            logger.info(
                "Replication of %s via %s is healthy (slot %s, running for %s)",
                db,
                channel_name,
                active[0].slot_name,
                age,
            )
            return stat

    async def confirm(self, channel_name: str) -> ReplicationStat:
        """
        Re-read the channel after the drain.

        Raises:
            ReplicationChannelNotFoundError: If replication stopped.
            AmbiguousReplicationError: If several walsenders serve the subscription.
        """
        with self._tracer.span("pgflare.health.confirm", {ATTR_SUBSCRIPTION: channel_name}):
            stat = await self._get_stat(channel_name)
            logger.debug("Replication via %s still running (pid %d)", channel_name, stat.pid)
            return stat

    async def _get_stat(self, channel_name: str) -> ReplicationStat:
        stats = await self._catalog.list_replication_stats(channel_name)
        if not stats:
            raise ReplicationChannelNotFoundError(
                "no ongoing replication",
                subscription=channel_name,
            )
        if len(stats) > 1:
            raise AmbiguousReplicationError(
                f"multiple replications are running for the subscription ({len(stats)})",
                channel_count=len(stats),
                subscription=channel_name,
            )
        return stats[0]


__all__ = [
    "ReplicationHealthCheck",
]
