"""
Live dashboard of sessions and replication on both servers.

The monitor polls the publisher and subscriber catalogs and redraws five
tables in a rich Live display:

    - Publisher connections to the database
    - Subscriber connections to the database
    - Replication slots of the database (publisher)
    - pg_stat_replication rows of the subscription (publisher)
    - pg_stat_subscription rows of the subscription (subscriber)

Query failures are not caught; they end the monitor.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any

from rich.box import ROUNDED
from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.table import Table

from pgflare.models import ReplicationSlot, ReplicationStat, SessionRecord, SubscriptionStat
from pgflare.repositories.catalog import CatalogRepository

logger = logging.getLogger(__name__)


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.isoformat(sep=" ", timespec="seconds")
    return str(value)


def connections_table(title: str, sessions: Iterable[SessionRecord]) -> Table:
    table = Table(title=title, box=ROUNDED, title_justify="left")
    for column in (
        "datname",
        "pid",
        "usename",
        "application_name",
        "client_addr",
        "backend_start",
        "wait_event",
        "wait_event_type",
        "state",
    ):
        table.add_column(column)
    for s in sessions:
        table.add_row(
            *map(
                _cell,
                (
                    s.database,
                    s.pid,
                    s.user_name,
                    s.application_name,
                    s.client_addr,
                    s.backend_start,
                    s.wait_event,
                    s.wait_event_type,
                    s.state,
                ),
            )
        )
    return table


def slots_table(slots: Iterable[ReplicationSlot]) -> Table:
    table = Table(title="Replication slots", box=ROUNDED, title_justify="left")
    for column in (
        "slot_name",
        "plugin",
        "slot_type",
        "database",
        "temporary",
        "active",
        "confirmed_flush_lsn",
    ):
        table.add_column(column)
    for slot in slots:
        table.add_row(
            *map(
                _cell,
                (
                    slot.slot_name,
                    slot.plugin,
                    slot.slot_type,
                    slot.database,
                    slot.temporary,
                    slot.active,
                    slot.confirmed_flush_lsn,
                ),
            )
        )
    return table


def replication_stats_table(stats: Iterable[ReplicationStat]) -> Table:
    table = Table(title="Replication stats (publisher)", box=ROUNDED, title_justify="left")
    for column in (
        "pid",
        "usename",
        "application_name",
        "client_addr",
        "backend_start",
        "state",
        "sent_lsn",
        "replay_lsn",
    ):
        table.add_column(column)
    for stat in stats:
        table.add_row(
            *map(
                _cell,
                (
                    stat.pid,
                    stat.user_name,
                    stat.application_name,
                    stat.client_addr,
                    stat.backend_start,
                    stat.state,
                    stat.sent_lsn,
                    stat.replay_lsn,
                ),
            )
        )
    return table


def subscription_stats_table(stats: Iterable[SubscriptionStat]) -> Table:
    table = Table(title="Subscription stats (subscriber)", box=ROUNDED, title_justify="left")
    for column in (
        "subid",
        "subname",
        "pid",
        "received_lsn",
        "last_msg_send_time",
        "last_msg_receipt_time",
        "latest_end_lsn",
        "latest_end_time",
    ):
        table.add_column(column)
    for stat in stats:
        table.add_row(
            *map(
                _cell,
                (
                    stat.subid,
                    stat.subname,
                    stat.pid,
                    stat.received_lsn,
                    stat.last_msg_send_time,
                    stat.last_msg_receipt_time,
                    stat.latest_end_lsn,
                    stat.latest_end_time,
                ),
            )
        )
    return table


class ReplicationMonitor:
    """
    Periodically renders the state of one database and its subscription.

    Example:
        >>> monitor = ReplicationMonitor(publisher_catalog, subscriber_catalog, "appdb", "appdb_sub")
        >>> await monitor.run(stop)
    """

    def __init__(
        self,
        publisher: CatalogRepository,
        subscriber: CatalogRepository,
        db: str,
        subscription: str,
        *,
        console: Console | None = None,
    ) -> None:
        self._publisher = publisher
        self._subscriber = subscriber
        self._db = db
        self._subscription = subscription
        self._console = console or Console()

    async def render(self, now: datetime | None = None) -> Group:
        """Query both servers once and build the dashboard."""
        publisher_sessions = await self._publisher.list_connections(self._db)
        subscriber_sessions = await self._subscriber.list_connections(self._db)
        slots = await self._publisher.list_replication_slots(self._db)
        replication_stats = await self._publisher.list_replication_stats(self._subscription)
        subscription_stats = await self._subscriber.list_subscription_stats(self._subscription)

        header = Panel(
            f"{self._db} / {self._subscription}  {_cell(now or datetime.now(UTC))}",
            box=ROUNDED,
            border_style="cyan",
        )
        return Group(
            header,
            connections_table("Publisher connections", publisher_sessions),
            connections_table("Subscriber connections", subscriber_sessions),
            slots_table(slots),
            replication_stats_table(replication_stats),
            subscription_stats_table(subscription_stats),
        )

    async def run(self, stop: asyncio.Event, refresh_interval: float = 0.1) -> None:
        """Redraw every ``refresh_interval`` seconds until ``stop`` is set."""
        logger.debug("Monitoring %s / %s", self._db, self._subscription)
        with Live(console=self._console, auto_refresh=False) as live:
            while not stop.is_set():
                live.update(await self.render(), refresh=True)
                await asyncio.sleep(refresh_interval)


__all__ = [
    "ReplicationMonitor",
    "connections_table",
    "slots_table",
    "replication_stats_table",
    "subscription_stats_table",
]
