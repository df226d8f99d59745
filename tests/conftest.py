"""
Shared pytest fixtures for the pgflare tests.

This module provides:
- Configuration fixtures (sample_config_text, flare_config, config_file)
- Executor fixtures (mock_executor)
- In-memory repositories (InMemoryCatalogRepository, InMemoryProbeRecordRepository)
- Row factories (slot_factory, replication_stat_factory, subscription_stat_factory,
  session_factory)
- Tracing fixtures (mock_tracer)
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from pgflare.config import FlareConfig, parse_config
from pgflare.models import (
    LSN,
    ProbeRecord,
    ReplicationSlot,
    ReplicationStat,
    SessionRecord,
    SubscriptionStat,
)
from pgflare.observability import MockTracer

# ============================================================================
# Configuration
# ============================================================================

SAMPLE_CONFIG = """
hosts:
  publisher:
    conn:
      superuser: postgres1
      superuser_password: password1
      db_owner: owner1
      db_owner_password: ownerpass1
      repl_user: repl1
      repl_user_password: replpass1
      host: publisher
      host_via_subscriber: publisher_sub
      port: '5430'
      port_via_subscriber: '5432'
      system_identifier: '12345'
  subscriber:
    conn:
      superuser: postgres2
      superuser_password: password2
      db_owner: owner2
      db_owner_password: ownerpass2
      host: subscriber
      port: 5431
      system_identifier: 67890
publications:
  appdb:
    pubname: appdb_pub
    replica_identity_full_tables:
      - items
      - sessions
subscriptions:
  appdb_sub:
    dbname: appdb
    pubname: appdb_pub
"""


@pytest.fixture
def sample_config_text() -> str:
    """YAML text of a complete configuration."""
    return SAMPLE_CONFIG


@pytest.fixture
def flare_config(sample_config_text: str) -> FlareConfig:
    """Parsed sample configuration."""
    return parse_config(sample_config_text)


@pytest.fixture
def config_file(tmp_path: Path, sample_config_text: str) -> Path:
    """Sample configuration written to flare.yml in a temporary directory."""
    path = tmp_path / "flare.yml"
    path.write_text(sample_config_text)
    return path


# ============================================================================
# Executors and tracing
# ============================================================================


@pytest.fixture
def mock_executor() -> MagicMock:
    """A StatementExecutor double with async methods."""
    executor = MagicMock()
    executor.database = "appdb"
    executor.server = "publisher:5430"
    executor.execute = AsyncMock(return_value=0)
    executor.fetch_all = AsyncMock(return_value=[])
    executor.fetch_one = AsyncMock(return_value=None)
    executor.fetch_scalar = AsyncMock(return_value=None)
    executor.dispose = AsyncMock()
    return executor


@pytest.fixture
def mock_tracer() -> MockTracer:
    """Tracer that records span names and attributes."""
    return MockTracer()


# ============================================================================
# Row factories
# ============================================================================

BACKEND_START = datetime(2024, 5, 1, 9, 0, tzinfo=UTC)


@pytest.fixture
def slot_factory() -> Callable[..., ReplicationSlot]:
    def _create(
        slot_name: str = "appdb_sub",
        *,
        active: bool = True,
        temporary: bool = False,
        database: str = "appdb",
        confirmed_flush_lsn: str | None = "0/16B3748",
    ) -> ReplicationSlot:
        return ReplicationSlot(
            slot_name=slot_name,
            plugin="pgoutput",
            slot_type="logical",
            database=database,
            temporary=temporary,
            active=active,
            confirmed_flush_lsn=LSN.parse_optional(confirmed_flush_lsn),
        )

    return _create


@pytest.fixture
def replication_stat_factory() -> Callable[..., ReplicationStat]:
    def _create(
        application_name: str = "appdb_sub",
        *,
        pid: int = 4242,
        backend_start: datetime = BACKEND_START,
        replay_lsn: str | None = "100/200",
    ) -> ReplicationStat:
        return ReplicationStat(
            pid=pid,
            user_name="postgres1",
            application_name=application_name,
            client_addr="10.0.0.2",
            backend_start=backend_start,
            state="streaming",
            sent_lsn=LSN.parse_optional(replay_lsn),
            write_lsn=LSN.parse_optional(replay_lsn),
            flush_lsn=LSN.parse_optional(replay_lsn),
            replay_lsn=LSN.parse_optional(replay_lsn),
        )

    return _create


@pytest.fixture
def subscription_stat_factory() -> Callable[..., SubscriptionStat]:
    def _create(
        subname: str = "appdb_sub",
        *,
        pid: int | None = 5151,
        received_lsn: str | None = "100/200",
    ) -> SubscriptionStat:
        return SubscriptionStat(
            subid=16390,
            subname=subname,
            pid=pid,
            received_lsn=LSN.parse_optional(received_lsn),
            last_msg_send_time=BACKEND_START,
            last_msg_receipt_time=BACKEND_START,
            latest_end_lsn=LSN.parse_optional(received_lsn),
            latest_end_time=BACKEND_START,
        )

    return _create


@pytest.fixture
def session_factory() -> Callable[..., SessionRecord]:
    def _create(pid: int = 777, *, user_name: str = "app", state: str = "idle") -> SessionRecord:
        return SessionRecord(
            database="appdb",
            pid=pid,
            user_name=user_name,
            application_name="web",
            client_addr="10.0.0.9",
            backend_start=BACKEND_START,
            wait_event="ClientRead",
            wait_event_type="Client",
            state=state,
        )

    return _create


# ============================================================================
# In-memory repositories
# ============================================================================


class InMemoryCatalogRepository:
    """Catalog whose observations are set directly by the test."""

    def __init__(self) -> None:
        self.slots: list[ReplicationSlot] = []
        self.replication_stats: list[ReplicationStat] = []
        self.subscription_stats: list[SubscriptionStat] = []
        self.connections: list[SessionRecord] = []
        self.wal_lsn = LSN.parse("0/0")
        self.extensions: list[str] = []
        self.system_identifier = "12345"
        self.stat_calls = 0

    async def list_replication_slots(self, dbname: str) -> list[ReplicationSlot]:
        return [slot for slot in self.slots if slot.database == dbname]

    async def list_replication_stats(self, subname: str) -> list[ReplicationStat]:
        self.stat_calls += 1
        return [stat for stat in self.replication_stats if stat.application_name == subname]

    async def list_subscription_stats(self, subname: str) -> list[SubscriptionStat]:
        return [stat for stat in self.subscription_stats if stat.subname == subname]

    async def list_connections(self, dbname: str) -> list[SessionRecord]:
        return [session for session in self.connections if session.database == dbname]

    async def current_wal_lsn(self) -> LSN:
        return self.wal_lsn

    async def list_installed_extensions(self) -> list[str]:
        return list(self.extensions)

    async def get_system_identifier(self) -> str:
        return self.system_identifier


class InMemoryProbeRecordRepository:
    """
    Probe table in memory.

    ``arrive_after`` hides written records from exists() for that many calls,
    simulating replication lag on the subscriber.
    """

    def __init__(self, arrive_after: int = 0) -> None:
        self.records: set[tuple[str, str]] = set()
        self.arrive_after = arrive_after
        self.exists_calls = 0
        self.table_created = False

    async def create_table(self) -> None:
        self.table_created = True

    async def write(self, record: ProbeRecord) -> None:
        self.records.add((record.system_identifier, record.token))

    async def exists(self, record: ProbeRecord) -> bool:
        self.exists_calls += 1
        if self.exists_calls <= self.arrive_after:
            return False
        return (record.system_identifier, record.token) in self.records

    async def delete_all(self, system_identifier: str) -> int:
        doomed = {key for key in self.records if key[0] == system_identifier}
        self.records -= doomed
        return len(doomed)


@pytest.fixture
def catalog() -> InMemoryCatalogRepository:
    return InMemoryCatalogRepository()


@pytest.fixture
def catalog_factory() -> type[InMemoryCatalogRepository]:
    """For tests that need a second catalog (the subscriber's)."""
    return InMemoryCatalogRepository


@pytest.fixture
def probe_repo() -> InMemoryProbeRecordRepository:
    return InMemoryProbeRecordRepository()


@pytest.fixture
def probe_repo_factory() -> type[InMemoryProbeRecordRepository]:
    return InMemoryProbeRecordRepository


def row(**values: Any) -> MagicMock:
    """A result row double with attribute access."""
    result = MagicMock()
    for key, value in values.items():
        setattr(result, key, value)
    return result


@pytest.fixture
def make_row() -> Callable[..., MagicMock]:
    return row


@pytest.fixture
def old_enough() -> timedelta:
    """A min_stable_duration every BACKEND_START-based stat satisfies."""
    return timedelta(minutes=1)
