"""
Unit tests for the drain proof strategies.

Tests cover:
- LSNComparisonProof: fence from the publisher, polling until the position
  reaches it, NULL positions, minimum over rows, subscriber position source
- ProbeRecordProof: probe written once, polling until it arrives, fresh token
  per attempt
- Failing probe writes and lookups end the proof instead of polling on
- Timeout and cancellation for both strategies
- create_drain_proof strategy selection
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from pgflare import statements
from pgflare.cutover import (
    DrainProof,
    LSNComparisonProof,
    ProbeRecordProof,
    create_drain_proof,
)
from pgflare.exceptions import CutoverCancelledError, DrainProofTimeoutError, StatementError
from pgflare.models import LSN, DrainStrategy

# ============================================================================
# Test Fixtures
# ============================================================================


class AdvancingCatalog:
    """Wraps a catalog and moves replay_lsn forward on every poll."""

    def __init__(self, catalog, stat_factory, positions):
        self._catalog = catalog
        self._stat_factory = stat_factory
        self._positions = list(positions)

    def __getattr__(self, name):
        return getattr(self._catalog, name)

    async def list_replication_stats(self, subname):
        position = self._positions.pop(0) if len(self._positions) > 1 else self._positions[0]
        return [self._stat_factory(subname, replay_lsn=position)]


@pytest.fixture
def fenced_catalog(catalog):
    catalog.wal_lsn = LSN.parse("100/200")
    return catalog


@pytest.fixture
def advancing(fenced_catalog, replication_stat_factory):
    def _create(*positions):
        return AdvancingCatalog(fenced_catalog, replication_stat_factory, positions)

    return _create


# ============================================================================
# LSNComparisonProof
# ============================================================================


class TestLSNComparisonProof:
    @pytest.mark.asyncio
    async def test_waits_until_fence_reached(self, advancing):
        proof = LSNComparisonProof(
            advancing("100/1F0", "100/210"), "appdb_sub", poll_interval=0, enable_tracing=False
        )

        result = await proof.prove()

        assert result.strategy == DrainStrategy.LSN_COMPARISON
        assert result.fence == "100/200"
        assert result.polls == 2
        assert result.observed_position == LSN.parse("100/210")

    @pytest.mark.asyncio
    async def test_position_equal_to_fence(self, advancing):
        proof = LSNComparisonProof(
            advancing("100/200"), "appdb_sub", poll_interval=0, enable_tracing=False
        )
        result = await proof.prove()
        assert result.polls == 1

    @pytest.mark.asyncio
    async def test_null_position_keeps_polling(self, advancing):
        proof = LSNComparisonProof(
            advancing(None, None, "100/200"), "appdb_sub", poll_interval=0, enable_tracing=False
        )
        assert (await proof.prove()).polls == 3

    @pytest.mark.asyncio
    async def test_no_rows_keeps_polling(self, fenced_catalog):
        proof = LSNComparisonProof(
            fenced_catalog, "appdb_sub", poll_interval=0, max_polls=3, enable_tracing=False
        )
        with pytest.raises(DrainProofTimeoutError) as exc_info:
            await proof.prove()
        assert exc_info.value.polls == 3
        assert exc_info.value.strategy == "lsn"

    @pytest.mark.asyncio
    async def test_minimum_position_counts(self, fenced_catalog, replication_stat_factory):
        fenced_catalog.replication_stats = [
            replication_stat_factory("appdb_sub", pid=1, replay_lsn="100/300"),
            replication_stat_factory("appdb_sub", pid=2, replay_lsn="100/100"),
        ]
        proof = LSNComparisonProof(fenced_catalog, "appdb_sub", enable_tracing=False)
        assert await proof.current_position() == LSN.parse("100/100")

    @pytest.mark.asyncio
    async def test_null_in_any_row_is_unknown(self, fenced_catalog, replication_stat_factory):
        fenced_catalog.replication_stats = [
            replication_stat_factory("appdb_sub", pid=1, replay_lsn="100/300"),
            replication_stat_factory("appdb_sub", pid=2, replay_lsn=None),
        ]
        proof = LSNComparisonProof(fenced_catalog, "appdb_sub", enable_tracing=False)
        assert await proof.current_position() is None

    @pytest.mark.asyncio
    async def test_subscriber_position_source(
        self, fenced_catalog, catalog_factory, subscription_stat_factory
    ):
        subscriber = catalog_factory()
        subscriber.subscription_stats = [subscription_stat_factory(received_lsn="100/250")]
        proof = LSNComparisonProof(
            fenced_catalog,
            "appdb_sub",
            subscriber=subscriber,
            position_source="subscriber",
            enable_tracing=False,
        )

        result = await proof.prove()

        assert result.observed_position == LSN.parse("100/250")
        assert fenced_catalog.stat_calls == 0

    def test_subscriber_source_requires_catalog(self, fenced_catalog):
        with pytest.raises(ValueError, match="subscriber"):
            LSNComparisonProof(fenced_catalog, "appdb_sub", position_source="subscriber")

    @pytest.mark.asyncio
    async def test_cancelled(self, advancing):
        cancel = asyncio.Event()
        cancel.set()
        proof = LSNComparisonProof(advancing("100/1F0"), "appdb_sub", enable_tracing=False)
        with pytest.raises(CutoverCancelledError, match="proving_drain"):
            await proof.prove(cancel_event=cancel)

    @pytest.mark.asyncio
    async def test_span(self, advancing, mock_tracer):
        proof = LSNComparisonProof(advancing("100/200"), "appdb_sub", tracer=mock_tracer)
        await proof.prove()
        name, attributes = mock_tracer.spans[0]
        assert name == "pgflare.drain_proof.lsn"
        assert attributes["pgflare.drain.strategy"] == "lsn"


# ============================================================================
# ProbeRecordProof
# ============================================================================


class TestProbeRecordProof:
    @pytest.mark.asyncio
    async def test_waits_for_probe(self, probe_repo, probe_repo_factory):
        subscriber = probe_repo_factory(arrive_after=3)
        subscriber.records = probe_repo.records  # replication is instantaneous but hidden
        proof = ProbeRecordProof(
            probe_repo,
            subscriber,
            "12345",
            poll_interval=0,
            token_factory=lambda: "abc",
            enable_tracing=False,
        )

        result = await proof.prove()

        assert result.strategy == DrainStrategy.PROBE_RECORD
        assert result.fence == "abc"
        assert result.polls == 4
        assert ("12345", "abc") in probe_repo.records

    @pytest.mark.asyncio
    async def test_fresh_token_per_attempt(self, probe_repo):
        proof = ProbeRecordProof(probe_repo, probe_repo, "12345", enable_tracing=False)

        first = await proof.prove()
        second = await proof.prove()

        assert first.fence != second.fence
        assert len(probe_repo.records) == 2

    @pytest.mark.asyncio
    async def test_stale_probe_does_not_satisfy(self, probe_repo, probe_repo_factory):
        """A row from an earlier attempt is never mistaken for the current one."""
        subscriber = probe_repo_factory()
        subscriber.records = {("12345", "old")}
        proof = ProbeRecordProof(
            probe_repo,
            subscriber,
            "12345",
            poll_interval=0,
            max_polls=2,
            token_factory=lambda: "new",
            enable_tracing=False,
        )

        with pytest.raises(DrainProofTimeoutError) as exc_info:
            await proof.prove()

        assert exc_info.value.strategy == "probe"
        assert exc_info.value.polls == 2

    @pytest.mark.asyncio
    async def test_cancelled(self, probe_repo, probe_repo_factory):
        cancel = asyncio.Event()
        cancel.set()
        proof = ProbeRecordProof(probe_repo, probe_repo_factory(), "12345", enable_tracing=False)

        with pytest.raises(CutoverCancelledError):
            await proof.prove(cancel_event=cancel)

        # the probe is written before the first check
        assert len(probe_repo.records) == 1

    @pytest.mark.asyncio
    async def test_lookup_failure_is_fatal(self, probe_repo, probe_repo_factory):
        subscriber = probe_repo_factory()
        error = StatementError(
            "relation \"flare_replication_status\" does not exist",
            statement=statements.SELECT_PROBE_RECORD,
            database="appdb",
        )
        subscriber.exists = AsyncMock(side_effect=error)
        proof = ProbeRecordProof(
            probe_repo, subscriber, "12345", poll_interval=0, enable_tracing=False
        )

        with pytest.raises(StatementError) as exc_info:
            await proof.prove()

        assert exc_info.value is error
        subscriber.exists.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_write_failure_is_fatal(self, probe_repo, probe_repo_factory):
        subscriber = probe_repo_factory()
        probe_repo.write = AsyncMock(
            side_effect=StatementError(
                "permission denied for table flare_replication_status",
                statement=statements.INSERT_PROBE_RECORD,
                database="appdb",
            )
        )
        proof = ProbeRecordProof(probe_repo, subscriber, "12345", enable_tracing=False)

        with pytest.raises(StatementError, match="permission denied"):
            await proof.prove()

        assert subscriber.exists_calls == 0


# ============================================================================
# Factory
# ============================================================================


class TestCreateDrainProof:
    def test_lsn(self, catalog, probe_repo):
        proof = create_drain_proof(
            DrainStrategy.LSN_COMPARISON,
            channel_name="appdb_sub",
            system_identifier="12345",
            publisher_catalog=catalog,
            publisher_probes=probe_repo,
            subscriber_probes=probe_repo,
            enable_tracing=False,
        )
        assert isinstance(proof, LSNComparisonProof)
        assert isinstance(proof, DrainProof)

    def test_probe(self, catalog, probe_repo):
        proof = create_drain_proof(
            DrainStrategy.PROBE_RECORD,
            channel_name="appdb_sub",
            system_identifier="12345",
            publisher_catalog=catalog,
            publisher_probes=probe_repo,
            subscriber_probes=probe_repo,
            enable_tracing=False,
        )
        assert isinstance(proof, ProbeRecordProof)
        assert proof.strategy == DrainStrategy.PROBE_RECORD
