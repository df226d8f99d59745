"""
Drain proofs - Evidence that the subscriber applied every committed write.

Once sessions are drained no new write can commit on the publisher. A drain
proof captures a fence at that moment and polls the subscriber until it is
past the fence:

    - LSNComparisonProof: the fence is pg_current_wal_lsn() on the publisher;
      drained once the subscription's position is at or beyond it.
    - ProbeRecordProof: the fence is a freshly written probe row; drained once
      the row is visible on the subscriber.

Strategies are interchangeable through the DrainProof protocol and chosen by
configuration via create_drain_proof().

"Not there yet" (a position behind the fence, a NULL position, a missing
probe row) is not an error: the proof sleeps and polls again. Query failures
propagate immediately.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Literal, Protocol, runtime_checkable
from uuid import uuid4

from pgflare.exceptions import CutoverCancelledError, DrainProofTimeoutError
from pgflare.models import LSN, DrainProofResult, DrainStrategy, ProbeRecord
from pgflare.observability import (
    ATTR_DRAIN_FENCE,
    ATTR_DRAIN_POLLS,
    ATTR_DRAIN_STRATEGY,
    ATTR_SUBSCRIPTION,
    Tracer,
    create_tracer,
)
from pgflare.repositories.catalog import CatalogRepository
from pgflare.repositories.probe import ProbeRecordRepository

logger = logging.getLogger(__name__)

PositionSource = Literal["publisher", "subscriber"]


@runtime_checkable
class DrainProof(Protocol):
    """Protocol for drain proof strategies."""

    @property
    def strategy(self) -> DrainStrategy:
        """The strategy implemented."""
        ...

    async def prove(self, *, cancel_event: asyncio.Event | None = None) -> DrainProofResult:
        """
        Capture a fence and wait until the subscriber is past it.

        Raises:
            DrainProofTimeoutError: If max_polls is exhausted.
            CutoverCancelledError: If cancel_event is set.
            StatementError: If a query fails.
        """
        ...


def _check_poll(
    strategy: DrainStrategy,
    polls: int,
    max_polls: int | None,
    cancel_event: asyncio.Event | None,
) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise CutoverCancelledError("proving_drain")
    if max_polls is not None and polls >= max_polls:
        raise DrainProofTimeoutError(
            f"subscriber did not reach the fence after {polls} polls",
            strategy=strategy.value,
            polls=polls,
        )


class LSNComparisonProof:
    """
    Compares the subscription's position with the publisher's WAL position.

    The position is read from the publisher's pg_stat_replication
    (replay_lsn, the default) or from the subscriber's pg_stat_subscription
    (received_lsn). When several rows exist the smallest position counts,
    and a NULL position in any row means not yet drained.
    """

    def __init__(
        self,
        publisher: CatalogRepository,
        channel_name: str,
        *,
        subscriber: CatalogRepository | None = None,
        position_source: PositionSource = "publisher",
        poll_interval: float = 0.1,
        max_polls: int | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the proof.

        Args:
            publisher: Catalog of the publisher (fence and replay_lsn).
            channel_name: Subscription name.
            subscriber: Catalog of the subscriber; required when
                position_source is "subscriber".
            position_source: Where to read the subscription's position.
            poll_interval: Seconds between polls.
            max_polls: Give up after this many polls; None never gives up.
            tracer: Optional custom Tracer instance.
            enable_tracing: Whether to enable OpenTelemetry tracing.
        """
        if position_source == "subscriber" and subscriber is None:
            raise ValueError("position_source 'subscriber' requires a subscriber catalog")
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._publisher = publisher
        self._subscriber = subscriber
        self._channel_name = channel_name
        self._position_source = position_source
        self._poll_interval = poll_interval
        self._max_polls = max_polls

    @property
    def strategy(self) -> DrainStrategy:
        return DrainStrategy.LSN_COMPARISON

    async def current_position(self) -> LSN | None:
        """The subscription's position, or None if not known yet."""
        if self._position_source == "subscriber":
            if self._subscriber is None:
                raise ValueError("position_source 'subscriber' requires a subscriber catalog")
            stats = await self._subscriber.list_subscription_stats(self._channel_name)
            positions = [stat.received_lsn for stat in stats]
        else:
            rows = await self._publisher.list_replication_stats(self._channel_name)
            positions = [row.replay_lsn for row in rows]

        if not positions or any(position is None for position in positions):
            return None
        return min(position for position in positions if position is not None)

    async def prove(self, *, cancel_event: asyncio.Event | None = None) -> DrainProofResult:
        with self._tracer.span(
            "pgflare.drain_proof.lsn",
            {ATTR_DRAIN_STRATEGY: self.strategy.value, ATTR_SUBSCRIPTION: self._channel_name},
        ) as span:
            fence = await self._publisher.current_wal_lsn()
            logger.info("Waiting for %s to reach LSN %s", self._channel_name, fence)
            if span is not None:
                span.set_attribute(ATTR_DRAIN_FENCE, str(fence))

            polls = 0
            while True:
                _check_poll(self.strategy, polls, self._max_polls, cancel_event)

                position = await self.current_position()
                polls += 1

                if position is not None and position >= fence:
                    if span is not None:
                        span.set_attribute(ATTR_DRAIN_POLLS, polls)
                    logger.info(
                        "%s reached %s (fence %s) after %d polls",
                        self._channel_name,
                        position,
                        fence,
                        polls,
                    )
                    return DrainProofResult(
                        strategy=self.strategy,
                        polls=polls,
                        fence=str(fence),
                        observed_position=position,
                    )

                logger.debug("%s at %s, fence %s", self._channel_name, position, fence)
                await asyncio.sleep(self._poll_interval)


class ProbeRecordProof:
    """
    Writes a probe row on the publisher and waits for it on the subscriber.

    Every call to prove() uses a new token, so a row left over from an earlier
    attempt can never satisfy a later one.
    """

    def __init__(
        self,
        publisher: ProbeRecordRepository,
        subscriber: ProbeRecordRepository,
        system_identifier: str,
        *,
        poll_interval: float = 0.1,
        max_polls: int | None = None,
        token_factory: Callable[[], str] | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the proof.

        Args:
            publisher: Probe table on the publisher (written).
            subscriber: Probe table on the subscriber (polled).
            system_identifier: Publisher system identifier, part of the row key.
            poll_interval: Seconds between polls.
            max_polls: Give up after this many polls; None never gives up.
            token_factory: Produces the token of each attempt; uuid4 by default.
            tracer: Optional custom Tracer instance.
            enable_tracing: Whether to enable OpenTelemetry tracing.
        """
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._publisher = publisher
        self._subscriber = subscriber
        self._system_identifier = system_identifier
        self._poll_interval = poll_interval
        self._max_polls = max_polls
        self._token_factory = token_factory or (lambda: str(uuid4()))

    @property
    def strategy(self) -> DrainStrategy:
        return DrainStrategy.PROBE_RECORD

    async def prove(self, *, cancel_event: asyncio.Event | None = None) -> DrainProofResult:
        record = ProbeRecord(
            system_identifier=self._system_identifier,
            token=self._token_factory(),
        )
        with self._tracer.span(
            "pgflare.drain_proof.probe",
            {ATTR_DRAIN_STRATEGY: self.strategy.value, ATTR_DRAIN_FENCE: record.token},
        ) as span:
            await self._publisher.write(record)
            logger.info("Wrote probe %s on the publisher", record.token)

            polls = 0
            while True:
                _check_poll(self.strategy, polls, self._max_polls, cancel_event)

                found = await self._subscriber.exists(record)
                polls += 1

                if found:
                    if span is not None:
                        span.set_attribute(ATTR_DRAIN_POLLS, polls)
                    logger.info(
                        "Probe %s arrived on the subscriber after %d polls",
                        record.token,
                        polls,
                    )
                    return DrainProofResult(
                        strategy=self.strategy,
                        polls=polls,
                        fence=record.token,
                    )

                logger.debug("Probe %s not replicated yet", record.token)
                await asyncio.sleep(self._poll_interval)


def create_drain_proof(
    strategy: DrainStrategy,
    *,
    channel_name: str,
    system_identifier: str,
    publisher_catalog: CatalogRepository,
    publisher_probes: ProbeRecordRepository,
    subscriber_probes: ProbeRecordRepository,
    subscriber_catalog: CatalogRepository | None = None,
    position_source: PositionSource = "publisher",
    poll_interval: float = 0.1,
    max_polls: int | None = None,
    tracer: Tracer | None = None,
    enable_tracing: bool = True,
) -> DrainProof:
    """
    Build the drain proof selected by ``strategy``.

    Example:
        >>> proof = create_drain_proof(
        ...     DrainStrategy.LSN_COMPARISON,
        ...     channel_name="appdb_sub",
        ...     system_identifier="7012345678901234567",
        ...     publisher_catalog=publisher_catalog,
        ...     publisher_probes=publisher_probes,
        ...     subscriber_probes=subscriber_probes,
        ... )
    """
    if strategy == DrainStrategy.LSN_COMPARISON:
        return LSNComparisonProof(
            publisher_catalog,
            channel_name,
            subscriber=subscriber_catalog,
            position_source=position_source,
            poll_interval=poll_interval,
            max_polls=max_polls,
            tracer=tracer,
            enable_tracing=enable_tracing,
        )
    return ProbeRecordProof(
        publisher_probes,
        subscriber_probes,
        system_identifier,
        poll_interval=poll_interval,
        max_polls=max_polls,
        tracer=tracer,
        enable_tracing=enable_tracing,
    )


__all__ = [
    "DrainProof",
    "LSNComparisonProof",
    "ProbeRecordProof",
    "PositionSource",
    "create_drain_proof",
]
