"""
CutoverCoordinator - Freeze writes on the publisher and prove the drain.

The coordinator sequences the cutover components:

Cutover Sequence:
    1. CHECKING_HEALTH: exactly one stable replication channel
    2. CLOSING_GATE: revoke CONNECT on the database from PUBLIC
    3. DRAINING: terminate application sessions until quiescent
    4. PROVING_DRAIN: re-check the channel, then run the drain proof
    5. READY: the subscriber holds every committed write

A failing step ends the attempt in FAILED; a set cancellation event ends it
in CANCELLED, unless the drain proof has already succeeded. Either way the
coordinator performs no compensating action: if the gate was closed it
stays closed until resume_writes() is called.
Errors are not raised out of pause_writes(); they are reported in the
CutoverResult together with the phase they happened in.

Usage:
    >>> coordinator = CutoverCoordinator(
    ...     gatekeeper=gatekeeper,
    ...     reaper=reaper,
    ...     health=health,
    ...     drain_proof=proof,
    ...     config=CutoverConfig(stability_threshold=3),
    ... )
    >>> result = await coordinator.pause_writes("appdb", "appdb_sub", "app")
    >>> if result.success:
    ...     print("promote the subscriber")
    ... else:
    ...     print(f"stopped in {result.failed_phase}: {result.error_message}")
"""

from __future__ import annotations

import asyncio
import logging
import time

from pgflare.cutover.drain_proof import DrainProof
from pgflare.cutover.gatekeeper import ConnectionGatekeeper
from pgflare.cutover.health import ReplicationHealthCheck
from pgflare.cutover.reaper import SessionReaper
from pgflare.exceptions import CutoverCancelledError, FlareError
from pgflare.models import (
    CutoverConfig,
    CutoverPhase,
    CutoverResult,
    DrainProofResult,
    ReapResult,
)
from pgflare.observability import (
    ATTR_CUTOVER_DURATION_MS,
    ATTR_CUTOVER_PHASE,
    ATTR_CUTOVER_SUCCESS,
    ATTR_DB_NAME,
    ATTR_DB_USER,
    ATTR_DRAIN_STRATEGY,
    ATTR_SUBSCRIPTION,
    Tracer,
    create_tracer,
)

logger = logging.getLogger(__name__)


class CutoverCoordinator:
    """
    Runs the pause-writes state machine for one database.

    Example:
        >>> result = await coordinator.pause_writes("appdb", "appdb_sub", "app")
        >>> result.phase
        <CutoverPhase.READY: 'ready'>
        >>> result.history
        (<CutoverPhase.CHECKING_HEALTH: ...>, ..., <CutoverPhase.READY: 'ready'>)

    Attributes:
        current_phase: Phase of the attempt in progress (or of the last one).
    """

    def __init__(
        self,
        gatekeeper: ConnectionGatekeeper,
        reaper: SessionReaper,
        health: ReplicationHealthCheck,
        drain_proof: DrainProof,
        *,
        config: CutoverConfig | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the coordinator.

        Args:
            gatekeeper: Gatekeeper connected to the publisher.
            reaper: Session reaper connected to the publisher.
            health: Health check reading the publisher's catalog.
            drain_proof: Configured drain proof strategy.
            config: Cutover tunables; defaults are used when omitted.
            tracer: Optional custom Tracer instance.
            enable_tracing: Whether to enable OpenTelemetry tracing.
        """
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._gatekeeper = gatekeeper
        self._reaper = reaper
        self._health = health
        self._drain_proof = drain_proof
        self._config = config or CutoverConfig()
        self._phase = CutoverPhase.IDLE
        self._history: list[CutoverPhase] = []

    @property
    def current_phase(self) -> CutoverPhase:
        return self._phase

    @property
    def config(self) -> CutoverConfig:
        return self._config

    def _transition(self, target: CutoverPhase, cancel_event: asyncio.Event | None) -> None:
        if target not in (CutoverPhase.FAILED, CutoverPhase.CANCELLED):
            if cancel_event is not None and cancel_event.is_set():
                raise CutoverCancelledError(self._phase.value)

        if not self._phase.can_transition_to(target):
            raise RuntimeError(f"invalid cutover transition {self._phase.value} -> {target.value}")

        logger.debug("Cutover phase %s -> %s", self._phase.value, target.value)
        self._phase = target
        self._history.append(target)

    async def pause_writes(
        self,
        db: str,
        subscription: str,
        role: str,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> CutoverResult:
        """
        Freeze writes on ``db`` and wait until ``subscription`` has drained.

        Args:
            db: Database on the publisher.
            subscription: Subscription replicating ``db``.
            role: Application role whose sessions are terminated.
            cancel_event: Set to stop the attempt at the next check.

        Returns:
            CutoverResult in phase READY, FAILED or CANCELLED.
        """
        self._phase = CutoverPhase.IDLE
        self._history = []
        start_time = time.perf_counter()
        reap: ReapResult | None = None
        proof: DrainProofResult | None = None

        with self._tracer.span(
            "pgflare.cutover.pause_writes",
            {
                ATTR_DB_NAME: db,
                ATTR_SUBSCRIPTION: subscription,
                ATTR_DB_USER: role,
                ATTR_DRAIN_STRATEGY: self._drain_proof.strategy.value,
            },
        ) as span:
            logger.info(
                "Pausing writes on %s (subscription %s, role %s, %s drain proof)",
                db,
                subscription,
                role,
                self._drain_proof.strategy.value,
            )

            try:
                self._transition(CutoverPhase.CHECKING_HEALTH, cancel_event)
                await self._health.verify(db, subscription, self._config.min_stable_duration)

                self._transition(CutoverPhase.CLOSING_GATE, cancel_event)
                await self._gatekeeper.close_gate(db)

                self._transition(CutoverPhase.DRAINING, cancel_event)
                reap = await self._reaper.drain(
                    db,
                    role,
                    stability_threshold=self._config.stability_threshold,
                    poll_interval=self._config.poll_interval,
                    max_rounds=self._config.max_reap_rounds,
                    cancel_event=cancel_event,
                )

                self._transition(CutoverPhase.PROVING_DRAIN, cancel_event)
                await self._health.confirm(subscription)
                proof = await self._drain_proof.prove(cancel_event=cancel_event)

                # a proven drain stands even if cancellation arrived meanwhile
                self._transition(CutoverPhase.READY, None)
                result = self._result(db, subscription, start_time, reap=reap, proof=proof)
                logger.info(
                    "Writes on %s are paused and drained in %.2fms; %s is ready",
                    db,
                    result.duration_ms,
                    subscription,
                )

            except CutoverCancelledError:
                stopped_in = self._phase
                self._transition(CutoverPhase.CANCELLED, cancel_event)
                result = self._result(
                    db,
                    subscription,
                    start_time,
                    failed_phase=stopped_in,
                    reap=reap,
                    proof=proof,
                )
                logger.warning(
                    "Cutover of %s cancelled during %s; the gate is left as it is",
                    db,
                    stopped_in.value,
                )

            except FlareError as e:
                failed_in = self._phase
                self._transition(CutoverPhase.FAILED, cancel_event)
                result = self._result(
                    db,
                    subscription,
                    start_time,
                    failed_phase=failed_in,
                    error=e,
                    reap=reap,
                    proof=proof,
                )
                logger.log(
                    e.severity.log_level,
                    "Cutover of %s failed during %s: %s",
                    db,
                    failed_in.value,
                    e,
                )

            if span is not None:
                span.set_attribute(ATTR_CUTOVER_PHASE, result.phase.value)
                span.set_attribute(ATTR_CUTOVER_SUCCESS, result.success)
                span.set_attribute(ATTR_CUTOVER_DURATION_MS, result.duration_ms)

            return result

    async def resume_writes(self, db: str) -> None:
        """
        Reopen ``db`` to new connections.

        This is the only way out of a closed gate; pause_writes() never
        reopens it on its own.

        Raises:
            StatementError: If the GRANT fails.
        """
        with self._tracer.span("pgflare.cutover.resume_writes", {ATTR_DB_NAME: db}):
            await self._gatekeeper.open_gate(db)
            logger.info("Writes on %s resumed", db)

    def _result(
        self,
        db: str,
        subscription: str,
        start_time: float,
        *,
        failed_phase: CutoverPhase | None = None,
        error: FlareError | None = None,
        reap: ReapResult | None = None,
        proof: DrainProofResult | None = None,
    ) -> CutoverResult:
        return CutoverResult(
            phase=self._phase,
            database=db,
            subscription=subscription,
            duration_ms=(time.perf_counter() - start_time) * 1000,
            failed_phase=failed_phase,
            error=error,
            reap=reap,
            drain_proof=proof,
            history=tuple(self._history),
        )


__all__ = [
    "CutoverCoordinator",
]
