"""
Data models for pgflare.

This module defines the values that flow between the cutover components and
the catalog queries they run.

Models in this module:

Enums:
    - CutoverPhase: Cutover state machine phases
    - DrainStrategy: Interchangeable drain proof strategies

Configuration:
    - CutoverConfig: Tunables for a cutover attempt

Catalog rows:
    - LSN: Write-ahead log position
    - ReplicationSlot: Row of pg_replication_slots (a replication channel)
    - ReplicationStat: Row of pg_stat_replication
    - SubscriptionStat: Row of pg_stat_subscription
    - SessionRecord: Row of pg_stat_activity
    - ProbeRecord: Row of flare_replication_status

Results:
    - ReapResult: Outcome of a session drain
    - DrainProofResult: Outcome of a drain proof
    - CutoverResult: Outcome of pause_writes
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pgflare.exceptions import FlareError

_LSN_PATTERN = re.compile(r"^([0-9A-Fa-f]{1,8})/([0-9A-Fa-f]{1,8})$")


@dataclass(frozen=True, order=True)
class LSN:
    """
    A PostgreSQL log sequence number.

    The textual form is two hexadecimal 32-bit halves separated by a slash
    (``100/1F0``). Values are totally ordered and compared numerically; they
    are never subtracted.

    Example:
        >>> LSN.parse("100/210") > LSN.parse("100/1F0")
        True
        >>> str(LSN.parse("0/16b3748"))
        '0/16B3748'
    """

    value: int

    @classmethod
    def parse(cls, text: str) -> LSN:
        """
        Parse the ``X/Y`` textual form.

        Raises:
            ValueError: If the text is not a valid LSN.
        """
        match = _LSN_PATTERN.match(text.strip())
        if match is None:
            raise ValueError(f"invalid LSN: {text!r}")
        high, low = (int(part, 16) for part in match.groups())
        return cls((high << 32) | low)

    @classmethod
    def parse_optional(cls, text: str | None) -> LSN | None:
        """Parse a column that may be NULL (position not known yet)."""
        if text is None:
            return None
        return cls.parse(str(text))

    def __str__(self) -> str:
        return f"{self.value >> 32:X}/{self.value & 0xFFFFFFFF:X}"


class CutoverPhase(Enum):
    """
    Cutover state machine phases.

    State machine transitions:
        IDLE -> CHECKING_HEALTH -> CLOSING_GATE -> DRAINING -> PROVING_DRAIN -> READY
        Any non-terminal phase -> FAILED (step failure)
        Any non-terminal phase -> CANCELLED (cancellation event set)

    Nothing leaves FAILED or CANCELLED automatically; reopening the gate is
    a separate, explicit operation.
    """

    IDLE = "idle"
    """Coordinator created, nothing done yet."""

    CHECKING_HEALTH = "checking_health"
    """Verifying there is exactly one stable replication channel."""

    CLOSING_GATE = "closing_gate"
    """Revoking CONNECT from PUBLIC on the target database."""

    DRAINING = "draining"
    """Terminating application sessions until quiescent."""

    PROVING_DRAIN = "proving_drain"
    """Waiting for the subscriber to apply everything up to the fence."""

    READY = "ready"
    """Subscriber is safe to promote."""

    FAILED = "failed"
    """A step failed; the gate is left as it was."""

    CANCELLED = "cancelled"
    """The operator cancelled; no compensating action was taken."""

    @property
    def is_terminal(self) -> bool:
        return self in (CutoverPhase.READY, CutoverPhase.FAILED, CutoverPhase.CANCELLED)

    def can_transition_to(self, target: CutoverPhase) -> bool:
        """
        Check if transition to target phase is valid.

        Args:
            target: The target phase to transition to.

        Returns:
            True if the transition is valid.
        """
        if self.is_terminal:
            return False

        if target in (CutoverPhase.FAILED, CutoverPhase.CANCELLED):
            return True

        forward: dict[CutoverPhase, CutoverPhase] = {
            CutoverPhase.IDLE: CutoverPhase.CHECKING_HEALTH,
            CutoverPhase.CHECKING_HEALTH: CutoverPhase.CLOSING_GATE,
            CutoverPhase.CLOSING_GATE: CutoverPhase.DRAINING,
            CutoverPhase.DRAINING: CutoverPhase.PROVING_DRAIN,
            CutoverPhase.PROVING_DRAIN: CutoverPhase.READY,
        }
        return forward.get(self) == target


class DrainStrategy(Enum):
    """Interchangeable ways of proving the subscriber has drained."""

    LSN_COMPARISON = "lsn"
    """Compare the subscriber position with the publisher's WAL position at freeze."""

    PROBE_RECORD = "probe"
    """Write a probe row on the publisher and wait for it on the subscriber."""


class LSNSource(Enum):
    """Where the LSN comparison reads the subscription's position."""

    PUBLISHER = "publisher"
    """replay_lsn of the walsender in pg_stat_replication."""

    SUBSCRIBER = "subscriber"
    """received_lsn of the apply worker in pg_stat_subscription."""


@dataclass(frozen=True)
class CutoverConfig:
    """
    Tunables for a cutover attempt.

    Attributes:
        stability_threshold: Consecutive zero-kill rounds required before the
            session reaper reports quiescence (default 3).
        poll_interval: Seconds to sleep between polling rounds (default 0.1).
        min_stable_duration: Minimum age of the replication channel
            (default 1 minute).
        max_reap_rounds: Upper bound on terminate rounds; None is unbounded.
        max_proof_polls: Upper bound on drain proof polls; None is unbounded.
        drain_strategy: Which drain proof to run (default probe record).
        lsn_source: Position read by the LSN comparison (default publisher).

    Example:
        >>> config = CutoverConfig(stability_threshold=5, drain_strategy=DrainStrategy.LSN_COMPARISON)
        >>> config.poll_interval
        0.1
    """

    stability_threshold: int = 3
    poll_interval: float = 0.1
    min_stable_duration: timedelta = timedelta(minutes=1)
    max_reap_rounds: int | None = None
    max_proof_polls: int | None = None
    drain_strategy: DrainStrategy = DrainStrategy.PROBE_RECORD
    lsn_source: LSNSource = LSNSource.PUBLISHER

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.stability_threshold < 1:
            raise ValueError(f"stability_threshold must be >= 1, got {self.stability_threshold}")

        if self.poll_interval < 0:
            raise ValueError(f"poll_interval must be >= 0, got {self.poll_interval}")

        if self.min_stable_duration < timedelta(0):
            raise ValueError(
                f"min_stable_duration must not be negative, got {self.min_stable_duration}"
            )

        if self.max_reap_rounds is not None and self.max_reap_rounds < self.stability_threshold:
            raise ValueError(
                f"max_reap_rounds must be >= stability_threshold ({self.stability_threshold}), "
                f"got {self.max_reap_rounds}"
            )

        if self.max_proof_polls is not None and self.max_proof_polls < 1:
            raise ValueError(f"max_proof_polls must be >= 1, got {self.max_proof_polls}")

    def to_dict(self) -> dict[str, Any]:
        """
        Convert to a plain dictionary (durations in seconds).

        Returns:
            Dictionary representation suitable for YAML or JSON.
        """
        return {
            "stability_threshold": self.stability_threshold,
            "poll_interval": self.poll_interval,
            "min_stable_duration": self.min_stable_duration.total_seconds(),
            "max_reap_rounds": self.max_reap_rounds,
            "max_proof_polls": self.max_proof_polls,
            "drain_strategy": self.drain_strategy.value,
            "lsn_source": self.lsn_source.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CutoverConfig:
        """
        Create from dictionary.

        Args:
            data: Dictionary as produced by to_dict(); missing keys use defaults.

        Returns:
            CutoverConfig instance.
        """
        return cls(
            stability_threshold=data.get("stability_threshold", 3),
            poll_interval=data.get("poll_interval", 0.1),
            min_stable_duration=timedelta(seconds=data.get("min_stable_duration", 60)),
            max_reap_rounds=data.get("max_reap_rounds"),
            max_proof_polls=data.get("max_proof_polls"),
            drain_strategy=DrainStrategy(data.get("drain_strategy", "probe")),
            lsn_source=LSNSource(data.get("lsn_source", "publisher")),
        )


@dataclass(frozen=True)
class ReplicationSlot:
    """
    A replication channel as seen in pg_replication_slots.

    Attributes:
        slot_name: Name of the slot.
        plugin: Output plugin (pgoutput for logical replication).
        slot_type: 'logical' or 'physical'.
        database: Database the slot belongs to.
        temporary: Whether the slot is temporary (initial table sync).
        active: Whether a walsender is currently streaming from it.
        confirmed_flush_lsn: Last position the subscriber confirmed.
    """

    slot_name: str
    plugin: str | None
    slot_type: str
    database: str | None
    temporary: bool
    active: bool
    confirmed_flush_lsn: LSN | None = None


@dataclass(frozen=True)
class ReplicationStat:
    """
    A walsender as seen in pg_stat_replication on the publisher.

    application_name equals the subscription name for logical replication.
    """

    pid: int
    user_name: str | None
    application_name: str
    client_addr: str | None
    backend_start: datetime
    state: str | None
    sent_lsn: LSN | None = None
    write_lsn: LSN | None = None
    flush_lsn: LSN | None = None
    replay_lsn: LSN | None = None

    def age(self, now: datetime) -> timedelta:
        """How long the walsender has been running at ``now``."""
        return now - self.backend_start


@dataclass(frozen=True)
class SubscriptionStat:
    """A subscription worker as seen in pg_stat_subscription on the subscriber."""

    subid: int
    subname: str
    pid: int | None
    received_lsn: LSN | None
    last_msg_send_time: datetime | None
    last_msg_receipt_time: datetime | None
    latest_end_lsn: LSN | None
    latest_end_time: datetime | None


@dataclass(frozen=True)
class SessionRecord:
    """A backend connected to a database, from pg_stat_activity."""

    database: str
    pid: int
    user_name: str | None
    application_name: str | None
    client_addr: str | None
    backend_start: datetime | None
    wait_event: str | None
    wait_event_type: str | None
    state: str | None


@dataclass(frozen=True)
class ProbeRecord:
    """
    Row of flare_replication_status.

    Keyed by (system_identifier, token). Written once on the publisher; its
    arrival on the subscriber proves every earlier write has replicated.
    """

    system_identifier: str
    token: str


@dataclass(frozen=True)
class ReapResult:
    """
    Outcome of SessionReaper.drain().

    Attributes:
        rounds: Terminate rounds executed.
        terminated: Total sessions terminated across all rounds.
        quiescent: Always True when returned; failures raise instead.
    """

    rounds: int
    terminated: int
    quiescent: bool = True


@dataclass(frozen=True)
class DrainProofResult:
    """
    Outcome of a drain proof.

    Attributes:
        strategy: Strategy that produced the proof.
        polls: Number of subscriber polls, including the successful one.
        fence: LSN text or probe token captured at freeze time.
        observed_position: Subscriber position that satisfied the fence
            (LSN strategy only).
    """

    strategy: DrainStrategy
    polls: int
    fence: str
    observed_position: LSN | None = None


@dataclass(frozen=True)
class CutoverResult:
    """
    Result of CutoverCoordinator.pause_writes().

    Attributes:
        phase: Terminal phase reached (READY, FAILED or CANCELLED).
        database: Target database.
        subscription: Subscription whose channel was verified.
        duration_ms: Wall-clock duration of the attempt.
        failed_phase: Phase in which the attempt stopped, if not READY.
        error: The typed error for FAILED results.
        reap: Session drain outcome, if that phase completed.
        drain_proof: Drain proof outcome, if that phase completed.
    """

    phase: CutoverPhase
    database: str
    subscription: str
    duration_ms: float
    failed_phase: CutoverPhase | None = None
    error: FlareError | None = None
    reap: ReapResult | None = None
    drain_proof: DrainProofResult | None = None
    history: tuple[CutoverPhase, ...] = field(default_factory=tuple)

    @property
    def success(self) -> bool:
        return self.phase == CutoverPhase.READY

    @property
    def error_message(self) -> str | None:
        if self.error is not None:
            return str(self.error)
        if self.phase == CutoverPhase.CANCELLED and self.failed_phase is not None:
            return f"cancelled during {self.failed_phase.value}"
        return None


__all__ = [
    "LSN",
    "CutoverPhase",
    "DrainStrategy",
    "LSNSource",
    "CutoverConfig",
    "ReplicationSlot",
    "ReplicationStat",
    "SubscriptionStat",
    "SessionRecord",
    "ProbeRecord",
    "ReapResult",
    "DrainProofResult",
    "CutoverResult",
]
