"""
pgflare - Logical replication migrations with a safe write cutover.

This library provides:
- Cutover Coordinator: freeze writes, drain sessions, prove the drain
- Connection gatekeeper, session reaper and replication health checks
- Interchangeable drain proofs (LSN comparison, probe record)
- Configuration loading and validation for flare.yml
- Wrappers around psql, pg_dump and pg_dumpall
- A synthetic traffic generator and a live replication monitor
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pgflare")
except PackageNotFoundError:
    # Package not installed (running from source without install)
    __version__ = "0.0.0.dev0"

from pgflare.config import (
    ConnConfig,
    FlareConfig,
    UserInfo,
    load_config,
    parse_config,
)
from pgflare.connection import connect, connect_with_verify, connected
from pgflare.cutover import (
    ConnectionGatekeeper,
    CutoverCoordinator,
    DrainProof,
    LSNComparisonProof,
    ProbeRecordProof,
    ReplicationHealthCheck,
    SessionReaper,
    create_drain_proof,
)
from pgflare.exceptions import (
    AmbiguousReplicationError,
    ConfigurationError,
    CutoverCancelledError,
    DrainProofTimeoutError,
    ExternalCommandError,
    FlareError,
    ReplicationChannelNotFoundError,
    ReplicationHealthError,
    SessionDrainError,
    StatementError,
    SystemIdentifierError,
    UnstableReplicationError,
)
from pgflare.executor import StatementExecutor
from pgflare.models import (
    LSN,
    CutoverConfig,
    CutoverPhase,
    CutoverResult,
    DrainProofResult,
    DrainStrategy,
    LSNSource,
    ProbeRecord,
    ReapResult,
    ReplicationSlot,
    ReplicationStat,
    SessionRecord,
    SubscriptionStat,
)

__all__ = [
    "__version__",
    # Configuration
    "ConnConfig",
    "FlareConfig",
    "UserInfo",
    "load_config",
    "parse_config",
    # Connections
    "connect",
    "connect_with_verify",
    "connected",
    "StatementExecutor",
    # Cutover
    "CutoverCoordinator",
    "ConnectionGatekeeper",
    "SessionReaper",
    "ReplicationHealthCheck",
    "DrainProof",
    "LSNComparisonProof",
    "ProbeRecordProof",
    "create_drain_proof",
    # Models
    "LSN",
    "CutoverConfig",
    "CutoverPhase",
    "CutoverResult",
    "DrainProofResult",
    "DrainStrategy",
    "LSNSource",
    "ProbeRecord",
    "ReapResult",
    "ReplicationSlot",
    "ReplicationStat",
    "SessionRecord",
    "SubscriptionStat",
    # Exceptions
    "FlareError",
    "ConfigurationError",
    "SystemIdentifierError",
    "StatementError",
    "ExternalCommandError",
    "ReplicationHealthError",
    "AmbiguousReplicationError",
    "UnstableReplicationError",
    "ReplicationChannelNotFoundError",
    "SessionDrainError",
    "DrainProofTimeoutError",
    "CutoverCancelledError",
]
