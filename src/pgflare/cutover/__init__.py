"""
Cutover components.

The coordinator drives four components against the publisher:

    - ConnectionGatekeeper: revoke/grant CONNECT
    - SessionReaper: terminate sessions until quiescent
    - ReplicationHealthCheck: one stable replication channel
    - DrainProof: LSNComparisonProof or ProbeRecordProof
"""

from pgflare.cutover.coordinator import CutoverCoordinator
from pgflare.cutover.drain_proof import (
    DrainProof,
    LSNComparisonProof,
    PositionSource,
    ProbeRecordProof,
    create_drain_proof,
)
from pgflare.cutover.gatekeeper import ConnectionGatekeeper
from pgflare.cutover.health import ReplicationHealthCheck
from pgflare.cutover.reaper import SessionReaper

__all__ = [
    "CutoverCoordinator",
    "ConnectionGatekeeper",
    "SessionReaper",
    "ReplicationHealthCheck",
    "DrainProof",
    "LSNComparisonProof",
    "ProbeRecordProof",
    "PositionSource",
    "create_drain_proof",
]
