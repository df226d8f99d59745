"""
Standard span attributes for pgflare.

Attribute keys shared by every component so spans from the gatekeeper,
the reaper and the drain proofs can be filtered together. Database keys
follow OpenTelemetry semantic conventions.
"""

# =============================================================================
# Database Attributes (OTEL semantic conventions)
# =============================================================================

ATTR_DB_SYSTEM = "db.system"
"""Database system identifier (always 'postgresql')."""

ATTR_DB_NAME = "db.name"
"""Name of the database being operated on."""

ATTR_DB_USER = "db.user"
"""Role used for, or targeted by, the operation."""

ATTR_DB_OPERATION = "db.operation"
"""Statement verb (e.g., 'REVOKE', 'SELECT')."""

# =============================================================================
# Replication Attributes
# =============================================================================

ATTR_SUBSCRIPTION = "pgflare.replication.subscription"
"""Subscription (application) name of the replication channel."""

ATTR_CHANNEL_COUNT = "pgflare.replication.channel_count"
"""Number of replication channels observed for a database."""

ATTR_CHANNEL_AGE_SECONDS = "pgflare.replication.channel_age_seconds"
"""Seconds since the walsender backing the channel started."""

# =============================================================================
# Cutover Attributes
# =============================================================================

ATTR_CUTOVER_PHASE = "pgflare.cutover.phase"
"""Phase the coordinator reached (CutoverPhase value)."""

ATTR_CUTOVER_SUCCESS = "pgflare.cutover.success"
"""Whether the cutover reached READY."""

ATTR_CUTOVER_DURATION_MS = "pgflare.cutover.duration_ms"
"""Wall-clock duration of pause_writes in milliseconds."""

ATTR_REAP_ROUNDS = "pgflare.reaper.rounds"
"""Number of terminate rounds executed."""

ATTR_REAP_TERMINATED = "pgflare.reaper.terminated"
"""Total sessions terminated."""

ATTR_STABILITY_THRESHOLD = "pgflare.reaper.stability_threshold"
"""Consecutive zero-kill rounds required for quiescence."""

ATTR_DRAIN_STRATEGY = "pgflare.drain.strategy"
"""Drain proof strategy ('lsn' or 'probe')."""

ATTR_DRAIN_FENCE = "pgflare.drain.fence"
"""Fence captured at freeze time (LSN text or probe token)."""

ATTR_DRAIN_POLLS = "pgflare.drain.polls"
"""Number of polls until the proof succeeded."""

__all__ = [
    "ATTR_DB_SYSTEM",
    "ATTR_DB_NAME",
    "ATTR_DB_USER",
    "ATTR_DB_OPERATION",
    "ATTR_SUBSCRIPTION",
    "ATTR_CHANNEL_COUNT",
    "ATTR_CHANNEL_AGE_SECONDS",
    "ATTR_CUTOVER_PHASE",
    "ATTR_CUTOVER_SUCCESS",
    "ATTR_CUTOVER_DURATION_MS",
    "ATTR_REAP_ROUNDS",
    "ATTR_REAP_TERMINATED",
    "ATTR_STABILITY_THRESHOLD",
    "ATTR_DRAIN_STRATEGY",
    "ATTR_DRAIN_FENCE",
    "ATTR_DRAIN_POLLS",
]
