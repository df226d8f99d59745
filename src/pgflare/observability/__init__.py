"""
Observability utilities for pgflare.

Tracing abstractions and the standard span attributes used by every
component.
"""

from pgflare.observability.attributes import (
    ATTR_CHANNEL_AGE_SECONDS,
    ATTR_CHANNEL_COUNT,
    ATTR_CUTOVER_DURATION_MS,
    ATTR_CUTOVER_PHASE,
    ATTR_CUTOVER_SUCCESS,
    ATTR_DB_NAME,
    ATTR_DB_OPERATION,
    ATTR_DB_SYSTEM,
    ATTR_DB_USER,
    ATTR_DRAIN_FENCE,
    ATTR_DRAIN_POLLS,
    ATTR_DRAIN_STRATEGY,
    ATTR_REAP_ROUNDS,
    ATTR_REAP_TERMINATED,
    ATTR_STABILITY_THRESHOLD,
    ATTR_SUBSCRIPTION,
)
from pgflare.observability.tracer import (
    MockTracer,
    NullTracer,
    OpenTelemetryTracer,
    Tracer,
    create_tracer,
)

__all__ = [
    # Tracer
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "MockTracer",
    "create_tracer",
    # Attributes
    "ATTR_CHANNEL_AGE_SECONDS",
    "ATTR_CHANNEL_COUNT",
    "ATTR_CUTOVER_DURATION_MS",
    "ATTR_CUTOVER_PHASE",
    "ATTR_CUTOVER_SUCCESS",
    "ATTR_DB_NAME",
    "ATTR_DB_OPERATION",
    "ATTR_DB_SYSTEM",
    "ATTR_DB_USER",
    "ATTR_DRAIN_FENCE",
    "ATTR_DRAIN_POLLS",
    "ATTR_DRAIN_STRATEGY",
    "ATTR_REAP_ROUNDS",
    "ATTR_REAP_TERMINATED",
    "ATTR_STABILITY_THRESHOLD",
    "ATTR_SUBSCRIPTION",
]
