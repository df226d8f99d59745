"""
SessionReaper - Terminate application sessions until none come back.

With the gate closed no new session can connect, but pools and retry loops
may still be mid-handshake. The reaper keeps terminating sessions of the
application role and only reports quiescence after ``stability_threshold``
consecutive rounds in which nothing was terminated. Any kill resets the
count.

Only client backends of the given role connected to the given database are
terminated. The reaper's own backend and the ``postgres`` role are never
targeted.
"""

from __future__ import annotations

import asyncio
import logging

from pgflare import statements
from pgflare.exceptions import CutoverCancelledError, SessionDrainError
from pgflare.executor import StatementExecutor
from pgflare.models import ReapResult
from pgflare.observability import (
    ATTR_DB_NAME,
    ATTR_DB_USER,
    ATTR_REAP_ROUNDS,
    ATTR_REAP_TERMINATED,
    ATTR_STABILITY_THRESHOLD,
    Tracer,
    create_tracer,
)

logger = logging.getLogger(__name__)


class SessionReaper:
    """
    Drains sessions of one role from one database.

    Example:
        >>> reaper = SessionReaper(connect(config.publisher.superuser_info(), "postgres"))
        >>> result = await reaper.drain("appdb", "app", stability_threshold=3)
        >>> result.terminated
        12
    """

    def __init__(
        self,
        executor: StatementExecutor,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the reaper.

        Args:
            executor: Executor connected as a role allowed to call
                pg_terminate_backend on the application's sessions.
            tracer: Optional custom Tracer instance.
            enable_tracing: Whether to enable OpenTelemetry tracing.
        """
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._executor = executor

    async def terminate_sessions(self, db: str, role: str) -> int:
        """
        Run one terminate round.

        Returns:
            Number of sessions actually terminated.
        """
        rows = await self._executor.fetch_all(
            statements.TERMINATE_SESSIONS, {"role": role, "dbname": db}
        )
        return sum(1 for row in rows if row.terminated)

    async def drain(
        self,
        db: str,
        role: str,
        *,
        stability_threshold: int = 3,
        poll_interval: float = 0.1,
        max_rounds: int | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> ReapResult:
        """
        Terminate sessions of ``role`` on ``db`` until quiescent.

        Args:
            db: Target database.
            role: Application role whose sessions are terminated.
            stability_threshold: Consecutive zero-kill rounds required.
            poll_interval: Seconds between rounds.
            max_rounds: Give up after this many rounds; None never gives up.
            cancel_event: Checked before every round.

        Returns:
            ReapResult with the number of rounds and terminated sessions.

        Raises:
            SessionDrainError: If max_rounds is exhausted before quiescence.
            CutoverCancelledError: If cancel_event is set.
            StatementError: If a terminate round fails.
        """
        if stability_threshold < 1:
            raise ValueError(f"stability_threshold must be >= 1, got {stability_threshold}")

        with self._tracer.span(
            "pgflare.reaper.drain",
            {
                ATTR_DB_NAME: db,
                ATTR_DB_USER: role,
                ATTR_STABILITY_THRESHOLD: stability_threshold,
            },
        ) as span:
            quiet_rounds = 0
            rounds = 0
            terminated = 0

            while True:
                if cancel_event is not None and cancel_event.is_set():
                    raise CutoverCancelledError("draining")

                if max_rounds is not None and rounds >= max_rounds:
                    raise SessionDrainError(
                        f"sessions of {role} never became quiescent after {rounds} rounds "
                        f"({terminated} terminated)",
                        rounds=rounds,
                        terminated=terminated,
                        database=db,
                    )

                killed = await self.terminate_sessions(db, role)
                rounds += 1
                terminated += killed

                if killed > 0:
                    logger.info("Terminated %d sessions of %s on %s", killed, role, db)
                    quiet_rounds = 0
                else:
                    quiet_rounds += 1
                    logger.debug(
                        "No sessions of %s on %s (%d/%d)",
                        role,
                        db,
                        quiet_rounds,
                        stability_threshold,
                    )

                if quiet_rounds >= stability_threshold:
                    break

                await asyncio.sleep(poll_interval)

            if span is not None:
                span.set_attribute(ATTR_REAP_ROUNDS, rounds)
                span.set_attribute(ATTR_REAP_TERMINATED, terminated)

            logger.info(
                "Sessions of %s on %s are quiescent after %d rounds (%d terminated)",
                role,
                db,
                rounds,
                terminated,
            )
            return ReapResult(rounds=rounds, terminated=terminated)


__all__ = [
    "SessionReaper",
]
