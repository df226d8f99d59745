"""
Exceptions raised by pgflare.

Every failure a cutover or an administrative command can hit is a subclass
of FlareError, so callers can catch them with a single handler. Each class
carries classification metadata that tells an operator how bad the failure
is and what to do next.

Exception Hierarchy:
    FlareError (base)
    +-- ConfigurationError
    +-- SystemIdentifierError
    +-- StatementError
    +-- ExternalCommandError
    +-- ReplicationHealthError
    |   +-- AmbiguousReplicationError
    |   +-- UnstableReplicationError
    |   +-- ReplicationChannelNotFoundError
    +-- SessionDrainError
    +-- DrainProofTimeoutError

CutoverCancelledError is deliberately outside the hierarchy: a cancelled
cutover is an outcome, not a failure of the underlying system.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Any


class ErrorSeverity(Enum):
    """
    Severity level of pgflare errors.

    Used for logging and operator notification decisions.
    """

    CRITICAL = "critical"
    """Wrong server or corrupted topology; stop immediately."""

    ERROR = "error"
    """The operation failed and needs operator intervention."""

    WARNING = "warning"
    """Condition that may resolve by itself (e.g. a young replication channel)."""

    @property
    def log_level(self) -> int:
        """
        Get the corresponding Python logging level.

        Returns:
            Python logging level constant.
        """
        level_map = {
            ErrorSeverity.CRITICAL: logging.CRITICAL,
            ErrorSeverity.ERROR: logging.ERROR,
            ErrorSeverity.WARNING: logging.WARNING,
        }
        return level_map[self]


class ErrorRecoverability(Enum):
    """
    How an operator can recover from an error.

    pgflare never retries a failed step by itself. These values only tell the
    operator whether retrying the command later can succeed.
    """

    RECOVERABLE = "recoverable"
    """Retry after fixing the reported condition."""

    TRANSIENT = "transient"
    """Retrying later may succeed without any change."""

    FATAL = "fatal"
    """Investigate before doing anything else."""


@dataclass(frozen=True)
class ErrorClassification:
    """
    Metadata attached to each error class.

    Attributes:
        severity: The severity level of the error.
        recoverability: How the error can be recovered from.
        error_code: Unique error code for programmatic handling.
        category: Error category for grouping related errors.
        suggested_action: Human-readable guidance for operators.
    """

    severity: ErrorSeverity
    recoverability: ErrorRecoverability
    error_code: str
    category: str
    suggested_action: str

    def to_dict(self) -> dict[str, Any]:
        """Convert classification to a dictionary for serialization."""
        return {
            "severity": self.severity.value,
            "recoverability": self.recoverability.value,
            "error_code": self.error_code,
            "category": self.category,
            "suggested_action": self.suggested_action,
        }


class FlareError(Exception):
    """
    Base exception for all pgflare errors.

    Attributes:
        message: Human-readable error description.
        database: Database the failing operation targeted, if any.
        subscription: Subscription involved, if any.
        suggested_action: Overrides the class-level suggested action.
    """

    _default_classification: ErrorClassification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.FATAL,
        error_code="FLARE_ERROR",
        category="general",
        suggested_action="Review the log output before retrying",
    )

    def __init__(
        self,
        message: str,
        *,
        database: str | None = None,
        subscription: str | None = None,
        suggested_action: str | None = None,
    ) -> None:
        self.message = message
        self.database = database
        self.subscription = subscription
        self.suggested_action = suggested_action or self._default_classification.suggested_action
        super().__init__(message)

    def __str__(self) -> str:
        parts = [self.message]
        if self.database:
            parts.append(f"database={self.database}")
        if self.subscription:
            parts.append(f"subscription={self.subscription}")
        return " ".join(parts)

    @property
    def classification(self) -> ErrorClassification:
        """Classification metadata for this error type."""
        return self._default_classification

    @property
    def severity(self) -> ErrorSeverity:
        return self.classification.severity

    @property
    def error_code(self) -> str:
        return self.classification.error_code

    def to_dict(self) -> dict[str, Any]:
        """
        Convert the exception to a dictionary for serialization.

        Returns:
            Dictionary representation of the error.
        """
        return {
            "message": self.message,
            "database": self.database,
            "subscription": self.subscription,
            "error_code": self.error_code,
            "suggested_action": self.suggested_action,
            "classification": self.classification.to_dict(),
        }


class ConfigurationError(FlareError):
    """
    Raised when the configuration file is missing, unreadable or invalid.

    Attributes:
        path: Path of the configuration file, if one was read.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.RECOVERABLE,
        error_code="CONFIG_INVALID",
        category="configuration",
        suggested_action="Fix the configuration file and run the command again",
    )

    def __init__(self, message: str, path: str | None = None) -> None:
        self.path = path
        super().__init__(message)


class SystemIdentifierError(FlareError):
    """
    Raised when a server reports a different system identifier than configured.

    Guards against running destructive commands against the wrong server.

    Attributes:
        expected: The configured system identifier.
        got: The identifier reported by pg_control_system().
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.CRITICAL,
        recoverability=ErrorRecoverability.FATAL,
        error_code="SYSTEM_IDENTIFIER_MISMATCH",
        category="identity",
        suggested_action="Check that host and port point at the intended server",
    )

    def __init__(self, expected: str, got: str) -> None:
        self.expected = expected
        self.got = got
        super().__init__(f"system_identifier doesn't match! Got '{got}', expected '{expected}'")


class StatementError(FlareError):
    """
    Raised when an administrative statement or catalog query fails.

    Always fatal to the enclosing operation: pgflare does not retry
    statements and does not undo earlier steps.

    Attributes:
        statement: The SQL text that failed.
        server: Host and port of the server the statement ran on.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.FATAL,
        error_code="STATEMENT_FAILED",
        category="statement",
        suggested_action="Inspect the server log; earlier steps were not rolled back",
    )

    def __init__(
        self,
        message: str,
        *,
        statement: str,
        database: str | None = None,
        server: str | None = None,
    ) -> None:
        self.statement = statement
        self.server = server
        super().__init__(message, database=database)


class ExternalCommandError(FlareError):
    """
    Raised when psql, pg_dump or pg_dumpall exits with a non-zero status.

    Attributes:
        command: Name of the executable.
        returncode: Exit status of the process.
        stderr: Captured standard error.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.RECOVERABLE,
        error_code="EXTERNAL_COMMAND_FAILED",
        category="tools",
        suggested_action="Check that the PostgreSQL client tools are installed and credentials are valid",
    )

    def __init__(self, command: str, returncode: int, stderr: str) -> None:
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(f"{command}: exit status {returncode}: {stderr.strip()}")


class ReplicationHealthError(FlareError):
    """
    Base exception for failed replication preconditions.

    Raised before any mutating action of a cutover is taken; never retried
    automatically.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.FATAL,
        error_code="REPLICATION_UNHEALTHY",
        category="replication",
        suggested_action="Investigate the replication topology before retrying",
    )


class AmbiguousReplicationError(ReplicationHealthError):
    """
    Raised when a database does not have exactly one active replication channel.

    More than one channel usually means a parallel initial table sync is still
    running.

    Attributes:
        channel_count: Number of channels observed.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.FATAL,
        error_code="REPLICATION_AMBIGUOUS",
        category="replication",
        suggested_action="Wait for the initial sync to finish and check pg_replication_slots",
    )

    def __init__(
        self,
        message: str,
        *,
        channel_count: int,
        database: str | None = None,
        subscription: str | None = None,
    ) -> None:
        self.channel_count = channel_count
        super().__init__(message, database=database, subscription=subscription)


class UnstableReplicationError(ReplicationHealthError):
    """
    Raised when the replication channel started too recently to be trusted.

    A freshly (re)started walsender is evidence of a crash/retry loop on the
    subscriber.

    Attributes:
        age: How long the channel has been running.
        min_stable_duration: The required minimum.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.WARNING,
        recoverability=ErrorRecoverability.TRANSIENT,
        error_code="REPLICATION_UNSTABLE",
        category="replication",
        suggested_action="Check the subscriber error log, then retry once the channel is stable",
    )

    def __init__(
        self,
        *,
        age: timedelta,
        min_stable_duration: timedelta,
        subscription: str | None = None,
    ) -> None:
        self.age = age
        self.min_stable_duration = min_stable_duration
        super().__init__(
            f"replication doesn't seem to be stable because it just started {age} ago "
            f"(required: {min_stable_duration})",
            subscription=subscription,
        )


class ReplicationChannelNotFoundError(ReplicationHealthError):
    """Raised when no replication is running for the subscription."""

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.RECOVERABLE,
        error_code="REPLICATION_NOT_FOUND",
        category="replication",
        suggested_action="Check that the subscription exists and is enabled",
    )


class SessionDrainError(FlareError):
    """
    Raised when sessions never became quiescent within the configured rounds.

    Attributes:
        rounds: Number of terminate rounds executed.
        terminated: Total sessions terminated.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.RECOVERABLE,
        error_code="SESSIONS_NOT_QUIESCENT",
        category="cutover",
        suggested_action="Find the client that keeps reconnecting; the gate is still closed",
    )

    def __init__(self, message: str, *, rounds: int, terminated: int, database: str) -> None:
        self.rounds = rounds
        self.terminated = terminated
        super().__init__(message, database=database)


class DrainProofTimeoutError(FlareError):
    """
    Raised when the drain proof did not succeed within the configured polls.

    Attributes:
        strategy: Drain proof strategy value.
        polls: Number of polls executed.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.RECOVERABLE,
        error_code="DRAIN_NOT_PROVEN",
        category="cutover",
        suggested_action="Check the replication lag; the gate is still closed",
    )

    def __init__(self, message: str, *, strategy: str, polls: int) -> None:
        self.strategy = strategy
        self.polls = polls
        super().__init__(message)


class CutoverCancelledError(Exception):
    """
    Raised inside polling loops when the cancellation event is set.

    The coordinator turns this into a CANCELLED result; no compensating
    action is performed.
    """

    def __init__(self, where: str) -> None:
        self.where = where
        super().__init__(f"cancelled during {where}")


__all__ = [
    "ErrorSeverity",
    "ErrorRecoverability",
    "ErrorClassification",
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
