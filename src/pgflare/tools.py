"""
Wrappers around the PostgreSQL client binaries.

Roles and schemas are copied between servers with pg_dumpall, pg_dump and
psql. The binaries run with a minimal environment: PATH so they can be
found, and PGPASSWORD so no password prompt appears.
"""

from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING

from pgflare.exceptions import ExternalCommandError

if TYPE_CHECKING:
    from pgflare.config import FlareConfig, UserInfo

logger = logging.getLogger(__name__)

# Role attributes RDS refuses in ALTER ROLE.
RDS_UNSUPPORTED_ROLE_OPTIONS = (" NOSUPERUSER", " NOREPLICATION")


@dataclass(frozen=True)
class PSQLArgs:
    """
    Connection arguments shared by psql, pg_dump and pg_dumpall.

    Example:
        >>> PSQLArgs(user="postgres", host="localhost", port="5432").build_args()
        ['-U', 'postgres', '-h', 'localhost', '-p', '5432']
    """

    user: str = ""
    password: str = ""
    host: str = ""
    port: str = ""
    args: tuple[str, ...] = field(default_factory=tuple)

    def with_args(self, *args: str) -> PSQLArgs:
        return replace(self, args=tuple(args))

    def build_args(self) -> list[str]:
        built: list[str] = []
        if self.user:
            built += ["-U", self.user]
        if self.host:
            built += ["-h", self.host]
        if self.port:
            built += ["-p", self.port]
        return built + list(self.args)

    def environment(self) -> dict[str, str]:
        return {
            "PATH": os.environ.get("PATH", ""),
            "PGPASSWORD": self.password,
        }


def _run(command: str, argv: list[str], env: dict[str, str], stdin: str | None = None) -> tuple[str, str]:
    logger.debug("Running %s %s", command, " ".join(argv))
    try:
        proc = subprocess.run(
            [command, *argv],
            input=stdin,
            env=env,
            capture_output=True,
            text=True,
            check=False,
        )
    except FileNotFoundError as e:
        raise ExternalCommandError(command, 127, str(e)) from e

    if proc.returncode != 0:
        raise ExternalCommandError(command, proc.returncode, proc.stderr)

    return proc.stdout, proc.stderr


def run_psql(args: PSQLArgs, dbname: str, stdin: str) -> tuple[str, str]:
    """
    Feed ``stdin`` to psql connected to ``dbname``.

    Returns:
        Tuple of (stdout, stderr).

    Raises:
        ExternalCommandError: If psql exits with a non-zero status.
    """
    return _run("psql", [*args.build_args(), dbname], args.environment(), stdin=stdin)


def pg_dump(args: PSQLArgs, dbname: str) -> str:
    stdout, _ = _run("pg_dump", [*args.build_args(), dbname], args.environment())
    return stdout


def pg_dumpall(args: PSQLArgs) -> str:
    stdout, _ = _run("pg_dumpall", args.build_args(), args.environment())
    return stdout


def dump_roles(user_info: UserInfo, no_passwords: bool = False) -> str:
    """Dump every role of the server as SQL."""
    extra = ["--roles-only"]
    if no_passwords:
        extra.append("--no-role-passwords")
    return pg_dumpall(user_info.psql_args().with_args(*extra))


def dump_schema(user_info: UserInfo, dbname: str) -> str:
    """Dump the schema of ``dbname``, including its CREATE DATABASE."""
    return pg_dump(user_info.psql_args().with_args("--schema-only", "--create"), dbname)


def strip_role_options_for_rds(roles: str) -> str:
    """
    Remove role attributes RDS does not allow from ALTER ROLE lines.

    Other lines are passed through unchanged.
    """
    lines = []
    for line in roles.splitlines():
        if line.startswith("ALTER ROLE"):
            for option in RDS_UNSUPPORTED_ROLE_OPTIONS:
                line = line.replace(option, "")
        lines.append(line + "\n")
    return "".join(lines)


def connection_environment(config: FlareConfig) -> dict[str, str]:
    """Variables exposing the server addresses to commands run via ``flare exec``."""
    return {
        "FLARE_CONNINFO_PUBLISHER_HOST": config.publisher.host,
        "FLARE_CONNINFO_PUBLISHER_PORT": config.publisher.port,
        "FLARE_CONNINFO_SUBSCRIBER_HOST": config.subscriber.host,
        "FLARE_CONNINFO_SUBSCRIBER_PORT": config.subscriber.port,
    }


def exec_command(argv: list[str], extra_env: dict[str, str]) -> None:
    """
    Run ``argv`` with the inherited stdio and environment plus ``extra_env``.

    Raises:
        ExternalCommandError: If the command cannot be started or exits
            with a non-zero status.
    """
    if not argv:
        raise ExternalCommandError("exec", 2, "please specify a command")

    logger.debug("Executing %s", " ".join(argv))
    try:
        proc = subprocess.run(argv, env={**os.environ, **extra_env}, check=False)
    except FileNotFoundError as e:
        raise ExternalCommandError(argv[0], 127, str(e)) from e

    if proc.returncode != 0:
        raise ExternalCommandError(argv[0], proc.returncode, "")


__all__ = [
    "PSQLArgs",
    "run_psql",
    "pg_dump",
    "pg_dumpall",
    "dump_roles",
    "dump_schema",
    "strip_role_options_for_rds",
    "connection_environment",
    "exec_command",
]
