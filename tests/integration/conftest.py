"""
Shared pytest fixtures for integration tests.

This module provisions a PostgreSQL server with testcontainers and prepares
a scratch application database plus an unprivileged application role for
each test.

If testcontainers or Docker is not available, tests are automatically skipped.
"""

from __future__ import annotations

import asyncio
import subprocess
from collections.abc import AsyncGenerator, Generator
from typing import Any
from uuid import uuid4

import pytest
import pytest_asyncio

from pgflare.config import HostInfo, UserInfo
from pgflare.connection import connected, get_system_identifier
from pgflare.statements import quote_identifier

# ============================================================================
# Pytest Configuration
# ============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers for integration tests."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests (may require docker)"
    )
    config.addinivalue_line("markers", "postgres: marks tests that require PostgreSQL")


# ============================================================================
# Testcontainers Detection
# ============================================================================

TESTCONTAINERS_AVAILABLE = False

try:
    from testcontainers.postgres import PostgresContainer

    TESTCONTAINERS_AVAILABLE = True
except ImportError:
    PostgresContainer = None  # type: ignore[assignment, misc]


def is_docker_available() -> bool:
    """Check if Docker is available for running containers."""
    try:
        result = subprocess.run(
            ["docker", "info"],
            capture_output=True,
            timeout=5,
        )
        return result.returncode == 0
    except (subprocess.TimeoutExpired, OSError):
        return False


DOCKER_AVAILABLE = is_docker_available()


# ============================================================================
# Skip Conditions
# ============================================================================

skip_if_no_testcontainers = pytest.mark.skipif(
    not TESTCONTAINERS_AVAILABLE,
    reason="testcontainers not installed",
)

skip_if_no_docker = pytest.mark.skipif(
    not DOCKER_AVAILABLE,
    reason="Docker not available",
)

skip_if_no_postgres_infra = pytest.mark.skipif(
    not (TESTCONTAINERS_AVAILABLE and DOCKER_AVAILABLE),
    reason="PostgreSQL test infrastructure not available (need testcontainers and docker)",
)

APP_ROLE = "flare_app"
APP_PASSWORD = "flare_app_password"

CREATE_APP_ROLE = f"""
    DO $$
    BEGIN
        IF NOT EXISTS (SELECT FROM pg_roles WHERE rolname = '{APP_ROLE}') THEN
            CREATE ROLE {APP_ROLE} LOGIN PASSWORD '{APP_PASSWORD}';
        END IF;
    END
    $$
"""


# ============================================================================
# PostgreSQL Fixtures
# ============================================================================


@pytest.fixture(scope="session")
def postgres_container() -> Generator[Any, None, None]:
    """
    Provide a PostgreSQL container for the test session.

    The container is started once and shared by every integration test.
    """
    if not TESTCONTAINERS_AVAILABLE:
        pytest.skip("testcontainers not available")
    if not DOCKER_AVAILABLE:
        pytest.skip("Docker not available")

    container = PostgresContainer("postgres:15")
    container.start()
    yield container
    container.stop()


async def _read_system_identifier(user_info: UserInfo, dbname: str) -> str:
    async with connected(user_info, dbname, enable_tracing=False) as executor:
        return await get_system_identifier(executor)


@pytest.fixture(scope="session")
def superuser_info(postgres_container: Any) -> UserInfo:
    """Superuser credentials with the container's real system identifier."""
    host = postgres_container.get_container_host_ip()
    port = str(postgres_container.get_exposed_port(5432))
    unverified = UserInfo(
        user=postgres_container.username,
        password=postgres_container.password,
        host_info=HostInfo(host=host, port=port, system_identifier=""),
    )
    identifier = asyncio.run(_read_system_identifier(unverified, postgres_container.dbname))
    return UserInfo(
        user=postgres_container.username,
        password=postgres_container.password,
        host_info=HostInfo(host=host, port=port, system_identifier=identifier),
    )


@pytest.fixture
def app_user_info(superuser_info: UserInfo) -> UserInfo:
    """Credentials of the unprivileged application role."""
    return UserInfo(user=APP_ROLE, password=APP_PASSWORD, host_info=superuser_info.host_info)


@pytest.fixture
def maintenance_db(postgres_container: Any) -> str:
    """Database the tool connects to for cluster-wide statements."""
    return postgres_container.dbname


@pytest_asyncio.fixture
async def app_database(
    superuser_info: UserInfo, maintenance_db: str
) -> AsyncGenerator[str, None]:
    """
    Create a fresh application database for one test.

    CONNECT stays granted to PUBLIC, as on a freshly created database.
    The database is dropped with FORCE afterwards so leftover sessions of
    a failed test never block cleanup.
    """
    dbname = f"flare_it_{uuid4().hex[:8]}"
    async with connected(superuser_info, maintenance_db, enable_tracing=False) as executor:
        await executor.execute(CREATE_APP_ROLE, autocommit=True)
        await executor.execute(f"CREATE DATABASE {quote_identifier(dbname)}", autocommit=True)

    yield dbname

    async with connected(superuser_info, maintenance_db, enable_tracing=False) as executor:
        await executor.execute(
            f"DROP DATABASE IF EXISTS {quote_identifier(dbname)} WITH (FORCE)", autocommit=True
        )
