"""
Repositories for catalog observations and probe records.

Each repository is a Protocol plus a PostgreSQL implementation, so the
cutover components can be exercised against in-memory fakes.
"""

from pgflare.repositories.catalog import CatalogRepository, PostgreSQLCatalogRepository
from pgflare.repositories.probe import PostgreSQLProbeRecordRepository, ProbeRecordRepository

__all__ = [
    "CatalogRepository",
    "PostgreSQLCatalogRepository",
    "ProbeRecordRepository",
    "PostgreSQLProbeRecordRepository",
]
