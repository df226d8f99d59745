"""
Unit tests for PostgreSQLProbeRecordRepository.

Tests cover:
- Table creation
- Writing and looking up records by (system_identifier, token)
- Deleting the records of one system identifier
"""

import pytest

from pgflare import statements
from pgflare.models import ProbeRecord
from pgflare.repositories import PostgreSQLProbeRecordRepository, ProbeRecordRepository


@pytest.fixture
def repo(mock_executor):
    return PostgreSQLProbeRecordRepository(mock_executor)


@pytest.fixture
def record():
    return ProbeRecord(system_identifier="12345", token="abc")


class TestPostgreSQLProbeRecordRepository:
    def test_protocol(self, repo):
        assert isinstance(repo, ProbeRecordRepository)

    @pytest.mark.asyncio
    async def test_create_table(self, repo, mock_executor):
        await repo.create_table()
        mock_executor.execute.assert_awaited_once_with(statements.CREATE_PROBE_TABLE)

    @pytest.mark.asyncio
    async def test_write(self, repo, mock_executor, record):
        await repo.write(record)
        mock_executor.execute.assert_awaited_once_with(
            statements.INSERT_PROBE_RECORD, {"system_identifier": "12345", "token": "abc"}
        )

    @pytest.mark.asyncio
    async def test_exists_when_found(self, repo, mock_executor, make_row, record):
        mock_executor.fetch_one.return_value = make_row(token="abc")
        assert await repo.exists(record) is True
        mock_executor.fetch_one.assert_awaited_once_with(
            statements.SELECT_PROBE_RECORD, {"system_identifier": "12345", "token": "abc"}
        )

    @pytest.mark.asyncio
    async def test_exists_when_absent(self, repo, mock_executor, record):
        mock_executor.fetch_one.return_value = None
        assert await repo.exists(record) is False

    @pytest.mark.asyncio
    async def test_delete_all(self, repo, mock_executor):
        mock_executor.execute.return_value = 4
        assert await repo.delete_all("12345") == 4
        mock_executor.execute.assert_awaited_once_with(
            statements.DELETE_PROBE_RECORDS, {"system_identifier": "12345"}
        )
