"""
Integration tests for pgflare.

These tests run against a real PostgreSQL server provisioned with
testcontainers. They are skipped automatically when testcontainers or
Docker is not available.

Run integration tests:
    pytest tests/integration/ -v

Skip integration tests:
    pytest tests/ -v -m "not integration"
"""
