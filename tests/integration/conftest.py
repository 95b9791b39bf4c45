"""Integration test fixtures for pgcluster-client.

These tests require a running PostgreSQL server. Point them at one with:
    PGCLUSTER_TEST_DSN="host=localhost user=postgres dbname=postgres" pytest tests/integration
"""

import os
import uuid
from collections.abc import AsyncIterator

import pytest

from pgclusterclient import PgConnection

PGCLUSTER_TEST_DSN = os.environ.get("PGCLUSTER_TEST_DSN")


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "integration: marks tests as requiring a PostgreSQL server")


@pytest.fixture
def dsn() -> str:
    """Get the test server connection string."""
    if not PGCLUSTER_TEST_DSN:
        pytest.skip("PGCLUSTER_TEST_DSN not set")
    return PGCLUSTER_TEST_DSN


@pytest.fixture
async def registry_schema(dsn: str) -> AsyncIterator[str]:
    """Create a throwaway schema holding an empty nodes table."""
    schema = f"pgcluster_test_{uuid.uuid4().hex[:8]}"
    async with PgConnection(dsn) as conn:
        await conn.execute(f"CREATE SCHEMA {schema}")
        await conn.execute(
            f"CREATE TABLE {schema}.nodes ("
            "  node_id INTEGER PRIMARY KEY,"
            "  type TEXT NOT NULL,"
            f"  upstream_node_id INTEGER REFERENCES {schema}.nodes (node_id),"
            "  node_name TEXT NOT NULL,"
            "  conninfo TEXT NOT NULL,"
            "  slot_name TEXT NULL,"
            "  priority INTEGER NOT NULL DEFAULT 100,"
            "  active BOOLEAN NOT NULL DEFAULT TRUE"
            ")"
        )
        try:
            yield schema
        finally:
            await conn.execute(f"DROP SCHEMA {schema} CASCADE")
