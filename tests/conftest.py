"""Pytest configuration for pgcluster-client tests."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from pgclusterclient.connection import PgConnection


@pytest.fixture
def mock_cursor() -> MagicMock:
    """Create a mock psycopg AsyncCursor."""
    cursor = MagicMock()
    cursor.execute = AsyncMock()
    cursor.fetchall = AsyncMock(return_value=[])
    cursor.rowcount = 0
    return cursor


@pytest.fixture
def mock_pg_connection(mock_cursor: MagicMock) -> MagicMock:
    """Create a mock psycopg AsyncConnection whose cursors are mock_cursor."""
    conn = MagicMock()
    conn.cursor.return_value.__aenter__ = AsyncMock(return_value=mock_cursor)
    conn.cursor.return_value.__aexit__ = AsyncMock(return_value=None)
    conn.close = AsyncMock()
    return conn


@pytest.fixture
def registry_conn() -> MagicMock:
    """Create a mock PgConnection holding the node registry."""
    conn = MagicMock(spec=PgConnection)
    conn.connect = AsyncMock()
    conn.close = AsyncMock()
    conn.execute = AsyncMock(return_value=1)
    conn.fetch = AsyncMock(return_value=[])
    conn.fetchall = AsyncMock(return_value=[])
    conn.fetchone = AsyncMock(return_value=None)
    conn.fetchval = AsyncMock(return_value=None)
    return conn
