"""Async Python client for PostgreSQL replication cluster node registries."""

from pgclusterclient.cluster import ClusterClient, PrimaryNode
from pgclusterclient.connection import APPLICATION_NAME, PgConnection
from pgclusterclient.conninfo import ParamList
from pgclusterclient.exceptions import (
    ClusterError,
    ConnectionError,
    ParseError,
    PgClusterError,
    QueryError,
)
from pgclusterclient.registry import NodeRecord, NodeRegistry, NodeType

__all__ = [
    "connect",
    "connect_primary",
    "APPLICATION_NAME",
    "PgConnection",
    "ParamList",
    "ClusterClient",
    "PrimaryNode",
    "NodeRegistry",
    "NodeRecord",
    "NodeType",
    "PgClusterError",
    "ConnectionError",
    "ParseError",
    "QueryError",
    "ClusterError",
]

__version__ = "0.1.0"


async def connect(
    conninfo: str,
    *,
    timeout: float = 10.0,
) -> PgConnection:
    """Connect to a PostgreSQL node.

    Args:
        conninfo: libpq connection string or URI
        timeout: Connection timeout in seconds

    Returns:
        A connected PgConnection
    """
    conn = PgConnection(conninfo, timeout=timeout)
    await conn.connect()
    return conn


async def connect_primary(
    conninfo: str,
    *,
    schema: str | None = None,
    timeout: float = 10.0,
) -> PgConnection:
    """Connect to the cluster's current primary.

    Args:
        conninfo: Connection string for any node holding the node registry
        schema: Schema of the nodes table
        timeout: Per-node connection timeout in seconds

    Returns:
        A connection to the node found to be out of recovery
    """
    async with ClusterClient.from_conninfo(
        conninfo, registry=NodeRegistry(schema=schema), timeout=timeout
    ) as client:
        return await client.connect()
