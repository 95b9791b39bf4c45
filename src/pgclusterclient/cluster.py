"""Cluster management and primary discovery."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from pgclusterclient.connection import PgConnection
from pgclusterclient.exceptions import ClusterError, PgClusterError
from pgclusterclient.registry import NodeRecord, NodeRegistry

logger = logging.getLogger(__name__)


@dataclass
class PrimaryNode:
    """The node found to be the current primary.

    The caller owns the connection and must close it.
    """

    node_id: int
    conninfo: str
    connection: PgConnection


class ClusterClient:
    """Client for the node registry with live primary discovery."""

    def __init__(
        self,
        conn: PgConnection,
        *,
        registry: NodeRegistry | None = None,
        timeout: float = 10.0,
    ) -> None:
        """Initialize cluster client.

        Args:
            conn: Connection to any node holding the registry
            registry: Registry to read nodes from
            timeout: Per-node connection and probe timeout in seconds
        """
        self._conn = conn
        self._registry = registry or NodeRegistry()
        self._timeout = timeout

    @classmethod
    def from_conninfo(
        cls,
        conninfo: str,
        *,
        registry: NodeRegistry | None = None,
        timeout: float = 10.0,
    ) -> "ClusterClient":
        """Create cluster client from a connection string."""
        return cls(PgConnection(conninfo, timeout=timeout), registry=registry, timeout=timeout)

    @property
    def registry(self) -> NodeRegistry:
        return self._registry

    async def get_primary_connection(self) -> PrimaryNode | None:
        """Find the current primary by asking each candidate node directly.

        The registry only supplies the candidates and the order they are
        tried in; its recorded node types are not trusted. Nodes which can't
        be reached or probed are skipped.

        Returns None if no candidate is out of recovery.
        """
        await self._conn.connect()

        logger.info("retrieving node list")
        candidates = await self._registry.get_primary_candidates(self._conn)

        for node_id, conninfo in candidates:
            logger.info("checking role of cluster node '%i'", node_id)
            conn = await self._probe(node_id, conninfo)
            if conn is not None:
                logger.debug("current primary node is %i", node_id)
                return PrimaryNode(node_id=node_id, conninfo=conninfo, connection=conn)

        return None

    async def _probe(self, node_id: int, conninfo: str) -> PgConnection | None:
        """Return an open connection to the node if it is the primary."""
        conn = PgConnection(conninfo, timeout=self._timeout)
        is_primary = False

        try:
            await conn.connect()
            in_recovery = await asyncio.wait_for(conn.is_standby(), timeout=self._timeout)
            is_primary = not in_recovery
        except TimeoutError:
            logger.warning("timed out checking recovery state of node %i", node_id)
        except PgClusterError as e:
            logger.warning("unable to retrieve recovery state from node %i: %s", node_id, e)
        finally:
            if not is_primary:
                await conn.close()

        return conn if is_primary else None

    async def find_primary(self) -> int | None:
        """Find the id of the current primary without keeping a connection."""
        primary = await self.get_primary_connection()
        if primary is None:
            return None
        await primary.connection.close()
        return primary.node_id

    async def connect(self) -> PgConnection:
        """Connect to the cluster primary.

        Returns a connection to the current primary.
        """
        primary = await self.get_primary_connection()
        if primary is None:
            raise ClusterError("Could not find primary")
        return primary.connection

    async def get_primary_node_id(self) -> int | None:
        """Get the primary's id as recorded in the registry, without probing."""
        await self._conn.connect()
        return await self._registry.get_primary_node_id(self._conn)

    async def get_node(self, node_id: int) -> NodeRecord | None:
        await self._conn.connect()
        return await self._registry.get_node_record(self._conn, node_id)

    async def get_nodes(self) -> list[NodeRecord]:
        await self._conn.connect()
        return await self._registry.get_node_records(self._conn)

    async def register_node(self, record: NodeRecord, action: str | None = None) -> None:
        """Add a node to the registry."""
        await self._conn.connect()
        await self._registry.create_node_record(self._conn, record, action)

    async def update_node(self, record: NodeRecord, action: str | None = None) -> bool:
        """Update a node's registry record."""
        await self._conn.connect()
        return await self._registry.update_node_record(self._conn, record, action)

    async def close(self) -> None:
        """Close the registry connection."""
        await self._conn.close()

    async def __aenter__(self) -> "ClusterClient":
        await self._conn.connect()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()
