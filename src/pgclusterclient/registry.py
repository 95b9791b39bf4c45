"""Node registry: persisted metadata for cluster nodes."""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from psycopg.sql import SQL, Composed, Identifier

from pgclusterclient.connection import PgConnection
from pgclusterclient.exceptions import QueryError

logger = logging.getLogger(__name__)

# Replication position of a node that has not been measured yet.
INVALID_XLOG_LOCATION = 0

DEFAULT_PRIORITY = 100

_NODE_COLUMNS = SQL(
    "node_id, type, upstream_node_id, node_name, conninfo, slot_name, priority, active"
)


class NodeType(Enum):
    """Role of a node as recorded in the registry."""

    PRIMARY = "primary"
    STANDBY = "standby"
    WITNESS = "witness"
    BDR = "bdr"
    UNKNOWN = "unknown"

    @classmethod
    def _missing_(cls, value: object) -> "NodeType":
        return cls.UNKNOWN


@dataclass
class NodeRecord:
    """A registered cluster node.

    is_ready, is_visible and xlog_location are runtime state only: they are
    never stored and are reset whenever a record is read.
    """

    node_id: int
    type: NodeType
    node_name: str
    conninfo: str
    upstream_node_id: int | None = None
    slot_name: str | None = None
    priority: int = DEFAULT_PRIORITY
    active: bool = True
    is_ready: bool = field(default=False, compare=False)
    is_visible: bool = field(default=False, compare=False)
    xlog_location: int = field(default=INVALID_XLOG_LOCATION, compare=False)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "NodeRecord":
        return cls(
            node_id=int(row["node_id"]),
            type=NodeType(row["type"]),
            node_name=row["node_name"],
            conninfo=row["conninfo"],
            upstream_node_id=row["upstream_node_id"],
            slot_name=row["slot_name"],
            priority=int(row["priority"]),
            active=bool(row["active"]),
        )


class NodeRegistry:
    """Read/write access to the nodes table."""

    def __init__(self, *, schema: str | None = None, table: str = "nodes") -> None:
        """Initialize registry.

        Args:
            schema: Schema holding the nodes table, or None for search_path
            table: Name of the nodes table
        """
        self._table = Identifier(schema, table) if schema else Identifier(table)

    def _query(self, template: str) -> Composed:
        return SQL(template).format(table=self._table, columns=_NODE_COLUMNS)

    async def get_node_record(self, conn: PgConnection, node_id: int) -> NodeRecord | None:
        """Get a node by id.

        Returns None if no such node is registered.
        """
        query = self._query("SELECT {columns} FROM {table} WHERE node_id = %s")
        logger.debug("get_node_record(): node %i", node_id)

        row = await conn.fetchone(query, [node_id])
        if row is None:
            logger.debug("get_node_record(): no record found for node %i", node_id)
            return None

        return NodeRecord.from_row(row)

    async def get_node_records(self, conn: PgConnection) -> list[NodeRecord]:
        """Get every registered node, ordered by id."""
        query = self._query("SELECT {columns} FROM {table} ORDER BY node_id")
        rows = await conn.fetch(query)
        return [NodeRecord.from_row(row) for row in rows]

    async def get_primary_node_id(self, conn: PgConnection) -> int | None:
        """Get the id of the active primary as recorded in the registry.

        This does not check whether that node is actually the primary.
        Returns None if no active primary is recorded.
        """
        query = self._query(
            "SELECT node_id FROM {table} "
            " WHERE type = %s AND active IS TRUE "
            " ORDER BY priority, node_id LIMIT 1"
        )
        node_id = await conn.fetchval(query, [NodeType.PRIMARY.value])
        if node_id is None:
            logger.debug("get_primary_node_id(): no active primary found")
            return None
        return int(node_id)

    async def get_primary_candidates(self, conn: PgConnection) -> list[tuple[int, str]]:
        """List (node_id, conninfo) of nodes which could be the primary.

        Witnesses are excluded. Active nodes come first, then the node
        recorded as primary, then by priority and node id.
        """
        query = self._query(
            "  SELECT node_id, conninfo, "
            "         CASE WHEN type = %s THEN 1 ELSE 2 END AS type_priority "
            "    FROM {table} "
            "   WHERE type != %s "
            "ORDER BY active DESC, type_priority, priority, node_id"
        )
        rows = await conn.fetchall(query, [NodeType.PRIMARY.value, NodeType.WITNESS.value])
        return [(int(row[0]), row[1]) for row in rows]

    async def create_node_record(
        self, conn: PgConnection, record: NodeRecord, action: str | None = None
    ) -> None:
        """Insert a new node record.

        A standby without an upstream node is attached to the registry's
        current primary.
        """
        query = self._query(
            "INSERT INTO {table} "
            "       (node_id, type, upstream_node_id, "
            "        node_name, conninfo, slot_name, "
            "        priority, active) "
            "VALUES (%s, %s, %s, %s, %s, %s, %s, %s)"
        )
        upstream_node_id = await self._resolve_upstream(conn, record)

        logger.debug("create_node_record(): node %i", record.node_id)
        if action is not None:
            logger.debug('create_node_record(): action is "%s"', action)

        try:
            await conn.execute(
                query,
                [
                    record.node_id,
                    record.type.value,
                    upstream_node_id,
                    record.node_name,
                    record.conninfo,
                    record.slot_name or None,
                    record.priority,
                    record.active,
                ],
            )
        except QueryError as e:
            logger.error("unable to create node record: %s", e)
            raise

    async def update_node_record(
        self, conn: PgConnection, record: NodeRecord, action: str | None = None
    ) -> bool:
        """Update an existing node record.

        Upstream resolution follows create_node_record(). Returns False if
        no record with this node id exists.
        """
        query = self._query(
            "UPDATE {table} SET "
            "       type = %s, "
            "       upstream_node_id = %s, "
            "       node_name = %s, "
            "       conninfo = %s, "
            "       slot_name = %s, "
            "       priority = %s, "
            "       active = %s "
            " WHERE node_id = %s"
        )
        upstream_node_id = await self._resolve_upstream(conn, record)

        logger.debug("update_node_record(): node %i", record.node_id)
        if action is not None:
            logger.debug('update_node_record(): action is "%s"', action)

        try:
            rows_affected = await conn.execute(
                query,
                [
                    record.type.value,
                    upstream_node_id,
                    record.node_name,
                    record.conninfo,
                    record.slot_name or None,
                    record.priority,
                    record.active,
                    record.node_id,
                ],
            )
        except QueryError as e:
            logger.error("unable to update node record: %s", e)
            raise

        return rows_affected > 0

    async def _resolve_upstream(self, conn: PgConnection, record: NodeRecord) -> int | None:
        if record.upstream_node_id is not None:
            return record.upstream_node_id

        if record.type is not NodeType.STANDBY:
            return None

        primary_node_id = await self.get_primary_node_id(conn)
        if primary_node_id is None:
            logger.warning(
                "no active primary registered, storing node %i without upstream",
                record.node_id,
            )
        return primary_node_id
