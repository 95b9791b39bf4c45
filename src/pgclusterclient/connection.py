"""High-level connection interface for PostgreSQL nodes."""

import asyncio
import logging
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from typing import Any

import psycopg
from psycopg.conninfo import make_conninfo
from psycopg.pq.abc import PGconn
from psycopg.rows import dict_row
from psycopg.sql import SQL, Composable, Identifier, Literal

from pgclusterclient.conninfo import ParamList, describe_conninfo
from pgclusterclient.exceptions import ConnectionError, QueryError

logger = logging.getLogger(__name__)

# Reported to the server so sessions can be attributed to this client.
APPLICATION_NAME = "pgclusterclient"

Query = str | Composable


class PgConnection:
    """High-level async connection to a PostgreSQL node."""

    def __init__(
        self,
        conninfo: str,
        *,
        timeout: float = 10.0,
    ) -> None:
        """Initialize connection (does not connect yet).

        Args:
            conninfo: libpq connection string or URI
            timeout: Connection timeout in seconds
        """
        self._conninfo = conninfo
        self._timeout = timeout
        self._conn: psycopg.AsyncConnection[Any] | None = None
        self._in_transaction = False

    @classmethod
    def from_params(cls, params: ParamList, *, timeout: float = 10.0) -> "PgConnection":
        """Create a connection from a parameter list."""
        return cls(params.to_conninfo(), timeout=timeout)

    @classmethod
    def as_user(cls, conninfo: str, user: str, *, timeout: float = 10.0) -> "PgConnection":
        """Create a connection using conninfo's parameters but a different user.

        Any application_name in conninfo is dropped.
        """
        params = ParamList.from_conninfo(conninfo, ignore_application_name=True)
        params.set("user", user)
        return cls.from_params(params, timeout=timeout)

    @property
    def conninfo(self) -> str:
        """Get the connection string as given."""
        return self._conninfo

    @property
    def is_connected(self) -> bool:
        """Check if connected."""
        return self._conn is not None

    @property
    def pgconn(self) -> PGconn:
        """Get the underlying libpq connection."""
        return self._ensure_connected().pgconn

    async def connect(self) -> None:
        """Establish connection to the server.

        Unless this is a replication connection, synchronous_commit is set
        to 'local' so management writes never wait on standbys.
        """
        if self._conn is not None:
            return

        params = ParamList.from_conninfo(self._conninfo)
        if "fallback_application_name" in params:
            conninfo = self._conninfo
        else:
            conninfo = make_conninfo(self._conninfo, fallback_application_name=APPLICATION_NAME)

        logger.debug("connecting to: '%s'", describe_conninfo(conninfo))

        try:
            conn = await asyncio.wait_for(
                psycopg.AsyncConnection.connect(conninfo, autocommit=True),
                timeout=self._timeout,
            )
        except TimeoutError as e:
            host = params.get("host") or "server"
            raise ConnectionError(f"Connection to {host} timed out") from e
        except psycopg.Error as e:
            raise ConnectionError(f"connection to database failed: {e}") from e

        self._conn = conn

        if "replication" in params:
            return

        try:
            await self.set_config("synchronous_commit", "local")
        except QueryError as e:
            await self.close()
            raise ConnectionError(f"unable to set synchronous_commit: {e.message}") from e

    async def close(self) -> None:
        """Close the connection."""
        if self._conn is not None:
            conn = self._conn
            self._conn = None
            self._in_transaction = False
            await conn.close()

    async def __aenter__(self) -> "PgConnection":
        await self.connect()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    def _ensure_connected(self) -> psycopg.AsyncConnection[Any]:
        if self._conn is None:
            raise ConnectionError("Not connected")
        return self._conn

    async def execute(self, sql: Query, params: Sequence[Any] | None = None) -> int:
        """Execute a SQL statement.

        Returns the number of rows affected.
        """
        conn = self._ensure_connected()
        try:
            async with conn.cursor() as cur:
                await cur.execute(sql, params)
                return cur.rowcount
        except psycopg.Error as e:
            raise _query_error(e) from e

    async def fetch(self, sql: Query, params: Sequence[Any] | None = None) -> list[dict[str, Any]]:
        """Execute a query and return results as list of dicts."""
        conn = self._ensure_connected()
        try:
            async with conn.cursor(row_factory=dict_row) as cur:
                await cur.execute(sql, params)
                return await cur.fetchall()
        except psycopg.Error as e:
            raise _query_error(e) from e

    async def fetchall(
        self, sql: Query, params: Sequence[Any] | None = None
    ) -> list[tuple[Any, ...]]:
        """Execute a query and return results as list of tuples."""
        conn = self._ensure_connected()
        try:
            async with conn.cursor() as cur:
                await cur.execute(sql, params)
                return await cur.fetchall()
        except psycopg.Error as e:
            raise _query_error(e) from e

    async def fetchone(
        self, sql: Query, params: Sequence[Any] | None = None
    ) -> dict[str, Any] | None:
        """Execute a query and return the first result."""
        results = await self.fetch(sql, params)
        return results[0] if results else None

    async def fetchval(self, sql: Query, params: Sequence[Any] | None = None) -> Any:
        """Execute a query and return the first column of the first row."""
        rows = await self.fetchall(sql, params)
        if rows and rows[0]:
            return rows[0][0]
        return None

    async def begin(self) -> None:
        logger.debug("begin_transaction()")
        await self.execute("BEGIN")

    async def commit(self) -> None:
        logger.debug("commit_transaction()")
        await self.execute("COMMIT")

    async def rollback(self) -> None:
        logger.debug("rollback_transaction()")
        await self.execute("ROLLBACK")

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """Context manager for transactions."""
        if self._in_transaction:
            # Nested transaction - just yield
            yield
            return

        await self.begin()
        self._in_transaction = True

        try:
            yield
            await self.commit()
        except Exception:
            await self.rollback()
            raise
        finally:
            self._in_transaction = False

    async def set_config(self, name: str, value: str) -> None:
        """Set a session-level configuration parameter."""
        query = SQL("SET {} TO {}").format(Identifier(name), Literal(value))
        logger.debug("set_config(): %s = '%s'", name, value)
        try:
            await self.execute(query)
        except QueryError as e:
            logger.error("unable to set '%s': %s", name, e.message)
            raise

    async def set_config_bool(self, name: str, state: bool) -> None:
        """Set a boolean session-level configuration parameter."""
        query = SQL("SET {} TO {}").format(Identifier(name), SQL("TRUE" if state else "FALSE"))
        logger.debug("set_config_bool(): %s = %s", name, state)
        try:
            await self.execute(query)
        except QueryError as e:
            logger.error("unable to set '%s': %s", name, e.message)
            raise

    async def get_server_version(self) -> tuple[int, str]:
        """Return the server version as (version_num, version_string)."""
        rows = await self.fetchall(
            "SELECT pg_catalog.current_setting('server_version_num'), "
            "       pg_catalog.current_setting('server_version')"
        )
        if not rows:
            raise QueryError("unable to determine server version number")
        version_num, version = rows[0]
        return int(version_num), version

    async def is_standby(self) -> bool:
        """Ask the server whether it is currently in recovery."""
        return bool(await self.fetchval("SELECT pg_catalog.pg_is_in_recovery()"))


def _query_error(e: psycopg.Error) -> QueryError:
    message = e.diag.message_primary or str(e)
    return QueryError(message, e.sqlstate)
