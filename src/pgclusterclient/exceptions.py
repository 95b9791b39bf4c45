"""Exceptions for pgcluster client."""


class PgClusterError(Exception):
    """Base exception for pgcluster client errors."""

    pass


class ConnectionError(PgClusterError):
    """Error establishing or maintaining connection."""

    pass


class ParseError(PgClusterError):
    """Malformed connection string."""

    pass


class ClusterError(PgClusterError):
    """Cluster-related error (primary not found, etc)."""

    pass


class QueryError(PgClusterError):
    """Statement executed but the server reported a failure."""

    message: str
    sqlstate: str | None

    def __init__(self, message: str, sqlstate: str | None = None) -> None:
        self.message = message
        self.sqlstate = sqlstate
        if sqlstate:
            super().__init__(f"[{sqlstate}] {message}")
        else:
            super().__init__(message)
