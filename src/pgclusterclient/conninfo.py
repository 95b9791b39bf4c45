"""Connection parameter lists built on libpq conninfo strings."""

from collections.abc import Iterator
from typing import TYPE_CHECKING, Any

import psycopg
from psycopg import pq
from psycopg.conninfo import conninfo_to_dict, make_conninfo

from pgclusterclient.exceptions import ParseError

if TYPE_CHECKING:
    from pgclusterclient.connection import PgConnection

APPLICATION_NAME_KEYWORD = "application_name"


class ParamList:
    """Ordered mapping of connection keywords to values.

    Entries are only ever added or overwritten. A keyword set to the empty
    string is kept in the list but reads back as absent.
    """

    def __init__(self) -> None:
        self._params: dict[str, str] = {}

    @classmethod
    def initialize(cls, defaults: bool = False) -> "ParamList":
        """Create a parameter list, optionally seeded with libpq's defaults."""
        params = cls()
        if defaults:
            for option in pq.Conninfo.get_defaults():
                if option.val:
                    params.set(option.keyword.decode(), option.val.decode())
        return params

    @classmethod
    def from_conninfo(
        cls, conninfo: str, *, ignore_application_name: bool = False
    ) -> "ParamList":
        """Create a parameter list from a conninfo string or URI."""
        params = cls()
        params.parse(conninfo, ignore_application_name=ignore_application_name)
        return params

    @classmethod
    def from_connection(cls, conn: "PgConnection") -> "ParamList":
        """Create a parameter list from an open connection's settings."""
        params = cls()
        params.update_from_connection(conn)
        return params

    def set(self, keyword: str, value: str) -> None:
        """Set a keyword, overwriting any existing value."""
        self._params[keyword] = value

    def get(self, keyword: str) -> str | None:
        """Get a keyword's value, or None if it is unset or empty."""
        return self._params.get(keyword) or None

    def copy_from(self, source: "ParamList") -> None:
        """Merge every non-empty entry of another list into this one."""
        for keyword, value in source.items():
            if value:
                self.set(keyword, value)

    def parse(self, conninfo: str, *, ignore_application_name: bool = False) -> None:
        """Merge the parameters of a conninfo string into this list.

        Raises:
            ParseError: if libpq rejects the string. The list is left
                unchanged in that case.
        """
        try:
            parsed = conninfo_to_dict(conninfo)
        except psycopg.ProgrammingError as e:
            raise ParseError(str(e)) from e

        for keyword, value in parsed.items():
            if value is None or value == "":
                continue
            if ignore_application_name and keyword == APPLICATION_NAME_KEYWORD:
                continue
            self.set(keyword, str(value))

    def update_from_connection(self, conn: "PgConnection") -> None:
        """Merge the effective parameters of an open connection."""
        for option in conn.pgconn.info:
            if option.val:
                self.set(option.keyword.decode(), option.val.decode())

    def to_conninfo(self) -> str:
        """Serialize to a libpq key/value connection string.

        Empty entries are left out so libpq falls back to its environment
        and compiled-in defaults for them.

        Raises:
            ParseError: If a keyword is not a libpq connection option.
        """
        try:
            return make_conninfo("", **{k: v for k, v in self._params.items() if v})
        except psycopg.ProgrammingError as e:
            raise ParseError(str(e)) from e

    def items(self) -> Iterator[tuple[str, str]]:
        return iter(list(self._params.items()))

    def keywords(self) -> list[str]:
        return list(self._params)

    def values(self) -> list[str]:
        return list(self._params.values())

    def as_dict(self) -> dict[str, str]:
        return dict(self._params)

    def __contains__(self, keyword: object) -> bool:
        return keyword in self._params

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._params))

    def __len__(self) -> int:
        return len(self._params)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ParamList):
            return NotImplemented
        return self._params == other._params

    def __repr__(self) -> str:
        return f"ParamList({mask_password(self._params)!r})"


def mask_password(params: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of the parameters safe to put in logs."""
    if "password" not in params:
        return dict(params)
    return {**params, "password": "********"}


def describe_conninfo(conninfo: str) -> str:
    """Render a conninfo string for log messages with the password masked."""
    try:
        params = conninfo_to_dict(conninfo)
    except psycopg.ProgrammingError:
        return "<malformed conninfo>"
    return " ".join(f"{k}={v}" for k, v in mask_password(params).items())
