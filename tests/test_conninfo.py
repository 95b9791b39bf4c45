"""Tests for connection parameter lists."""

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
from psycopg.conninfo import conninfo_to_dict

from pgclusterclient.conninfo import ParamList, describe_conninfo
from pgclusterclient.exceptions import ParseError


def option(keyword: str, val: str | None) -> SimpleNamespace:
    return SimpleNamespace(keyword=keyword.encode(), val=val.encode() if val is not None else None)


class TestParamList:
    def test_empty(self) -> None:
        params = ParamList.initialize()
        assert len(params) == 0
        assert params.get("host") is None

    def test_initialize_with_defaults(self) -> None:
        defaults = [
            option("host", "/tmp"),
            option("port", "5432"),
            option("user", ""),
            option("sslmode", None),
        ]

        with patch("pgclusterclient.conninfo.pq") as mock_pq:
            mock_pq.Conninfo.get_defaults.return_value = defaults
            params = ParamList.initialize(defaults=True)

        assert params.as_dict() == {"host": "/tmp", "port": "5432"}

    def test_set_overwrites(self) -> None:
        params = ParamList()
        params.set("host", "db1")
        params.set("host", "db2")

        assert params.get("host") == "db2"
        assert params.keywords() == ["host"]

    def test_set_keeps_insertion_order(self) -> None:
        params = ParamList()
        params.set("host", "db1")
        params.set("port", "5432")
        params.set("host", "db2")

        assert list(params) == ["host", "port"]

    def test_empty_value_reads_as_absent(self) -> None:
        params = ParamList()
        params.set("password", "")

        assert params.get("password") is None
        assert "password" in params
        assert params.get("missing") is None

    def test_set_many_keywords(self) -> None:
        params = ParamList()
        for i in range(200):
            params.set(f"option_{i}", str(i))

        assert len(params) == 200
        assert params.get("option_199") == "199"

    def test_copy_from_merges_non_empty(self) -> None:
        dest = ParamList()
        dest.set("host", "db1")
        dest.set("dbname", "repmgr")

        source = ParamList()
        source.set("host", "db2")
        source.set("user", "")
        source.set("port", "5433")

        dest.copy_from(source)

        assert dest.as_dict() == {"host": "db2", "dbname": "repmgr", "port": "5433"}

    def test_parse(self) -> None:
        params = ParamList.from_conninfo("host=db1 port=5433 user=repmgr application_name=tool")

        assert params.get("host") == "db1"
        assert params.get("port") == "5433"
        assert params.get("user") == "repmgr"
        assert params.get("application_name") == "tool"

    def test_parse_uri(self) -> None:
        params = ParamList.from_conninfo("postgresql://repmgr@db1:5433/repmgr")

        assert params.get("host") == "db1"
        assert params.get("port") == "5433"
        assert params.get("dbname") == "repmgr"

    def test_parse_ignore_application_name(self) -> None:
        params = ParamList.from_conninfo(
            "host=db1 application_name=tool", ignore_application_name=True
        )

        assert "application_name" not in params
        assert params.get("host") == "db1"

    def test_parse_merges_into_existing(self) -> None:
        params = ParamList()
        params.set("user", "postgres")
        params.set("host", "old")

        params.parse("host=new port=5433")

        assert params.as_dict() == {"user": "postgres", "host": "new", "port": "5433"}

    def test_parse_error(self) -> None:
        params = ParamList()
        params.set("host", "db1")

        with pytest.raises(ParseError, match='missing "="'):
            params.parse("host=db2 port")

        assert params.as_dict() == {"host": "db1"}

    def test_round_trip(self) -> None:
        conninfo = "host=db1 port=5433 user=repmgr dbname=repmgr password='s3cret word'"

        params = ParamList.from_conninfo(conninfo)

        assert conninfo_to_dict(params.to_conninfo()) == conninfo_to_dict(conninfo)

    def test_to_conninfo_omits_empty_values(self) -> None:
        params = ParamList.from_conninfo("host=db1 dbname=repmgr")
        params.set("password", "")

        assert conninfo_to_dict(params.to_conninfo()) == {"host": "db1", "dbname": "repmgr"}

    def test_to_conninfo_unknown_keyword(self) -> None:
        params = ParamList()
        params.set("host", "db1")
        params.set("hots", "typo")

        with pytest.raises(ParseError, match="hots"):
            params.to_conninfo()

    def test_from_connection(self) -> None:
        conn = MagicMock()
        conn.pgconn.info = [
            option("host", "db1"),
            option("port", "5432"),
            option("sslcert", ""),
            option("sslkey", None),
        ]

        params = ParamList.from_connection(conn)

        assert params.as_dict() == {"host": "db1", "port": "5432"}

    def test_equality(self) -> None:
        assert ParamList.from_conninfo("host=db1 port=5432") == ParamList.from_conninfo(
            "port=5432 host=db1"
        )

    def test_repr_masks_password(self) -> None:
        params = ParamList.from_conninfo("host=db1 password=secret")
        assert "secret" not in repr(params)


class TestDescribeConninfo:
    def test_masks_password(self) -> None:
        described = describe_conninfo("host=db1 password=secret")
        assert "host=db1" in described
        assert "secret" not in described

    def test_malformed(self) -> None:
        assert describe_conninfo("host") == "<malformed conninfo>"
