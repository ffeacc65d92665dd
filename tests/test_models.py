import re

import psycopg2
import pytest

from config             import DEFAULT_PARALLELS
from models             import ConnectionInfo
from models.dump_models import (
    DumpFailure,
    DumpJob,
    DumpMetadata,
    DumpResult,
    ScriptFragment,
    TableScript,
)


def test_connection_info_dsn_omits_empty_sslmode():
    info = ConnectionInfo(host="h", port=6543, user="u", password="p", dbname="d")
    assert info.dsn == {"host": "h", "port": 6543, "user": "u", "password": "p", "dbname": "d"}
    assert ConnectionInfo(sslmode="require").dsn["sslmode"] == "require"


def test_connection_info_display_name_hides_password():
    info = ConnectionInfo(host="db", user="admin", password="secret", dbname="shop")
    assert info.display_name == "admin@db:5432/shop"


def test_from_dict_applies_defaults():
    info = ConnectionInfo.from_dict({"host": "", "port": "5433"})
    assert info.host == "localhost"
    assert info.port == 5433
    assert info.user == "postgres"


def test_from_connection_string_uri():
    info = ConnectionInfo.from_connection_string("postgresql://pg:pw@db.local:5433/shop")
    assert (info.user, info.password, info.host, info.port, info.dbname) == (
        "pg", "pw", "db.local", 5433, "shop",
    )


def test_from_connection_string_keeps_defaults_for_missing_keys():
    info = ConnectionInfo.from_connection_string("dbname=shop", {"host": "cli-host"})
    assert info.host == "cli-host"
    assert info.dbname == "shop"


def test_from_connection_string_rejects_garbage():
    with pytest.raises(psycopg2.ProgrammingError):
        ConnectionInfo.from_connection_string("this is = not valid = dsn")


@pytest.mark.parametrize("parallels", [0, -1])
def test_job_normalizes_non_positive_parallels(parallels):
    assert DumpJob(connection=ConnectionInfo(), parallels=parallels).parallels == DEFAULT_PARALLELS


def test_metadata_create():
    job      = DumpJob(connection=ConnectionInfo(), parallels=8, dump_version="9.9")
    metadata = DumpMetadata.create(job, "16.1")
    assert metadata.threads_number == 8
    assert metadata.dump_version == "9.9"
    assert metadata.server_version == "16.1"
    assert re.match(r"^\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2} [+-]\d{4}", metadata.complete_time)


def test_table_script_render_skips_empty_fragments():
    script = TableScript(
        table="t",
        fragments=[
            ScriptFragment("create", "CREATE TABLE public.t (\n);\n"),
            ScriptFragment("sequences", ""),
            ScriptFragment("indexes", "CREATE INDEX i ON public.t (a);\n"),
        ],
    )
    assert script.render() == (
        "-- Table: public.t\n"
        "CREATE TABLE public.t (\n);\n\n"
        "CREATE INDEX i ON public.t (a);\n\n"
    )


def test_dump_result_summary_counts_table_failures_only():
    result = DumpResult(
        tables         = ["a", "b"],
        written_tables = ["a"],
        failures       = [
            DumpFailure("b", "indexes", RuntimeError("x")),
            DumpFailure("views", "views", RuntimeError("y")),
        ],
        elapsed_sec    = 2.0,
    )
    assert not result.ok
    assert result.summary == "테이블 2개 (성공 1 / 실패 1) | 소요시간 2.0s"
    assert str(result.failures[0]) == "b [indexes]: x"
