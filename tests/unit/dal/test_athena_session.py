import sys
import types

import pytest

from dal.athena.config import AthenaConfig
from dal.athena.metadata_queries import ATHENA_METADATA_QUERIES
from dal.athena.session import (
    AthenaQueryRunnerFactory,
    AthenaQuerySession,
    QuerySessionError,
)
from dal.metadata.column_cache import ColumnCache
from dal.query_client import QueryClient
from tests._support.fake_sessions import InlineExecutor

CONFIG = AthenaConfig(
    region="us-east-1",
    workgroup="primary",
    output_location="s3://bucket/out/",
    database="db",
    poll_interval_seconds=0.0,
    page_size=2,
)


def _result_page(column_names, rows, next_token=None, column_type="varchar"):
    response = {
        "ResultSet": {
            "ResultSetMetadata": {
                "ColumnInfo": [{"Name": name, "Type": column_type} for name in column_names]
            },
            "Rows": [{"Data": [{"VarCharValue": value} for value in row]} for row in rows],
        }
    }
    if next_token:
        response["NextToken"] = next_token
    return response


class _FakeAthenaClient:
    """Simulates an Athena client with scripted states and result pages."""

    def __init__(self, states, pages=None, reason=None):
        self._states = list(states)
        self._pages = list(pages or [])
        self._reason = reason
        self.started = []
        self.stopped = []
        self.result_calls = []

    def start_query_execution(
        self, QueryString, QueryExecutionContext, WorkGroup, ResultConfiguration
    ):
        self.started.append((QueryString, QueryExecutionContext["Database"], WorkGroup))
        return {"QueryExecutionId": f"exec-{len(self.started)}"}

    def get_query_execution(self, QueryExecutionId):
        _ = QueryExecutionId
        state = self._states.pop(0) if len(self._states) > 1 else self._states[0]
        status = {"State": state}
        if self._reason:
            status["StateChangeReason"] = self._reason
        return {"QueryExecution": {"Status": status}}

    def get_query_results(self, QueryExecutionId, MaxResults, NextToken=None):
        self.result_calls.append((QueryExecutionId, MaxResults, NextToken))
        return self._pages.pop(0)

    def stop_query_execution(self, QueryExecutionId):
        self.stopped.append(QueryExecutionId)


def _drain(session):
    pages = []
    while session.is_valid():
        pages.append(session.current())
        session.advance()
    return pages


def test_session_polls_then_pages_through_results():
    """Queued/running polls are followed by one step per result page."""
    client = _FakeAthenaClient(
        ["RUNNING", "SUCCEEDED"],
        pages=[
            _result_page(["id"], [["id"], ["1"], ["2"]], next_token="tok-1"),
            _result_page(["id"], [["3"]]),
        ],
    )
    session = AthenaQuerySession(client, "SELECT id FROM t", CONFIG, sleep=lambda s: None)

    pages = _drain(session)

    data_rows = [row for p in pages for row in p.rows]
    assert data_rows == [("1",), ("2",), ("3",)]
    assert client.result_calls == [("exec-1", 2, None), ("exec-1", 2, "tok-1")]
    final = session.final_results()
    assert final.state == "SUCCEEDED"
    assert [c.name for c in final.columns] == ["id"]
    assert final.rows == ()


def test_session_keeps_first_row_when_it_is_not_a_header():
    """SHOW-style results without a header row keep every row."""
    client = _FakeAthenaClient(
        ["SUCCEEDED"],
        pages=[_result_page(["col_name"], [["id"], ["ds"]])],
    )
    session = AthenaQuerySession(client, "SHOW COLUMNS FROM db.t", CONFIG, sleep=lambda s: None)

    rows = [row for p in _drain(session) for row in p.rows]

    assert rows == [("id",), ("ds",)]


def test_failed_execution_raises_session_error():
    """A FAILED state surfaces the engine's reason."""
    client = _FakeAthenaClient(["FAILED"], reason="TABLE_NOT_FOUND: db.missing")
    session = AthenaQuerySession(client, "SHOW COLUMNS FROM db.missing", CONFIG)

    with pytest.raises(QuerySessionError) as exc_info:
        session.advance()

    assert exc_info.value.state == "FAILED"
    assert "TABLE_NOT_FOUND" in str(exc_info.value)
    assert session.is_valid() is False


def test_close_stops_running_execution_once():
    """Closing a still-running session stops the remote execution."""
    client = _FakeAthenaClient(["RUNNING"])
    session = AthenaQuerySession(client, "SELECT 1", CONFIG, sleep=lambda s: None)
    session.advance()

    session.close()
    session.close()

    assert client.stopped == ["exec-1"]
    with pytest.raises(RuntimeError):
        session.advance()


def test_close_after_success_does_not_stop():
    """Finished executions are not stopped on release."""
    client = _FakeAthenaClient(["SUCCEEDED"], pages=[_result_page(["a"], [["1"]])])
    session = AthenaQuerySession(client, "SELECT 1", CONFIG, sleep=lambda s: None)
    _drain(session)

    session.close()

    assert client.stopped == []


def test_query_client_times_out_running_athena_query():
    """The bounded client stops a never-finishing Athena query on timeout."""
    client = _FakeAthenaClient(["RUNNING"])
    config = AthenaConfig(
        region="us-east-1",
        workgroup="primary",
        output_location="s3://bucket/out/",
        database="db",
        poll_interval_seconds=0.005,
    )
    factory = AthenaQueryRunnerFactory(config, client=client)
    query_client = QueryClient(factory.create(), "SELECT * FROM big", 0.03, provider="athena")

    outcome = query_client.try_execute_with(lambda s: s.current())

    assert outcome.timed_out is True
    assert client.stopped == ["exec-1"]


def test_column_cache_over_athena_sessions():
    """Column metadata loads end to end through Athena sessions."""
    client = _FakeAthenaClient(
        ["SUCCEEDED"],
        pages=[
            _result_page(
                ["column", "type", "extra"],
                [["id", "bigint", ""], ["ds", "varchar", "Partition Key"]],
            )
        ],
    )
    factory = AthenaQueryRunnerFactory(CONFIG, client=client)
    cache = ColumnCache(factory, 60, 60, InlineExecutor(), provider="athena")

    columns = cache.get_columns("db", "events")

    assert [(c.name, c.type, c.is_partition) for c in columns] == [
        ("id", "bigint", False),
        ("ds", "varchar", True),
    ]
    assert client.started == [("SHOW COLUMNS FROM db.events", "db", "primary")]


def test_column_cache_reads_name_only_show_columns():
    """Athena's single-field SHOW COLUMNS output yields untyped columns."""
    client = _FakeAthenaClient(
        ["SUCCEEDED"],
        pages=[_result_page(["field"], [["id"], ["ds"]], column_type="string")],
    )
    factory = AthenaQueryRunnerFactory(CONFIG, client=client)
    cache = ColumnCache(factory, 60, 60, InlineExecutor(), provider="athena")

    columns = cache.get_columns("db", "events")

    assert [(c.name, c.type, c.is_partition) for c in columns] == [
        ("id", "", False),
        ("ds", "", False),
    ]


def test_column_cache_with_athena_queries_reports_partitions():
    """information_schema and $partitions results map onto columns and partitions."""
    client = _FakeAthenaClient(
        ["SUCCEEDED"],
        pages=[
            _result_page(
                ["column_name", "data_type", "extra"],
                [
                    ["column_name", "data_type", "extra"],
                    ["id", "bigint", ""],
                    ["dt", "varchar", "Partition Key"],
                    ["region", "varchar", "Partition Key"],
                ],
            ),
            _result_page(
                ["dt", "region"],
                [
                    ["dt", "region"],
                    ["2021-01-01", "us"],
                    ["2021-01-02", "eu"],
                ],
            ),
        ],
    )
    factory = AthenaQueryRunnerFactory(CONFIG, client=client)
    cache = ColumnCache(
        factory,
        60,
        60,
        InlineExecutor(),
        provider="athena",
        query_templates=ATHENA_METADATA_QUERIES,
    )

    columns = cache.get_columns("db", "events")
    partitions = cache.get_partitions("db", "events")

    assert [(c.name, c.type, c.is_partition) for c in columns] == [
        ("id", "bigint", False),
        ("dt", "varchar", True),
        ("region", "varchar", True),
    ]
    assert [(p.name, p.values) for p in partitions] == [
        ("dt", ["2021-01-01", "2021-01-02"]),
        ("region", ["us", "eu"]),
    ]
    columns_sql, partitions_sql = [sql for sql, _, _ in client.started]
    assert "FROM information_schema.columns" in columns_sql
    assert "table_schema = 'db' AND table_name = 'events'" in columns_sql
    assert partitions_sql == 'SELECT * FROM "db"."events$partitions"'


def test_factory_builds_boto3_client_lazily(monkeypatch):
    """The boto3 client is created once, on first use."""
    created = []

    def fake_client(service, region_name=None):
        created.append((service, region_name))
        return _FakeAthenaClient(["SUCCEEDED"])

    monkeypatch.setitem(sys.modules, "boto3", types.SimpleNamespace(client=fake_client))
    factory = AthenaQueryRunnerFactory(CONFIG)

    assert created == []
    factory.create()
    factory.create()
    assert created == [("athena", "us-east-1")]
