import logging
import threading
import time
from typing import Any, Callable, List, Optional, Tuple

from dal.athena.config import AthenaConfig
from dal.query_session import Column, ResultPage

logger = logging.getLogger(__name__)

_RUNNING_STATES = frozenset({"QUEUED", "RUNNING"})
_FAILED_STATES = frozenset({"FAILED", "CANCELLED"})


class QuerySessionError(RuntimeError):
    """Raised when the remote query execution failed or was cancelled."""

    def __init__(self, query_id: str, state: str, reason: Optional[str] = None) -> None:
        """Keep the execution id, terminal state and engine-reported reason."""
        self.query_id = query_id
        self.state = state
        self.reason = reason
        detail = f": {reason}" if reason else ""
        super().__init__(f"Athena query {query_id} {state.lower()}{detail}")


class AthenaQuerySession:
    """One Athena query execution, exposed as a page-at-a-time session.

    While the execution is queued or running, each ``advance`` waits one poll
    interval and refreshes the state. Once it succeeds, each ``advance`` fetches
    the next result page; the advance after the last page finishes the session.
    """

    def __init__(
        self,
        client,
        sql: str,
        config: AthenaConfig,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Submit ``sql`` and start in the queued state."""
        self._client = client
        self._config = config
        self._sleep = sleep
        self._query_id = _start_query_execution(client, sql, config)
        self._state = "QUEUED"
        self._columns: Optional[Tuple[Column, ...]] = None
        self._next_token: Optional[str] = None
        self._header_checked = False
        self._results_exhausted = False
        self._finished = False
        self._closed = False
        self._current = ResultPage(query_id=self._query_id, state=self._state)
        self._final: Optional[ResultPage] = None

    @property
    def query_id(self) -> str:
        """Return the Athena query execution id."""
        return self._query_id

    def is_valid(self) -> bool:
        """Return True until the execution finished, failed or the session closed."""
        return not self._finished and not self._closed

    def advance(self) -> None:
        """Poll the execution state or fetch the next result page."""
        if not self.is_valid():
            raise RuntimeError(f"Athena session {self._query_id} is no longer valid.")

        if self._state in _RUNNING_STATES:
            self._sleep(self._config.poll_interval_seconds)
            self._refresh_state()
            self._current = self._page(())
            return

        if self._results_exhausted:
            self._finished = True
            self._current = self._page(())
            self._final = self._current
            return

        self._fetch_next_page()

    def current(self) -> ResultPage:
        """Return the page produced by the latest step."""
        return self._current

    def final_results(self) -> Optional[ResultPage]:
        """Return the terminal page (columns, no rows) once finished."""
        return self._final

    def close(self) -> None:
        """Release the session, stopping the execution if it is still running."""
        if self._closed:
            return
        self._closed = True
        if self._state not in _RUNNING_STATES:
            return
        try:
            self._client.stop_query_execution(QueryExecutionId=self._query_id)
        except Exception as exc:
            logger.warning("athena_stop_failed query_id=%s error=%s", self._query_id, exc)

    def _refresh_state(self) -> None:
        response = self._client.get_query_execution(QueryExecutionId=self._query_id)
        status = response["QueryExecution"]["Status"]
        self._state = status["State"]
        if self._state in _FAILED_STATES:
            self._finished = True
            self._final = self._page(())
            raise QuerySessionError(self._query_id, self._state, status.get("StateChangeReason"))

    def _fetch_next_page(self) -> None:
        kwargs = {"QueryExecutionId": self._query_id, "MaxResults": self._config.page_size}
        if self._next_token:
            kwargs["NextToken"] = self._next_token
        response = self._client.get_query_results(**kwargs)
        result_set = response["ResultSet"]

        if self._columns is None:
            metadata = result_set["ResultSetMetadata"]["ColumnInfo"]
            self._columns = tuple(
                Column(name=col.get("Name", ""), type=col.get("Type", "")) for col in metadata
            )

        rows = _rows_from_result_set(result_set)
        if not self._header_checked:
            # SELECT results repeat the column names as the first row.
            self._header_checked = True
            names = tuple(column.name for column in self._columns)
            if rows and rows[0] == names:
                rows = rows[1:]

        self._next_token = response.get("NextToken")
        self._results_exhausted = not self._next_token
        self._current = self._page(rows)

    def _page(self, rows) -> ResultPage:
        return ResultPage.of(self._columns or (), rows, query_id=self._query_id, state=self._state)


class AthenaQueryRunner:
    """Starts Athena sessions on a shared boto3 client."""

    def __init__(self, client, config: AthenaConfig) -> None:
        """Bind the runner to a client and config."""
        self._client = client
        self._config = config

    def start_query(self, sql: str) -> AthenaQuerySession:
        """Submit ``sql`` and return its session."""
        return AthenaQuerySession(self._client, sql, self._config)


class AthenaQueryRunnerFactory:
    """Creates ``AthenaQueryRunner`` instances; safe to share across threads."""

    def __init__(self, config: Optional[AthenaConfig] = None, client=None) -> None:
        """Use the given client, or build one lazily from config."""
        self._config = config or AthenaConfig.from_env()
        self._client = client
        self._lock = threading.Lock()

    def create(self) -> AthenaQueryRunner:
        """Return a runner bound to the shared Athena client."""
        return AthenaQueryRunner(self._get_client(), self._config)

    def _get_client(self):
        with self._lock:
            if self._client is None:
                import boto3

                self._client = boto3.client("athena", region_name=self._config.region)
            return self._client


def _start_query_execution(client, sql: str, config: AthenaConfig) -> str:
    response = client.start_query_execution(
        QueryString=sql,
        QueryExecutionContext={"Database": config.database},
        WorkGroup=config.workgroup,
        ResultConfiguration={"OutputLocation": config.output_location},
    )
    return response["QueryExecutionId"]


def _rows_from_result_set(result_set: dict) -> List[Tuple[Any, ...]]:
    return [tuple(datum.get("VarCharValue") for datum in row["Data"]) for row in result_set["Rows"]]
