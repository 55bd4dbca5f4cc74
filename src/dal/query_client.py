"""Bounded driver for stateful query sessions.

``QueryClient`` opens one session, polls it to completion and applies a
caller-supplied projection to every intermediate step. The projection decides
what to keep from each page; the client only decides how long to keep going.

Example:
    >>> client = QueryClient(runner, "SELECT * FROM events", timeout_seconds=30)
    >>> rows = []
    >>> client.execute_with(lambda session: rows.extend(session.current().rows))
    >>> client.final_results().state
    'SUCCEEDED'
"""

import logging
import threading
import time
from contextlib import closing
from typing import Callable, Optional, TypeVar

from dal.query_session import QueryRunner, QuerySession, ResultPage
from dal.tracing import trace_query_span
from dal.util.timeouts import DEFAULT_QUERY_TIMEOUT_SECONDS, QueryOutcome, QueryTimeoutError

T = TypeVar("T")

logger = logging.getLogger(__name__)


class QueryClient:
    """Runs one query to completion or until its elapsed-time budget is spent."""

    def __init__(
        self,
        query_runner: QueryRunner,
        query: str,
        timeout_seconds: float = DEFAULT_QUERY_TIMEOUT_SECONDS,
        *,
        provider: str = "unknown",
    ) -> None:
        """Bind the client to a runner, query text and timeout budget."""
        if timeout_seconds is None or timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive.")
        self._query_runner = query_runner
        self._query = query
        self._timeout_seconds = timeout_seconds
        self._provider = provider
        self._final_results: Optional[ResultPage] = None
        self._final_lock = threading.Lock()

    @property
    def query(self) -> str:
        """Return the query text this client runs."""
        return self._query

    @property
    def timeout_seconds(self) -> float:
        """Return the elapsed-time budget in seconds."""
        return self._timeout_seconds

    def execute_with(
        self,
        function: Callable[[QuerySession], T],
        cancel_event: Optional[threading.Event] = None,
    ) -> Optional[T]:
        """Poll the session, applying ``function`` to each step.

        Returns the value of the last projection, or None when the session was
        never valid. Setting ``cancel_event`` stops polling without raising.

        Raises:
            QueryTimeoutError: The budget was exceeded before the session finished.
        """
        budget_ms = self._timeout_seconds * 1000
        result: Optional[T] = None

        with trace_query_span("dal.query.execute_with", self._provider, self._query) as span:
            with closing(self._query_runner.start_query(self._query)) as session:
                started = time.monotonic()
                while session.is_valid() and not _cancelled(cancel_event):
                    elapsed_ms = _elapsed_ms(started)
                    if elapsed_ms > budget_ms:
                        span.set_attribute("db.elapsed_ms", elapsed_ms)
                        logger.warning(
                            "query_timeout provider=%s elapsed_ms=%s timeout_seconds=%s",
                            self._provider,
                            elapsed_ms,
                            self._timeout_seconds,
                        )
                        raise QueryTimeoutError(elapsed_ms, self._timeout_seconds)

                    result = function(session)
                    session.advance()

                if session.is_valid() and _cancelled(cancel_event):
                    logger.info(
                        "query_cancelled provider=%s elapsed_ms=%s",
                        self._provider,
                        _elapsed_ms(started),
                    )
                self._set_final_results(session.final_results())
                span.set_attribute("db.elapsed_ms", _elapsed_ms(started))

        return result

    def try_execute_with(
        self,
        function: Callable[[QuerySession], T],
        cancel_event: Optional[threading.Event] = None,
    ) -> QueryOutcome[T]:
        """Run ``execute_with`` and report a timeout as a value instead of raising.

        Session failures other than timeouts still propagate.
        """
        try:
            return QueryOutcome.success(self.execute_with(function, cancel_event))
        except QueryTimeoutError as exc:
            return QueryOutcome.timeout(exc)

    def final_results(self) -> Optional[ResultPage]:
        """Return the terminal page captured by the last completed ``execute_with``."""
        with self._final_lock:
            return self._final_results

    def _set_final_results(self, page: Optional[ResultPage]) -> None:
        with self._final_lock:
            self._final_results = page


def _cancelled(cancel_event: Optional[threading.Event]) -> bool:
    return cancel_event is not None and cancel_event.is_set()


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
