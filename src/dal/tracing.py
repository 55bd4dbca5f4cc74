import hashlib
from contextlib import contextmanager
from typing import Iterator, Optional

from common.observability.metrics import is_metrics_enabled


def trace_enabled() -> bool:
    """Return True when DAL query tracing is enabled or OTEL exporter defaults apply."""
    return is_metrics_enabled("DAL_TRACE_QUERIES")


def _hash_sql(sql: str) -> str:
    return hashlib.sha256(sql.encode("utf-8")).hexdigest()


class _NoopSpan:
    def set_attribute(self, key, value) -> None:
        _ = key, value


@contextmanager
def trace_query_span(name: str, provider: str, sql: Optional[str]) -> Iterator[object]:
    """Trace a blocking DAL query operation with OTEL when enabled.

    Yields the active span (or a no-op stand-in) so callers can attach
    attributes; ``db.status`` is set to ``ok`` or ``error`` on exit.
    """
    if not trace_enabled():
        yield _NoopSpan()
        return

    from opentelemetry import trace

    tracer = trace.get_tracer("dal")
    with tracer.start_as_current_span(name) as span:
        span.set_attribute("db.provider", provider)
        span.set_attribute("db.execution_model", "session")
        if sql:
            span.set_attribute("db.statement_hash", _hash_sql(sql))
        try:
            yield span
        except BaseException:
            span.set_attribute("db.status", "error")
            raise
        span.set_attribute("db.status", "ok")
