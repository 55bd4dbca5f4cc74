"""Unit test environment helpers."""

import pytest


@pytest.fixture(autouse=True)
def _minimal_env(monkeypatch):
    """Keep telemetry off and cache settings at defaults unless a test opts in."""
    for name in (
        "OTEL_EXPORTER_OTLP_ENDPOINT",
        "OTEL_EXPORTER_OTLP_METRICS_ENDPOINT",
        "DAL_TRACE_QUERIES",
        "METADATA_CACHE_METRICS_ENABLED",
        "ATHENA_RESULT_PAGE_SIZE",
        "ATHENA_POLL_INTERVAL_SECONDS",
    ):
        monkeypatch.delenv(name, raising=False)
    yield
