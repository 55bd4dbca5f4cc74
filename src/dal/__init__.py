"""Data Abstraction Layer (DAL) for bounded remote queries and derived metadata.

This package exposes the query session protocols, the bounded ``QueryClient``
driver, and the derived-metadata caches built on top of it.
"""

from dal.query_client import QueryClient
from dal.query_session import Column, QueryRunner, QueryRunnerFactory, QuerySession, ResultPage
from dal.util.timeouts import QueryOutcome, QueryTimeoutError

__all__ = [
    "Column",
    "QueryClient",
    "QueryOutcome",
    "QueryRunner",
    "QueryRunnerFactory",
    "QuerySession",
    "QueryTimeoutError",
    "ResultPage",
]
