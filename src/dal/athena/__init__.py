"""Athena-backed query sessions."""

from .config import AthenaConfig
from .metadata_queries import ATHENA_METADATA_QUERIES
from .session import (
    AthenaQueryRunner,
    AthenaQueryRunnerFactory,
    AthenaQuerySession,
    QuerySessionError,
)

__all__ = [
    "ATHENA_METADATA_QUERIES",
    "AthenaConfig",
    "AthenaQueryRunner",
    "AthenaQueryRunnerFactory",
    "AthenaQuerySession",
    "QuerySessionError",
]
