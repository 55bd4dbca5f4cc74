"""Derived-metadata caches for table columns and partitions.

Both caches are keyed by ``database.table`` and filled by introspection
queries (``SHOW COLUMNS`` / ``SHOW PARTITIONS``) run through ``QueryClient``
on a background executor. An introspection query that times out is logged and
cached as an empty list so a single slow table cannot fail a listing; any other
failure surfaces to the caller as ``CacheComputationError``.
"""

import asyncio
import logging
from concurrent.futures import Executor
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from common.observability.metrics import CacheEvent, metadata_cache_metrics
from dal.metadata.background_loader import BackgroundCacheLoader
from dal.metadata.loading_cache import LoadingCache
from dal.metadata.records import (
    PARTITION_KEY_MARKER,
    HiveColumn,
    HivePartition,
    fqn,
    split_fqn,
)
from dal.query_client import QueryClient
from dal.query_session import Column, QueryRunnerFactory, QuerySession, ResultPage
from dal.util.timeouts import METADATA_QUERY_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)


class MetadataKind(str, Enum):
    """Kinds of derived metadata, each with its own introspection query."""

    COLUMNS = "columns"
    PARTITIONS = "partitions"

    def query_for(
        self, fq_table_name: str, templates: Optional[Mapping["MetadataKind", str]] = None
    ) -> str:
        """Return the introspection query for a fully-qualified table name.

        Templates may reference ``{fqn}``, ``{database}`` and ``{table}``.
        """
        database_name, table_name = split_fqn(fq_table_name)
        template = (templates or DEFAULT_QUERY_TEMPLATES)[self]
        return template.format(fqn=fq_table_name, database=database_name, table=table_name)


DEFAULT_QUERY_TEMPLATES: Mapping[MetadataKind, str] = {
    MetadataKind.COLUMNS: "SHOW COLUMNS FROM {fqn}",
    MetadataKind.PARTITIONS: "SHOW PARTITIONS FROM {fqn}",
}


def columns_from_page(page: ResultPage, fq_table_name: str = "") -> List[HiveColumn]:
    """Interpret ``SHOW COLUMNS`` rows positionally as name, type, extra.

    Engines that list names only (Athena's single ``field`` column) yield an
    empty type. ``SHOW COLUMNS`` does not report nullability, so every column
    is recorded as not nullable.
    """
    records = []
    for row in page.rows:
        column_type = str(row[1]) if len(row) > 1 and row[1] is not None else ""
        column = Column(name=str(row[0]), type=column_type)
        is_partition = len(row) > 2 and row[2] == PARTITION_KEY_MARKER
        records.append(
            HiveColumn.from_column(
                column, is_nullable=False, is_partition=is_partition, table=fq_table_name
            )
        )
    return records


class PartitionPivot:
    """Accumulates ``SHOW PARTITIONS`` pages into one value list per column."""

    def __init__(self) -> None:
        """Start with no observed columns."""
        self._values: Dict[Column, List[Any]] = {}

    def add_page(self, page: ResultPage) -> None:
        """Append every row's values to their column, in row order."""
        if not page.has_data:
            return
        for column in page.columns:
            self._values.setdefault(column, [])
        for row in page.rows:
            for column, value in zip(page.columns, row):
                self._values[column].append(value)

    def records(self) -> List[HivePartition]:
        """Return one partition record per observed column."""
        return [
            HivePartition.from_column(column, values) for column, values in self._values.items()
        ]


def _invalidation_scope(
    database_name: Optional[str], table_name: Optional[str]
) -> Tuple[str, Callable[[str], bool]]:
    if database_name is None:
        return "global", lambda key: True
    if table_name is None:
        prefix = f"{database_name}."
        return "database", lambda key: key.startswith(prefix)
    target = fqn(database_name, table_name)
    return "table", lambda key: key == target


class ColumnCache:
    """Expire-after-write caches of column and partition metadata per table."""

    def __init__(
        self,
        query_runner_factory: QueryRunnerFactory,
        column_cache_ttl_seconds: float,
        partition_cache_ttl_seconds: float,
        executor: Executor,
        *,
        metadata_query_timeout_seconds: float = METADATA_QUERY_TIMEOUT_SECONDS,
        provider: str = "unknown",
        query_templates: Optional[Mapping[MetadataKind, str]] = None,
        owns_executor: bool = False,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        """Wire both caches to a shared executor and runner factory.

        ``query_templates`` replaces the ``SHOW COLUMNS`` / ``SHOW PARTITIONS``
        introspection queries for engines that answer them in another shape.
        """
        if query_runner_factory is None:
            raise ValueError("query_runner_factory was None!")
        if executor is None:
            raise ValueError("executor was None!")

        self._query_runner_factory = query_runner_factory
        self._metadata_query_timeout_seconds = metadata_query_timeout_seconds
        self._provider = provider
        self._query_templates = query_templates
        self._executor = executor
        self._owns_executor = owns_executor

        self._column_cache: LoadingCache[str, List[HiveColumn]] = LoadingCache(
            BackgroundCacheLoader(self._load_columns, executor),
            column_cache_ttl_seconds,
            name=MetadataKind.COLUMNS.value,
            clock=clock,
        )
        self._partition_cache: LoadingCache[str, List[HivePartition]] = LoadingCache(
            BackgroundCacheLoader(self._load_partitions, executor),
            partition_cache_ttl_seconds,
            name=MetadataKind.PARTITIONS.value,
            clock=clock,
        )

    def get_columns(self, database_name: str, table_name: str) -> List[HiveColumn]:
        """Return the columns of ``database.table``, loading them on miss or expiry.

        Raises:
            CacheComputationError: The introspection query failed for a reason
                other than a timeout.
        """
        return list(self._column_cache.get(fqn(database_name, table_name)))

    def get_partitions(self, database_name: str, table_name: str) -> List[HivePartition]:
        """Return the partitions of ``database.table``, loading them on miss or expiry.

        Raises:
            CacheComputationError: The introspection query failed for a reason
                other than a timeout.
        """
        return list(self._partition_cache.get(fqn(database_name, table_name)))

    async def aget_columns(self, database_name: str, table_name: str) -> List[HiveColumn]:
        """Async wrapper around ``get_columns`` that keeps the event loop free."""
        return await asyncio.to_thread(self.get_columns, database_name, table_name)

    async def aget_partitions(self, database_name: str, table_name: str) -> List[HivePartition]:
        """Async wrapper around ``get_partitions`` that keeps the event loop free."""
        return await asyncio.to_thread(self.get_partitions, database_name, table_name)

    def invalidate(
        self, database_name: Optional[str] = None, table_name: Optional[str] = None
    ) -> int:
        """Drop cached metadata of both kinds and return the number of entries cleared.

        With no arguments every entry is dropped; with a database only, every
        table in that database; with both, that one table.
        """
        if table_name is not None and database_name is None:
            raise ValueError("table_name requires database_name.")

        scope, matches = _invalidation_scope(database_name, table_name)
        cleared = 0
        for cache in (self._column_cache, self._partition_cache):
            cleared += cache.invalidate_matching(matches)

        logger.info(
            "metadata_cache_invalidate scope=%s database=%s table=%s cleared=%s",
            scope,
            database_name,
            table_name,
            cleared,
        )
        return cleared

    def close(self) -> None:
        """Shut down the executor when this cache created it."""
        if self._owns_executor:
            self._executor.shutdown(wait=True)

    def __enter__(self) -> "ColumnCache":
        """Return self for use as a context manager."""
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        """Release the owned executor."""
        self.close()

    def _load_columns(self, fq_table_name: str) -> List[HiveColumn]:
        records: List[HiveColumn] = []

        def collect(session: QuerySession) -> None:
            records.extend(columns_from_page(session.current(), fq_table_name))

        if not self._run_introspection(MetadataKind.COLUMNS, fq_table_name, collect):
            return []
        return records

    def _load_partitions(self, fq_table_name: str) -> List[HivePartition]:
        pivot = PartitionPivot()

        def collect(session: QuerySession) -> None:
            pivot.add_page(session.current())

        if not self._run_introspection(MetadataKind.PARTITIONS, fq_table_name, collect):
            return []
        return pivot.records()

    def _run_introspection(
        self,
        kind: MetadataKind,
        fq_table_name: str,
        collect: Callable[[QuerySession], None],
    ) -> bool:
        """Drain the introspection query for ``kind``; False when it timed out."""
        client = QueryClient(
            self._query_runner_factory.create(),
            kind.query_for(fq_table_name, self._query_templates),
            self._metadata_query_timeout_seconds,
            provider=self._provider,
        )
        outcome = client.try_execute_with(collect)
        if not outcome.timed_out:
            return True

        logger.error(
            "metadata_cache_load_timeout kind=%s table=%s elapsed_ms=%s",
            kind.value,
            fq_table_name,
            outcome.elapsed_ms,
        )
        metadata_cache_metrics.record(CacheEvent.LOAD_TIMEOUT, kind.value)
        return False
