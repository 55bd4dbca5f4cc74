"""Construction helpers for the derived-metadata caches.

Nothing here is a singleton: every call builds a new cache with its own
executor, so callers decide the lifetime and tests can inject their own pool.

Environment Variables:
    METADATA_COLUMN_CACHE_TTL_SECONDS: Column cache lifetime (default: 300)
    METADATA_PARTITION_CACHE_TTL_SECONDS: Partition cache lifetime (default: 300)
    METADATA_CACHE_MAX_WORKERS: Background load pool size (default: 4)
"""

import logging
from concurrent.futures import Executor, ThreadPoolExecutor
from typing import Mapping, Optional

from dal.metadata.column_cache import ColumnCache, MetadataKind
from dal.metadata.config import MetadataCacheConfig
from dal.query_session import QueryRunnerFactory

logger = logging.getLogger(__name__)


def build_column_cache(
    query_runner_factory: QueryRunnerFactory,
    config: Optional[MetadataCacheConfig] = None,
    executor: Optional[Executor] = None,
    *,
    provider: str = "unknown",
    query_templates: Optional[Mapping[MetadataKind, str]] = None,
) -> ColumnCache:
    """Build a ``ColumnCache`` from config, creating a bounded pool when none is given.

    A pool created here is owned by the returned cache and shut down by
    ``ColumnCache.close()``.
    """
    config = config or MetadataCacheConfig.from_env()
    owns_executor = executor is None
    if executor is None:
        executor = ThreadPoolExecutor(
            max_workers=config.max_workers, thread_name_prefix="metadata-cache"
        )

    logger.info(
        "metadata_cache_build provider=%s column_ttl=%s partition_ttl=%s max_workers=%s",
        provider,
        config.column_cache_ttl_seconds,
        config.partition_cache_ttl_seconds,
        config.max_workers if owns_executor else "external",
    )
    return ColumnCache(
        query_runner_factory,
        config.column_cache_ttl_seconds,
        config.partition_cache_ttl_seconds,
        executor,
        metadata_query_timeout_seconds=config.metadata_query_timeout_seconds,
        provider=provider,
        query_templates=query_templates,
        owns_executor=owns_executor,
    )
