from dataclasses import dataclass

from common.config.env import get_env_int
from dal.util.timeouts import DEFAULT_QUERY_TIMEOUT_SECONDS, METADATA_QUERY_TIMEOUT_SECONDS

DEFAULT_COLUMN_CACHE_TTL_SECONDS = 300
DEFAULT_PARTITION_CACHE_TTL_SECONDS = 300
DEFAULT_MAX_WORKERS = 4


@dataclass(frozen=True)
class MetadataCacheConfig:
    """Lifetimes, timeouts and pool size for the derived-metadata caches."""

    column_cache_ttl_seconds: int = DEFAULT_COLUMN_CACHE_TTL_SECONDS
    partition_cache_ttl_seconds: int = DEFAULT_PARTITION_CACHE_TTL_SECONDS
    metadata_query_timeout_seconds: int = METADATA_QUERY_TIMEOUT_SECONDS
    default_query_timeout_seconds: int = DEFAULT_QUERY_TIMEOUT_SECONDS
    max_workers: int = DEFAULT_MAX_WORKERS

    def __post_init__(self) -> None:
        """Reject non-positive durations and pool sizes."""
        invalid = [
            name
            for name in (
                "column_cache_ttl_seconds",
                "partition_cache_ttl_seconds",
                "metadata_query_timeout_seconds",
                "default_query_timeout_seconds",
                "max_workers",
            )
            if getattr(self, name) <= 0
        ]
        if invalid:
            invalid_list = ", ".join(invalid)
            raise ValueError(f"Metadata cache config values must be positive: {invalid_list}.")

    @classmethod
    def from_env(cls) -> "MetadataCacheConfig":
        """Load cache config from environment variables.

        The metadata query timeout is fixed; introspection queries must fail fast
        regardless of the interactive query timeout.
        """
        return cls(
            column_cache_ttl_seconds=get_env_int(
                "METADATA_COLUMN_CACHE_TTL_SECONDS", DEFAULT_COLUMN_CACHE_TTL_SECONDS
            ),
            partition_cache_ttl_seconds=get_env_int(
                "METADATA_PARTITION_CACHE_TTL_SECONDS", DEFAULT_PARTITION_CACHE_TTL_SECONDS
            ),
            default_query_timeout_seconds=get_env_int(
                "DAL_QUERY_TIMEOUT_SECONDS", DEFAULT_QUERY_TIMEOUT_SECONDS
            ),
            max_workers=get_env_int("METADATA_CACHE_MAX_WORKERS", DEFAULT_MAX_WORKERS),
        )
