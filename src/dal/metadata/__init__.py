"""Derived-metadata caches built on the bounded query driver."""

from .background_loader import BackgroundCacheLoader
from .column_cache import ColumnCache, MetadataKind
from .config import MetadataCacheConfig
from .factory import build_column_cache
from .loading_cache import CacheComputationError, LoadingCache
from .records import HiveColumn, HivePartition, fqn

__all__ = [
    "BackgroundCacheLoader",
    "CacheComputationError",
    "ColumnCache",
    "HiveColumn",
    "HivePartition",
    "LoadingCache",
    "MetadataCacheConfig",
    "MetadataKind",
    "build_column_cache",
    "fqn",
]
